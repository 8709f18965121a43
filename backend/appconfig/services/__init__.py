"""Store, live queries, executor and command surface"""
