"""
App Config - reusable parameter sets applied to external authorities
"""
__version__ = "1.0.0"
