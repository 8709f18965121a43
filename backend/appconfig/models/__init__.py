"""Database models"""
from .config import Config, KeyValue, ExecutionResult, ResultType

__all__ = ["Config", "KeyValue", "ExecutionResult", "ResultType"]
