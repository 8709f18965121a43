"""
Schemas
Immutable snapshots handed out by the store, plus request bodies for the API
"""
from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional, Union

from .models.config import ResultType


class ConfigSchema(BaseModel):
    id: Optional[int] = None
    name: str = ""
    authority: str = ""

    class Config:
        from_attributes = True
        frozen = True


class NewKeyValue(BaseModel):
    """A key-value that has not been stored yet"""
    config_id: int
    key: str
    value: str

    class Config:
        frozen = True


class KeyValueEntry(BaseModel):
    """A stored key-value"""
    id: int
    config_id: int
    key: str
    value: str

    class Config:
        from_attributes = True
        frozen = True


# What storing a key-value means is decided by which of the two it is
StoredKeyValue = Union[NewKeyValue, KeyValueEntry]


class NewExecutionResult(BaseModel):
    config_id: Optional[int] = None
    result_type: ResultType
    values_count: int = 0
    message: Optional[str] = None

    class Config:
        frozen = True


class ExecutionResultEntry(BaseModel):
    id: int
    config_id: int
    result_type: ResultType
    values_count: int
    message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
        frozen = True


class ConfigEntry(BaseModel):
    """A config together with all of its key-values, in fetch order"""
    config: ConfigSchema
    key_values: List[KeyValueEntry] = []

    class Config:
        frozen = True


class ConfigListEntry(BaseModel):
    """A config with its most recent execution result, for list display"""
    config: ConfigSchema
    latest_result: Optional[ExecutionResultEntry] = None

    class Config:
        frozen = True


# ── API request bodies ──────────────────────────────────────────────────────

class ConfigUpdate(BaseModel):
    name: Optional[str] = None
    authority: Optional[str] = None


class KeyValueIn(BaseModel):
    key: str
    value: str = ""


class CreatedResponse(BaseModel):
    id: int
