"""
Errors and command outcomes
"""
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class AppConfigError(Exception):
    """Base class for App Config errors"""


class InvariantViolation(AppConfigError):
    """A required id is missing where the data model guarantees one.

    Programmer error or a corrupt read projection; never recovered.
    """


class NotFoundError(AppConfigError):
    """The targeted config or key-value no longer exists"""

    def __init__(self, message: str, config_id: Optional[int] = None, key_value_id: Optional[int] = None):
        super().__init__(message)
        self.config_id = config_id
        self.key_value_id = key_value_id


class AccessDeniedError(PermissionError):
    """The external target rejected the caller's permission"""


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    ok = True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class RecoverableFailure:
    """Expected failure the user is told about; processing continues"""
    error: AppConfigError
    ok = False

    def unwrap(self) -> Any:
        raise self.error


@dataclass(frozen=True)
class TerminalFailure:
    """Invariant broken; unwrapping re-raises it"""
    error: InvariantViolation
    ok = False

    def unwrap(self) -> Any:
        raise self.error


CommandResult = Union[Success[T], RecoverableFailure, TerminalFailure]
