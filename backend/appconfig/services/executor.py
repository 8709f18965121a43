"""
Config Executor
Applies a config's parameters to its authority and records the outcome
"""
import logging
from typing import Dict, Iterable, Protocol

from ..errors import InvariantViolation, NotFoundError
from ..models.config import ResultType
from ..schemas import ConfigEntry, ExecutionResultEntry, KeyValueEntry, NewExecutionResult
from .store import AppConfigStore

logger = logging.getLogger(__name__)


class ContentUpdater(Protocol):
    """The external update call.

    Returns the number of entries the target changed. Raises PermissionError
    (e.g. AccessDeniedError) when the caller lacks permission, anything else
    on any other failure, including a target that does not exist.
    """

    def update(self, authority: str, values: Dict[str, str]) -> int:
        ...


def build_parameters(key_values: Iterable[KeyValueEntry]) -> Dict[str, str]:
    """Fold key-values into one mapping; a later duplicate key overwrites an earlier one"""
    values: Dict[str, str] = {}
    for key_value in key_values:
        values[key_value.key] = key_value.value
    return values


class ConfigExecutor:
    """
    Runs the apply-config protocol: resolve, build parameters, invoke the
    external call, then classify the outcome into exactly one recorded
    ExecutionResult. No retries; re-executing is up to the user.
    """

    def __init__(self, store: AppConfigStore, updater: ContentUpdater):
        self.store = store
        self.updater = updater

    def execute_by_id(self, config_id: int) -> ExecutionResultEntry:
        entry = self.store.fetch_config_entry_by_id(config_id)
        if entry is None:
            logger.error(f"ConfigEntry with id '{config_id}' not found.")
            raise NotFoundError(f"Config {config_id} not found", config_id=config_id)
        return self.execute(entry)

    def execute(self, entry: ConfigEntry) -> ExecutionResultEntry:
        config_id = entry.config.id
        if config_id is None:
            raise InvariantViolation("config.id must not be null")

        values = build_parameters(entry.key_values)
        authority = entry.config.authority

        # The external call runs outside any store transaction
        try:
            applied = self.updater.update(authority, values)
            result = NewExecutionResult(
                config_id=config_id,
                result_type=ResultType.SUCCESS,
                values_count=applied,
            )
            logger.info(f"Config {config_id} applied to '{authority}': {applied} value(s) updated")
        except PermissionError as e:
            result = NewExecutionResult(config_id=config_id, result_type=ResultType.ACCESS_DENIED)
            logger.warning(f"Config {config_id}: access to '{authority}' denied ({e})")
        except Exception as e:
            result = NewExecutionResult(
                config_id=config_id,
                result_type=ResultType.EXCEPTION,
                message=str(e) or None,
            )
            logger.warning(f"Config {config_id}: update of '{authority}' failed: {e!r}")

        result_id = self.store.insert_execution_result(result)
        recorded = self.store.fetch_execution_result_by_id(result_id)
        if recorded is None:
            # Config deleted right after the insert; its history went with it
            raise NotFoundError(f"Config {config_id} not found", config_id=config_id)
        return recorded
