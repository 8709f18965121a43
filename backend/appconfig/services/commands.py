"""
Command Surface
Operations the presentation layer issues; each validates identity, then delegates
to the store or the executor on a worker thread
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, List, Optional, Protocol, TypeVar, Union

from ..errors import (
    AppConfigError,
    CommandResult,
    InvariantViolation,
    NotFoundError,
    RecoverableFailure,
    Success,
    TerminalFailure,
)
from ..schemas import (
    ConfigEntry,
    ConfigListEntry,
    ConfigSchema,
    ExecutionResultEntry,
    KeyValueEntry,
    NewKeyValue,
    StoredKeyValue,
)
from .executor import ConfigExecutor
from .live_query import LiveQuery
from .store import AppConfigStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Presenter(Protocol):
    """Navigation and user notification, owned by the presentation layer"""

    def show_details(self, config_id: int) -> None:
        ...

    def show_key_value_details(self, config_id: int, key_value_id: Optional[int]) -> None:
        ...

    def notify_error(self, error: AppConfigError) -> None:
        ...


class AppConfigCommands:
    def __init__(
        self,
        store: AppConfigStore,
        executor: ConfigExecutor,
        presenter: Presenter,
        workers: int = 4,
        cloned_name_format: str = "Copy of {name}",
    ):
        self.store = store
        self.executor = executor
        self.presenter = presenter
        self.cloned_name_format = cloned_name_format
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="command")

    async def _run(
        self, fn: Callable[..., T], *args, pool: Optional[ThreadPoolExecutor] = None
    ) -> CommandResult[T]:
        """Run a blocking store/executor call on a worker and fold errors into a result"""
        loop = asyncio.get_running_loop()
        try:
            value = await loop.run_in_executor(pool or self._pool, partial(fn, *args))
        except InvariantViolation as e:
            logger.critical(f"Invariant violated in {getattr(fn, '__name__', fn)}: {e}")
            return TerminalFailure(e)
        except NotFoundError as e:
            logger.warning(f"{getattr(fn, '__name__', fn)} failed: {e}")
            self.presenter.notify_error(e)
            return RecoverableFailure(e)
        return Success(value)

    # ── Projections ─────────────────────────────────────────────────────────

    @property
    def config_entries(self) -> LiveQuery[List[ConfigListEntry]]:
        return self.store.fetch_config_entries()

    def config_by_id(self, config_id: int) -> LiveQuery[Optional[ConfigSchema]]:
        return self.store.fetch_config_by_id(config_id)

    def execution_result_entries_by_config_id(self, config_id: int) -> LiveQuery[List[ExecutionResultEntry]]:
        return self.store.fetch_execution_result_entries_by_config_id(config_id)

    def key_value_entries_by_config_id(self, config_id: int) -> LiveQuery[List[KeyValueEntry]]:
        return self.store.key_value_entries_by_config_id(config_id)

    def key_value_entry_by_key_value_id(self, key_value_id: int) -> LiveQuery[Optional[KeyValueEntry]]:
        return self.store.key_value_entry_by_key_value_id(key_value_id)

    # ── Config commands ─────────────────────────────────────────────────────

    async def on_name_updated(self, name: str, config_id: int) -> CommandResult[None]:
        return await self._run(self.store.update_config_name, name, config_id)

    async def on_authority_updated(self, authority: str, config_id: int) -> CommandResult[None]:
        return await self._run(self.store.update_config_authority, authority, config_id)

    async def on_add_config_clicked(self) -> CommandResult[int]:
        result = await self._run(self.store.insert_empty_config)
        if result.ok:
            self.presenter.show_details(result.value)
        return result

    def on_config_entry_clicked(self, entry: Union[ConfigEntry, ConfigListEntry]):
        if entry.config.id is None:
            raise InvariantViolation("config.id is null")
        self.presenter.show_details(entry.config.id)

    def cloned_name(self, name: str) -> str:
        return self.cloned_name_format.format(name=name)

    async def on_config_entry_clone_clicked(self, entry: ConfigEntry) -> CommandResult[int]:
        return await self._run(
            self.store.clone_config_entry_without_results,
            entry,
            self.cloned_name(entry.config.name),
        )

    async def on_config_entry_delete_clicked(
        self, entry: Union[ConfigEntry, ConfigListEntry]
    ) -> CommandResult[None]:
        return await self._run(self.store.delete_config_entry, entry)

    async def _run_external(self, fn: Callable[..., T], *args) -> CommandResult[T]:
        """Run a call that reaches the external target on a thread of its own"""
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="command-execute")
        try:
            return await self._run(fn, *args, pool=pool)
        finally:
            pool.shutdown(wait=False)

    async def on_execute_clicked(self, entry: ConfigEntry) -> CommandResult[ExecutionResultEntry]:
        return await self._run_external(self.executor.execute, entry)

    async def on_detail_execute_clicked(self, config_id: int) -> CommandResult[ExecutionResultEntry]:
        # The config may have been deleted a moment ago: not found is recoverable here
        return await self._run_external(self.executor.execute_by_id, config_id)

    # ── Key-value commands ──────────────────────────────────────────────────

    def on_add_key_value_clicked(self, config_id: int):
        self.presenter.show_key_value_details(config_id, None)

    def on_key_value_entry_clicked(self, key_value: KeyValueEntry):
        self.presenter.show_key_value_details(key_value.config_id, key_value.id)

    async def on_key_value_delete_clicked(self, key_value: KeyValueEntry) -> CommandResult[None]:
        return await self._run(self.store.delete_key_value, key_value)

    async def store_key_value(self, key_value: StoredKeyValue) -> CommandResult[int]:
        """Insert a new key-value or update an existing one in place; returns its id"""
        if isinstance(key_value, NewKeyValue):
            return await self._run(self.store.insert_key_value, key_value)
        result = await self._run(self.store.update_key_value, key_value)
        return Success(key_value.id) if result.ok else result

    def close(self):
        self._pool.shutdown(wait=True)
