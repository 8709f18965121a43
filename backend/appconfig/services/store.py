"""
App Config Store
Atomic CRUD and cascading operations over configs, key-values and execution results
"""
import logging
import threading
from contextlib import contextmanager
from typing import Generator, List, Optional, Union

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from ..database import Base, Database
from ..errors import InvariantViolation, NotFoundError
from ..models.config import Config, KeyValue, ExecutionResult
from ..schemas import (
    ConfigEntry,
    ConfigListEntry,
    ConfigSchema,
    ExecutionResultEntry,
    KeyValueEntry,
    NewExecutionResult,
    NewKeyValue,
)
from .live_query import InvalidationTracker, LiveQuery

logger = logging.getLogger(__name__)

CONFIGS = Config.__tablename__
KEY_VALUES = KeyValue.__tablename__
EXECUTION_RESULTS = ExecutionResult.__tablename__


class AppConfigStore:
    """
    Sole owner of the durable rows.

    Every write runs as one transaction under a store-wide lock, so writes are
    serialized and never interleave partial effects. Callers only ever get
    immutable snapshots back; all access is by id, re-fetched per operation.
    """

    def __init__(self, database: Database, tracker: Optional[InvalidationTracker] = None):
        self.database = database
        self.tracker = tracker or InvalidationTracker(Base.metadata)
        self._write_lock = threading.Lock()

    @contextmanager
    def _write(self, *tables: str) -> Generator[Session, None, None]:
        with self._write_lock:
            with self.database.session() as db:
                yield db
        # Only reached once the transaction committed
        self.tracker.notify(*tables)

    def _live(self, tables, fetch) -> LiveQuery:
        return LiveQuery(self.tracker, tables, fetch)

    # ── Configs ─────────────────────────────────────────────────────────────

    def insert_empty_config(self) -> int:
        with self._write(CONFIGS) as db:
            config = Config(name="", authority="")
            db.add(config)
            db.flush()
            config_id = config.id
        logger.info(f"Config {config_id} created")
        return config_id

    def update_config_name(self, name: str, config_id: int):
        with self._write(CONFIGS) as db:
            db.query(Config).filter(Config.id == config_id).update({"name": name})

    def update_config_authority(self, authority: str, config_id: int):
        with self._write(CONFIGS) as db:
            db.query(Config).filter(Config.id == config_id).update({"authority": authority})

    def fetch_config_by_id(self, config_id: int) -> LiveQuery[Optional[ConfigSchema]]:
        def fetch():
            with self.database.session() as db:
                config = db.get(Config, config_id)
                return ConfigSchema.model_validate(config) if config else None

        return self._live([CONFIGS], fetch)

    def fetch_config_entries(self) -> LiveQuery[List[ConfigListEntry]]:
        def fetch():
            with self.database.session() as db:
                latest = (
                    db.query(
                        ExecutionResult.config_id.label("config_id"),
                        func.max(ExecutionResult.id).label("result_id"),
                    )
                    .group_by(ExecutionResult.config_id)
                    .subquery()
                )
                rows = (
                    db.query(Config, ExecutionResult)
                    .select_from(Config)
                    .outerjoin(latest, latest.c.config_id == Config.id)
                    .outerjoin(ExecutionResult, ExecutionResult.id == latest.c.result_id)
                    .order_by(Config.id)
                    .all()
                )
                return [
                    ConfigListEntry(
                        config=ConfigSchema.model_validate(config),
                        latest_result=ExecutionResultEntry.model_validate(result) if result else None,
                    )
                    for config, result in rows
                ]

        return self._live([CONFIGS, EXECUTION_RESULTS], fetch)

    def fetch_config_entry_by_id(self, config_id: int) -> Optional[ConfigEntry]:
        with self.database.session() as db:
            return self._config_entry(db, config_id)

    @staticmethod
    def _config_entry(db: Session, config_id: int) -> Optional[ConfigEntry]:
        config = db.get(Config, config_id)
        if config is None:
            return None
        key_values = (
            db.query(KeyValue)
            .filter(KeyValue.config_id == config_id)
            .order_by(KeyValue.id)
            .all()
        )
        return ConfigEntry(
            config=ConfigSchema.model_validate(config),
            key_values=[KeyValueEntry.model_validate(kv) for kv in key_values],
        )

    def clone_config_entry_without_results(self, source: ConfigEntry, new_name: str) -> int:
        """Copy a config and its key-values under a new id; history stays behind"""
        with self._write(CONFIGS, KEY_VALUES) as db:
            clone = Config(name=new_name, authority=source.config.authority)
            db.add(clone)
            db.flush()
            for kv in source.key_values:
                db.add(KeyValue(config_id=clone.id, key=kv.key, value=kv.value))
            clone_id = clone.id
        logger.info(
            f"Config {source.config.id} cloned as {clone_id} '{new_name}' "
            f"with {len(source.key_values)} key-value(s)"
        )
        return clone_id

    def delete_config_entry(self, entry: Union[ConfigEntry, ConfigListEntry]):
        """Delete a config; its key-values and execution results cascade away"""
        config_id = entry.config.id
        if config_id is None:
            raise InvariantViolation("config.id must not be null")
        with self._write(CONFIGS) as db:
            config = db.get(Config, config_id)
            if config is None:
                return
            db.delete(config)
        logger.info(f"Config {config_id} deleted")

    # ── Key-values ──────────────────────────────────────────────────────────

    def insert_key_value(self, key_value: NewKeyValue) -> int:
        with self._write(KEY_VALUES) as db:
            if db.get(Config, key_value.config_id) is None:
                raise NotFoundError(
                    f"Config {key_value.config_id} not found",
                    config_id=key_value.config_id,
                )
            row = KeyValue(config_id=key_value.config_id, key=key_value.key, value=key_value.value)
            db.add(row)
            db.flush()
            return row.id

    def update_key_value(self, key_value: KeyValueEntry):
        with self._write(KEY_VALUES) as db:
            db.query(KeyValue).filter(KeyValue.id == key_value.id).update(
                {"key": key_value.key, "value": key_value.value}
            )

    def delete_key_value(self, key_value: KeyValueEntry):
        with self._write(KEY_VALUES) as db:
            db.query(KeyValue).filter(KeyValue.id == key_value.id).delete()

    def key_value_entries_by_config_id(self, config_id: int) -> LiveQuery[List[KeyValueEntry]]:
        def fetch():
            with self.database.session() as db:
                rows = (
                    db.query(KeyValue)
                    .filter(KeyValue.config_id == config_id)
                    .order_by(KeyValue.id)
                    .all()
                )
                return [KeyValueEntry.model_validate(kv) for kv in rows]

        return self._live([KEY_VALUES], fetch)

    def key_value_entry_by_key_value_id(self, key_value_id: int) -> LiveQuery[Optional[KeyValueEntry]]:
        def fetch():
            with self.database.session() as db:
                row = db.get(KeyValue, key_value_id)
                return KeyValueEntry.model_validate(row) if row else None

        return self._live([KEY_VALUES], fetch)

    # ── Execution results ───────────────────────────────────────────────────

    def insert_execution_result(self, result: NewExecutionResult) -> int:
        """Append a result; it must always be attributable to a config"""
        if result.config_id is None:
            raise InvariantViolation("config.id must not be null")
        with self._write(EXECUTION_RESULTS) as db:
            if db.get(Config, result.config_id) is None:
                raise NotFoundError(f"Config {result.config_id} not found", config_id=result.config_id)
            row = ExecutionResult(
                config_id=result.config_id,
                result_type=result.result_type,
                values_count=result.values_count,
                message=result.message,
            )
            db.add(row)
            db.flush()
            return row.id

    def fetch_execution_result_by_id(self, result_id: int) -> Optional[ExecutionResultEntry]:
        with self.database.session() as db:
            row = db.get(ExecutionResult, result_id)
            return ExecutionResultEntry.model_validate(row) if row else None

    def fetch_execution_result_entries_by_config_id(
        self, config_id: int
    ) -> LiveQuery[List[ExecutionResultEntry]]:
        def fetch():
            with self.database.session() as db:
                rows = (
                    db.query(ExecutionResult)
                    .filter(ExecutionResult.config_id == config_id)
                    .order_by(desc(ExecutionResult.created_at), desc(ExecutionResult.id))
                    .all()
                )
                return [ExecutionResultEntry.model_validate(r) for r in rows]

        return self._live([EXECUTION_RESULTS], fetch)
