"""
Database setup with SQLAlchemy ORM
"""
from sqlalchemy import create_engine, event, text, inspect as sa_inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from contextlib import contextmanager
from typing import Generator
import logging

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()

# SQLAlchemy type -> SQLite type mapping used by the auto-migration
_TYPE_MAP = {
    'INTEGER': 'INTEGER',
    'VARCHAR': 'VARCHAR(255)',
    'STRING': 'VARCHAR(255)',
    'TEXT': 'TEXT',
    'BOOLEAN': 'BOOLEAN',
    'FLOAT': 'FLOAT',
    'DATETIME': 'DATETIME',
    'ENUM': 'VARCHAR(50)',
}


def create_db_engine(database_url: str, echo: bool = False, timeout: int = 30) -> Engine:
    """Create an engine; SQLite connections get foreign keys switched on."""
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )

        # Cascading deletes rely on this pragma, it is off by default in SQLite
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(database_url, echo=echo, pool_pre_ping=True)


class Database:
    """Owns the engine and hands out transactional sessions"""

    def __init__(self, database_url: str, echo: bool = False, timeout: int = 30):
        self.url = database_url
        self.engine = create_db_engine(database_url, echo=echo, timeout=timeout)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Context manager for database sessions.
        Usage: with database.session() as db: ...
        """
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def init_db(self):
        """Initialize database - create all tables"""
        try:
            from .models import config  # noqa: F401  (registers the tables on Base)
            Base.metadata.create_all(bind=self.engine)

            # Auto-migrate: add new columns to existing tables
            self._run_migrations()

            logger.info(f"Database initialized successfully ({self.engine.url.render_as_string(hide_password=True)})")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def _run_migrations(self):
        """
        Compare model columns with the actual DB columns and ADD any missing
        ones, so schema updates never require deleting the stored configs.
        """
        inspector = sa_inspect(self.engine)
        existing_tables = inspector.get_table_names()

        with self.engine.begin() as conn:
            for table in Base.metadata.sorted_tables:
                if table.name not in existing_tables:
                    continue

                existing_cols = {col['name'] for col in inspector.get_columns(table.name)}
                for col in table.columns:
                    if col.name in existing_cols:
                        continue
                    col_type = _sqlite_type(col)
                    sql = f"ALTER TABLE {table.name} ADD COLUMN {col.name} {col_type}{_sqlite_default(col)}"
                    conn.execute(text(sql))
                    logger.info(f"Migration: added column '{col.name}' to '{table.name}'")

    def drop_db(self):
        """Drop all tables - USE WITH CAUTION!"""
        Base.metadata.drop_all(bind=self.engine)
        logger.warning("All database tables dropped")

    def dispose(self):
        self.engine.dispose()


def _sqlite_type(col) -> str:
    type_name = type(col.type).__name__.upper()
    if type_name in _TYPE_MAP:
        return _TYPE_MAP[type_name]
    if getattr(col.type, 'length', None):
        return f"VARCHAR({col.type.length})"
    return 'TEXT'


def _sqlite_default(col) -> str:
    if col.default is None or not col.default.is_scalar:
        return ""
    val = col.default.arg
    if isinstance(val, bool):
        return f" DEFAULT {1 if val else 0}"
    if isinstance(val, (int, float)):
        return f" DEFAULT {val}"
    if isinstance(val, str):
        return f" DEFAULT '{val}'"
    return ""
