"""
Config Models
Named parameter sets, their key/value entries and the history of applying them
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from ..database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResultType(str, enum.Enum):
    """Outcome of one attempt to apply a config"""
    SUCCESS = "success"
    ACCESS_DENIED = "access_denied"  # fixable by granting access
    EXCEPTION = "exception"          # anything else the target threw


class Config(Base):
    """A named, reusable parameter set targeting one authority"""
    __tablename__ = "configs"
    # AUTOINCREMENT: ids of deleted configs are never handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, default="")
    authority = Column(String(255), nullable=False, default="")

    # Relationships
    key_values = relationship(
        "KeyValue",
        back_populates="config",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="KeyValue.id",
    )
    execution_results = relationship(
        "ExecutionResult",
        back_populates="config",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Config(id={self.id}, name='{self.name}', authority='{self.authority}')>"


class KeyValue(Base):
    """One parameter of a config; duplicate keys are allowed"""
    __tablename__ = "key_values"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    config_id = Column(Integer, ForeignKey("configs.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(255), nullable=False, default="")
    value = Column(Text, nullable=False, default="")

    config = relationship("Config", back_populates="key_values")

    def __repr__(self):
        return f"<KeyValue(id={self.id}, config_id={self.config_id}, {self.key}={self.value})>"


class ExecutionResult(Base):
    """Append-only record of one attempt to apply a config"""
    __tablename__ = "execution_results"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    config_id = Column(Integer, ForeignKey("configs.id", ondelete="CASCADE"), nullable=False, index=True)
    result_type = Column(SQLEnum(ResultType), nullable=False)
    values_count = Column(Integer, nullable=False, default=0)
    message = Column(Text, nullable=True)  # only for EXCEPTION
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    config = relationship("Config", back_populates="execution_results")

    def __repr__(self):
        return f"<ExecutionResult(id={self.id}, config_id={self.config_id}, type='{self.result_type}')>"
