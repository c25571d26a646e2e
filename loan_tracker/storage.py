"""Durable key-value storage for the project store.

The project store keeps its whole project list as one JSON document in a
named slot. This module abstracts where that slot lives. It defaults to
SQLite for local use, but accepts any SQLAlchemy-compatible URL (e.g.
PostgreSQL/MySQL) so the CLI and the web API can share one database.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

DEFAULT_DATABASE_URL = "sqlite:///loan_tracker.sqlite3"

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StorageSlotModel(Base):
    __tablename__ = "storage_slots"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)


class KeyValueStorage:
    """Database-backed string slots."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as session:
            row = session.get(StorageSlotModel, key)
            return row.value if row else None

    def set(self, key: str, value: str) -> None:
        with self._session_factory() as session:
            row = session.get(StorageSlotModel, key)
            if row is None:
                session.add(StorageSlotModel(key=key, value=value))
            else:
                row.value = value
            session.commit()

    def dispose(self) -> None:
        self._engine.dispose()


def create_storage_from_env(url: str | None) -> KeyValueStorage:
    return KeyValueStorage(url or DEFAULT_DATABASE_URL)
