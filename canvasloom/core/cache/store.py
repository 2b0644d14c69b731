"""Durable key/value stores for the component cache.

The cache only needs ``get/set/remove`` of one JSON payload. ``MemoryStore``
keeps it in-process (tests, ephemeral sessions); ``SqlStore`` writes it to a
single SQLAlchemy table so it survives restarts.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import TIMESTAMP, Column, Integer, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from ..errors import CacheIOError

logger = logging.getLogger(__name__)

Base = declarative_base()


class KeyValueRecord(Base):
    """One persisted payload."""
    __tablename__ = "kv_store"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    byte_size = Column(Integer, nullable=False, default=0)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow)


class PersistenceStore(ABC):
    """Size-limited durable key/value capability.

    Implementations raise :class:`CacheIOError` on any read/write failure.
    """

    def __init__(self, max_value_bytes: Optional[int] = None):
        self.max_value_bytes = max_value_bytes

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    def _check_size(self, key: str, value: str) -> int:
        size = len(value.encode("utf-8"))
        if self.max_value_bytes is not None and size > self.max_value_bytes:
            raise CacheIOError(
                f"Value for {key} is {size} bytes, over the {self.max_value_bytes} byte limit"
            )
        return size


class MemoryStore(PersistenceStore):
    """In-process store."""

    def __init__(self, max_value_bytes: Optional[int] = None):
        super().__init__(max_value_bytes)
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._check_size(key, value)
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class SqlStore(PersistenceStore):
    """SQLAlchemy-backed store (``sqlite:///canvasloom.db`` works out of the box)."""

    def __init__(self, url: str, max_value_bytes: Optional[int] = None):
        super().__init__(max_value_bytes)
        try:
            self.engine = create_engine(url)
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise CacheIOError(f"Could not open store {url}: {e}")
        self.Session = sessionmaker(bind=self.engine)
        logger.info(f"Component store ready at {self.engine.url.render_as_string(hide_password=True)}")

    def get(self, key: str) -> Optional[str]:
        try:
            with self.Session() as session:
                record = session.get(KeyValueRecord, key)
                return record.value if record is not None else None
        except SQLAlchemyError as e:
            raise CacheIOError(f"Store read failed for {key}: {e}")

    def set(self, key: str, value: str) -> None:
        size = self._check_size(key, value)
        try:
            with self.Session() as session:
                record = session.get(KeyValueRecord, key)
                if record is None:
                    session.add(KeyValueRecord(key=key, value=value, byte_size=size))
                else:
                    record.value = value
                    record.byte_size = size
                session.commit()
        except SQLAlchemyError as e:
            raise CacheIOError(f"Store write failed for {key}: {e}")

    def remove(self, key: str) -> None:
        try:
            with self.Session() as session:
                record = session.get(KeyValueRecord, key)
                if record is not None:
                    session.delete(record)
                    session.commit()
        except SQLAlchemyError as e:
            raise CacheIOError(f"Store delete failed for {key}: {e}")

    def dispose(self) -> None:
        self.engine.dispose()
