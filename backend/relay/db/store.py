"""
Metadata store interface and its SQLAlchemy implementation.

A store hands out short-lived sessions through ``connect()``. Opening a
session verifies the backend is reachable, so callers can abort cleanly
before doing anything else. Every backend failure surfaces as
``StoreUnavailable``.
"""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from relay.config import Settings
from relay.core.errors import StoreUnavailable
from relay.db import crud, make_engine, make_sessionmaker, init_schema
from relay.db.schema import Transfer

logger = logging.getLogger(__name__)


class StoreSession(ABC):
    @abstractmethod
    def iter_records(self, batch_size: int = 200) -> Iterator[Transfer]:
        """Stream every record without materializing the whole collection."""

    @abstractmethod
    def find(self, key: str) -> Optional[Transfer]: ...

    @abstractmethod
    def insert(self, record: Transfer) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> bool: ...


class MetadataStore(ABC):
    @abstractmethod
    def connect(self):
        """Context manager yielding a StoreSession; raises StoreUnavailable."""

    def init(self) -> None:
        pass

    def close(self) -> None:
        pass


class SqlStoreSession(StoreSession):
    def __init__(self, db: Session):
        self._db = db

    def iter_records(self, batch_size: int = 200) -> Iterator[Transfer]:
        try:
            for rows in crud.iter_transfer_batches(self._db, batch_size=batch_size):
                batch = [Transfer.model_validate(r) for r in rows]
                self._db.expunge_all()
                yield from batch
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"scan failed: {e}") from e

    def find(self, key: str) -> Optional[Transfer]:
        try:
            row = crud.find_transfer(self._db, key)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"lookup of {key} failed: {e}") from e
        return Transfer.model_validate(row) if row else None

    def insert(self, record: Transfer) -> None:
        try:
            crud.insert_transfer(self._db, record.key, record.created_at, record.file_path)
        except SQLAlchemyError as e:
            self._db.rollback()
            raise StoreUnavailable(f"insert of {record.key} failed: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            return crud.delete_transfer(self._db, key)
        except SQLAlchemyError as e:
            self._db.rollback()
            raise StoreUnavailable(f"delete of {key} failed: {e}") from e


class SqlMetadataStore(MetadataStore):
    def __init__(self, engine: Engine, connect_tries: int = 60):
        self.engine = engine
        self.connect_tries = connect_tries
        self.SessionLocal = make_sessionmaker(engine)

    @classmethod
    def from_url(cls, database_url: str, connect_tries: int = 60) -> "SqlMetadataStore":
        return cls(make_engine(database_url), connect_tries=connect_tries)

    def init(self) -> None:
        init_schema(self.engine, max_tries=self.connect_tries)

    @contextmanager
    def connect(self) -> Iterator[SqlStoreSession]:
        db = self.SessionLocal()
        try:
            try:
                db.execute(text("SELECT 1"))
            except SQLAlchemyError as e:
                raise StoreUnavailable(f"database connect failed: {e}") from e
            yield SqlStoreSession(db)
        finally:
            db.close()

    def close(self) -> None:
        self.engine.dispose()


def get_metadata_store(settings: Settings) -> MetadataStore:
    backend = (settings.METADATA_BACKEND or "sql").strip().lower()
    if backend == "redis":
        from relay.cache.redis_store import RedisMetadataStore
        return RedisMetadataStore.from_url(settings.REDIS_URL)
    if backend != "sql":
        raise ValueError(f"unknown METADATA_BACKEND: {settings.METADATA_BACKEND}")
    return SqlMetadataStore.from_url(settings.DATABASE_URL, connect_tries=settings.DB_CONNECT_TRIES)
