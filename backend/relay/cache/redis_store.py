from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from redis.exceptions import RedisError

from relay.cache.keys import transfer_key, transfer_pattern
from relay.cache.redis_client import get_redis
from relay.core.errors import StoreUnavailable
from relay.db.schema import Transfer
from relay.db.store import MetadataStore, StoreSession

logger = logging.getLogger(__name__)


class RedisStoreSession(StoreSession):
    """One hash per transfer under ``transfer:<KEY>``."""

    def __init__(self, r):
        self._r = r

    @staticmethod
    def _to_transfer(data: dict) -> Optional[Transfer]:
        if not data:
            return None
        try:
            return Transfer(
                key=data["key"],
                created_at=int(data["created_at"]),
                file_path=data["file_path"],
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"[REDIS_STORE] malformed record skipped: {data!r} ({e})")
            return None

    def iter_records(self, batch_size: int = 200) -> Iterator[Transfer]:
        try:
            for name in self._r.scan_iter(match=transfer_pattern(), count=batch_size):
                rec = self._to_transfer(self._r.hgetall(name))
                if rec is not None:
                    yield rec
        except RedisError as e:
            raise StoreUnavailable(f"scan failed: {e}") from e

    def find(self, key: str) -> Optional[Transfer]:
        try:
            return self._to_transfer(self._r.hgetall(transfer_key(key)))
        except RedisError as e:
            raise StoreUnavailable(f"lookup of {key} failed: {e}") from e

    def insert(self, record: Transfer) -> None:
        try:
            self._r.hset(
                transfer_key(record.key),
                mapping={
                    "key": record.key,
                    "created_at": str(record.created_at),
                    "file_path": record.file_path,
                },
            )
        except RedisError as e:
            raise StoreUnavailable(f"insert of {record.key} failed: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            return bool(self._r.delete(transfer_key(key)))
        except RedisError as e:
            raise StoreUnavailable(f"delete of {key} failed: {e}") from e


class RedisMetadataStore(MetadataStore):
    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisMetadataStore":
        return cls(get_redis(url))

    @contextmanager
    def connect(self) -> Iterator[RedisStoreSession]:
        try:
            self.client.ping()
        except RedisError as e:
            raise StoreUnavailable(f"Redis connect failed: {e}") from e
        yield RedisStoreSession(self.client)
