"""
Unit Tests for the Redis metadata store
"""
import fnmatch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from relay.cache.keys import transfer_key
from relay.cache.redis_store import RedisMetadataStore
from relay.core.errors import StoreUnavailable
from relay.core.registry import KeyRegistry
from relay.db.schema import Transfer
from relay.services.expiry_scheduler import ExpiryScheduler


class InMemoryRedis:
    """Just enough of the redis-py client for the store"""

    def __init__(self, down: bool = False):
        self.hashes = {}
        self.down = down

    def ping(self):
        if self.down:
            raise RedisConnectionError("Connection refused")
        return True

    def hset(self, name, mapping):
        self.hashes.setdefault(name, {}).update(mapping)
        return len(mapping)

    def hgetall(self, name):
        return dict(self.hashes.get(name, {}))

    def delete(self, *names):
        return sum(1 for n in names if self.hashes.pop(n, None) is not None)

    def scan_iter(self, match=None, count=None):
        for name in list(self.hashes):
            if match is None or fnmatch.fnmatchcase(name, match):
                yield name


@pytest.fixture
def fake_redis():
    return InMemoryRedis()


@pytest.fixture
def redis_store(fake_redis):
    return RedisMetadataStore(fake_redis)


class TestRedisStore:

    def test_insert_find_delete(self, redis_store, fake_redis):
        rec = Transfer(key="ABCDE", created_at=1234, file_path="/tmp/ABCDE")

        with redis_store.connect() as session:
            session.insert(rec)
            assert fake_redis.hashes[transfer_key("ABCDE")]["created_at"] == "1234"
            assert session.find("ABCDE") == rec
            assert session.delete("ABCDE") is True
            assert session.delete("ABCDE") is False
            assert session.find("ABCDE") is None

    def test_iter_skips_unrelated_and_malformed(self, redis_store, fake_redis):
        fake_redis.hashes["share:xyz"] = {"key": "nope"}
        fake_redis.hashes[transfer_key("BROKN")] = {"key": "BROKN"}
        with redis_store.connect() as session:
            session.insert(Transfer(key="ABCDE", created_at=1, file_path="/a"))
            session.insert(Transfer(key="FGHJK", created_at=2, file_path="/b"))

            keys = sorted(r.key for r in session.iter_records())

        assert keys == ["ABCDE", "FGHJK"]

    def test_unreachable_redis_raises_store_unavailable(self):
        store = RedisMetadataStore(InMemoryRedis(down=True))

        with pytest.raises(StoreUnavailable):
            with store.connect():
                pass

    def test_scheduler_reconciles_against_redis(self, redis_store, tmp_path):
        ttl = 1000
        stale = tmp_path / "AAAAA"
        stale.write_bytes(b"old")
        with redis_store.connect() as session:
            session.insert(Transfer(key="AAAAA", created_at=0, file_path=str(stale)))
            session.insert(Transfer(key="BBBBB", created_at=4500, file_path=str(tmp_path / "BBBBB")))
        registry = KeyRegistry()

        report = ExpiryScheduler(registry, redis_store, ttl_ms=ttl, clock=lambda: 5000).run_once()

        assert report.expired == 1
        assert report.restored == 1
        assert registry.snapshot() == {"BBBBB"}
        assert not stale.exists()
