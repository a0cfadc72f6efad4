"""
Transfer Relay - Test Configuration and Fixtures
"""
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import pytest
from faker import Faker
from fastapi.testclient import TestClient

from relay.config import Settings
from relay.core.errors import StoreUnavailable
from relay.core.registry import KeyRegistry
from relay.db.store import MetadataStore, SqlMetadataStore
from relay.main import create_app

fake = Faker()

API_KEY = "test-transfer-api-key"


class UnreachableStore(MetadataStore):
    """Store whose backend never answers."""

    @contextmanager
    def connect(self):
        raise StoreUnavailable("connection refused")
        yield


class FlakyStore(MetadataStore):
    """Wraps a real store; selected session operations fail."""

    def __init__(self, inner: MetadataStore, fail_on: tuple = ()):
        self.inner = inner
        self.fail_on = set(fail_on)

    def init(self) -> None:
        self.inner.init()

    @contextmanager
    def connect(self):
        with self.inner.connect() as session:
            yield _FlakySession(session, self.fail_on)


class _FlakySession:
    def __init__(self, inner, fail_on):
        self._inner = inner
        self._fail_on = fail_on

    def __getattr__(self, name):
        if name in self._fail_on:
            def fail(*args, **kwargs):
                raise StoreUnavailable(f"{name} failed")
            return fail
        return getattr(self._inner, name)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing every directory and the database at tmp_path"""
    return Settings(
        TRANSFER_API_KEY=API_KEY,
        METADATA_BACKEND="sql",
        DATABASE_URL=f"sqlite:///{tmp_path / 'transfers.db'}",
        DB_CONNECT_TRIES=1,
        DATA_DIR=str(tmp_path / "user_data"),
        BACKUP_DIR=str(tmp_path / "user_backups_zipped"),
        INCOMING_DIR=str(tmp_path / "incoming"),
        SCHEDULER_ENABLED=False,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def store(settings: Settings) -> Generator[SqlMetadataStore, None, None]:
    """Fresh SQLite-backed metadata store with the schema created"""
    s = SqlMetadataStore.from_url(settings.DATABASE_URL, connect_tries=1)
    s.init()
    yield s
    s.close()


@pytest.fixture
def registry() -> KeyRegistry:
    return KeyRegistry()


@pytest.fixture
def app(settings: Settings, store: SqlMetadataStore, registry: KeyRegistry):
    return create_app(settings, store=store, registry=registry)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Test client; background upload steps finish before each call returns"""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": API_KEY}


@pytest.fixture
def payload() -> bytes:
    return fake.binary(length=96 * 1024 + 17)


def upload_file(client: TestClient, data: bytes, headers: dict, filename: str = "bowlers.dat"):
    return client.post(
        "/upload",
        files={"file": (filename, data, "application/octet-stream")},
        headers=headers,
    )


def key_from(response) -> str:
    prefix, _, key = response.text.partition(":")
    assert prefix == "requestId"
    return key
