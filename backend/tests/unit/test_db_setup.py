"""
Unit Tests for engine construction
"""
import pytest

from relay.db import make_engine


class TestMakeEngine:

    @pytest.mark.parametrize("url", ["sqlite://", "sqlite:///:memory:"])
    def test_in_memory_url_creates_no_directories(self, url, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        engine = make_engine(url)
        engine.dispose()

        assert list(tmp_path.iterdir()) == []

    def test_file_url_creates_parent_directory(self, tmp_path):
        db_file = tmp_path / "nested" / "transfers.db"

        engine = make_engine(f"sqlite:///{db_file}")
        engine.dispose()

        assert db_file.parent.is_dir()
