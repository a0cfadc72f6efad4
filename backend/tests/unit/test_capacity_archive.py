"""
Unit Tests for the Capacity Monitor and the backup archiver
"""
import os
import zipfile

import pytest
from faker import Faker

from relay.core.archive import create_backup
from relay.core.capacity import STATUS_FULL, STATUS_OK, capacity_status
from relay.core.registry import KeyRegistry

fake = Faker()


class TestCapacity:

    def test_ok_when_empty(self):
        assert capacity_status(KeyRegistry(), 40) == STATUS_OK

    def test_ok_at_exactly_the_ceiling(self):
        reg = KeyRegistry()
        for _ in range(40):
            reg.allocate()
        assert capacity_status(reg, 40) == STATUS_OK

    def test_full_above_the_ceiling(self):
        reg = KeyRegistry()
        for _ in range(41):
            reg.allocate()
        assert capacity_status(reg, 40) == STATUS_FULL

    def test_allocation_is_not_gated(self):
        """The monitor is advisory; allocation keeps working past the ceiling"""
        reg = KeyRegistry()
        for _ in range(45):
            reg.allocate()
        assert reg.count() == 45


class TestBackupArchive:

    def test_single_entry_archive(self, tmp_path):
        data = fake.binary(length=70_000)
        source = tmp_path / "ABCDE"
        source.write_bytes(data)
        dest = tmp_path / "backups" / "ABCDE.zip"

        size = create_backup(source, dest, "ABCDE")

        assert size == dest.stat().st_size
        with zipfile.ZipFile(dest) as zf:
            assert zf.namelist() == ["ABCDE"]
            assert zf.read("ABCDE") == data

    def test_missing_source_leaves_nothing_behind(self, tmp_path):
        dest = tmp_path / "backups" / "ABCDE.zip"

        with pytest.raises(FileNotFoundError):
            create_backup(tmp_path / "nope", dest, "ABCDE")

        assert os.listdir(dest.parent) == []
