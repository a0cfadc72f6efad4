from __future__ import annotations
import errno
import logging
import os
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from relay.core.archive import create_backup, CHUNK_SIZE
from relay.core.clock import now_ms
from relay.core.registry import KeyRegistry
from relay.db.schema import Transfer
from relay.db.store import MetadataStore

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    step: str
    ok: bool
    detail: str = ""
    error: Optional[BaseException] = None


class UploadPipeline:
    """
    Turns a received payload into a live transfer.

    ``receive`` runs inside the request and only spools bytes to the incoming
    directory. ``finalize`` runs after the response has been sent: it moves the
    payload into permanent storage, then writes the zip backup and the store
    record side by side. The record insert is not transactional with the
    file move; a crash in between leaves an untracked file behind.
    """

    def __init__(
        self,
        registry: KeyRegistry,
        store: MetadataStore,
        data_dir: str | Path,
        backup_dir: str | Path,
        incoming_dir: str | Path,
        clock: Callable[[], int] = now_ms,
        archiver: Callable[..., int] = create_backup,
    ):
        self.registry = registry
        self.store = store
        self.data_dir = Path(data_dir)
        self.backup_dir = Path(backup_dir)
        self.incoming_dir = Path(incoming_dir)
        self.clock = clock
        self.archiver = archiver

    def ensure_dirs(self) -> None:
        for d in (self.data_dir, self.backup_dir, self.incoming_dir):
            d.mkdir(parents=True, exist_ok=True)

    def incoming_path(self, key: str) -> Path:
        return self.incoming_dir / f"{key}.part"

    def stored_path(self, key: str) -> Path:
        return self.data_dir / key

    def backup_path(self, key: str) -> Path:
        return self.backup_dir / f"{key}.zip"

    def receive(self, key: str, source: BinaryIO) -> Path:
        dest = self.incoming_path(key)
        dest.parent.mkdir(parents=True, exist_ok=True)
        with open(dest, "wb") as out:
            shutil.copyfileobj(source, out, CHUNK_SIZE)
        logger.info(f"[UPLOAD] transfer complete, key={key} incoming={dest}")
        return dest

    def discard(self, key: str, incoming: Optional[Path] = None) -> None:
        """Drop a key whose payload never made it to storage."""
        self.registry.forget(key)
        path = incoming or self.incoming_path(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"[UPLOAD] could not remove incoming file {path}: {e}")

    def move(self, key: str, incoming: Path) -> StepResult:
        dest = self.stored_path(key)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            try:
                os.replace(incoming, dest)
            except OSError as e:
                if e.errno != errno.EXDEV:
                    raise
                shutil.move(str(incoming), str(dest))
        except OSError as e:
            return StepResult("move", False, f"{incoming} -> {dest}", e)
        return StepResult("move", True, str(dest))

    def backup(self, key: str) -> StepResult:
        dest = self.backup_path(key)
        try:
            size = self.archiver(self.stored_path(key), dest, key)
        except Exception as e:
            return StepResult("backup", False, str(dest), e)
        return StepResult("backup", True, f"{dest} ({size} bytes)")

    def persist(self, key: str) -> StepResult:
        record = Transfer(key=key, created_at=self.clock(), file_path=str(self.stored_path(key)))
        try:
            with self.store.connect() as session:
                session.insert(record)
        except Exception as e:
            return StepResult("persist", False, key, e)
        return StepResult("persist", True, key)

    def finalize(self, key: str, incoming: Path) -> list[StepResult]:
        moved = self.move(key, incoming)
        self._report(key, moved)
        results = [moved]
        if not moved.ok:
            self.discard(key, incoming)
            return results

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"upload-{key}") as pool:
            backup = pool.submit(self.backup, key)
            persist = pool.submit(self.persist, key)
            for fut in (backup, persist):
                res = fut.result()
                self._report(key, res)
                results.append(res)
        return results

    @staticmethod
    def _report(key: str, res: StepResult) -> None:
        if res.ok:
            logger.info(f"[UPLOAD] {key} {res.step} ok: {res.detail}")
            return
        if res.step == "persist":
            # key stays valid in memory until restart; the record is simply missing
            logger.error(f"[UPLOAD] {key} record not stored, key lives in memory only: {res.error}")
        else:
            logger.error(f"[UPLOAD] {key} {res.step} failed: {res.detail}: {res.error}")
