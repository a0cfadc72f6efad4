from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from relay.core.archive import CHUNK_SIZE
from relay.core.errors import FileMissing
from relay.core.registry import KeyRegistry
from relay.db.store import MetadataStore

logger = logging.getLogger(__name__)


@dataclass
class OpenedTransfer:
    key: str
    path: str
    size: int
    handle: BinaryIO

    def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        # closes the handle when the stream ends or the client goes away
        with self.handle:
            while True:
                chunk = self.handle.read(chunk_size)
                if not chunk:
                    return
                yield chunk


class DownloadService:
    def __init__(self, registry: KeyRegistry, store: MetadataStore, data_dir: str | Path):
        self.registry = registry
        self.store = store
        self.data_dir = Path(data_dir)

    def is_valid(self, key: Optional[str]) -> bool:
        return self.registry.exists(key)

    def open(self, key: str) -> OpenedTransfer:
        """
        Resolve a valid key to an open file handle. Raises StoreUnavailable
        when the record cannot be fetched and FileMissing when the file is gone.
        """
        with self.store.connect() as session:
            record = session.find(key)
        if record is None:
            # record insert failed at upload time; the key is still live in memory
            path = str(self.data_dir / key)
            logger.warning(f"[DOWNLOAD] no record for {key}, falling back to {path}")
        else:
            path = record.file_path

        try:
            handle = open(path, "rb")
        except FileNotFoundError as e:
            raise FileMissing(f"stored file for {key} is missing: {path}") from e
        size = os.fstat(handle.fileno()).st_size
        return OpenedTransfer(key=key, path=path, size=size, handle=handle)
