from __future__ import annotations
import os, shutil, zipfile
from pathlib import Path

CHUNK_SIZE = 32 * 1024


def create_backup(source: str | Path, dest: str | Path, arcname: str) -> int:
    """
    Stream `source` into a single-entry zip archive at `dest`.
    Returns the archive size in bytes. Partial archives are removed on failure.
    """
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_name(dest.name + ".tmp")
    try:
        with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            with open(source, "rb") as src, zf.open(arcname, "w", force_zip64=True) as entry:
                shutil.copyfileobj(src, entry, CHUNK_SIZE)
        os.replace(tmp, dest)
    except BaseException:
        try:
            os.remove(tmp)
        except FileNotFoundError:
            pass
        raise
    return dest.stat().st_size
