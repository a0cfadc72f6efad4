from typing import Iterator
from sqlalchemy.orm import Session
from sqlalchemy import select, delete
from .models import TransferRecord


def insert_transfer(db: Session, key: str, created_at: int, file_path: str) -> TransferRecord:
    rec = TransferRecord(key=key, created_at=created_at, file_path=file_path)
    db.add(rec)
    db.commit()
    return rec


def find_transfer(db: Session, key: str) -> TransferRecord | None:
    return db.execute(select(TransferRecord).where(TransferRecord.key == key)).scalar_one_or_none()


def delete_transfer(db: Session, key: str) -> bool:
    result = db.execute(delete(TransferRecord).where(TransferRecord.key == key))
    db.commit()
    return result.rowcount > 0


def iter_transfer_batches(db: Session, batch_size: int = 200) -> Iterator[list[TransferRecord]]:
    """
    Keyset-paginated walk over the whole table. Each batch is fully fetched
    before it is yielded, so the caller may delete rows between batches.
    """
    last_key = ""
    while True:
        rows = db.execute(
            select(TransferRecord)
            .where(TransferRecord.key > last_key)
            .order_by(TransferRecord.key)
            .limit(batch_size)
        ).scalars().all()
        if not rows:
            return
        last_key = rows[-1].key
        yield rows
