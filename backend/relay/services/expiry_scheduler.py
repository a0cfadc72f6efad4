from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from relay.core.clock import now_ms
from relay.core.errors import StoreUnavailable
from relay.core.registry import KeyRegistry
from relay.db.store import MetadataStore

logger = logging.getLogger(__name__)

JOB_ID = "transfer-expiry"


@dataclass
class SweepReport:
    scanned: int = 0
    expired: int = 0
    restored: int = 0
    failed: int = 0
    aborted: bool = False


def remove_stored_file(path: str) -> None:
    """Missing files count as removed."""
    try:
        os.remove(path)
    except FileNotFoundError:
        logger.info(f"[SWEEP] file already gone: {path}")


class ExpiryScheduler:
    """
    Periodic reconciliation of the key registry against the metadata store.

    Each tick walks the store once. Expired transfers lose their stored file
    first and their record second, so an interrupted tick can only leave a
    record without a file, which the next tick cleans up. Until its record is
    gone an expired key is held in the registry so it cannot be reissued to a
    new upload sharing the same stored path. Live records whose key is
    missing from the registry (for example after a restart) are loaded back
    into it.
    """

    def __init__(
        self,
        registry: KeyRegistry,
        store: MetadataStore,
        ttl_ms: int,
        interval_seconds: int = 3600,
        batch_size: int = 200,
        clock: Callable[[], int] = now_ms,
    ):
        self.registry = registry
        self.store = store
        self.ttl_ms = ttl_ms
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.clock = clock
        self._scheduler: Optional[BackgroundScheduler] = None

    def run_once(self) -> SweepReport:
        report = SweepReport()
        logger.info(f"[SWEEP] tick started at {datetime.now()}")
        try:
            with self.store.connect() as session:
                current = self.clock()
                for rec in session.iter_records(batch_size=self.batch_size):
                    report.scanned += 1
                    if rec.is_expired(current, self.ttl_ms):
                        try:
                            remove_stored_file(rec.file_path)
                        except OSError as e:
                            # keep the record so a later tick retries the file
                            logger.error(f"[SWEEP] could not remove {rec.file_path}: {e}")
                            self.registry.hold(rec.key)
                            report.failed += 1
                            continue
                        try:
                            session.delete(rec.key)
                        except StoreUnavailable as e:
                            logger.error(f"[SWEEP] could not delete record {rec.key}: {e}")
                            self.registry.hold(rec.key)
                            report.failed += 1
                            continue
                        self.registry.forget(rec.key)
                        report.expired += 1
                        logger.info(f"[SWEEP] expired {rec.key} ({rec.file_path})")
                    elif self.registry.load(rec.key):
                        report.restored += 1
                        logger.info(f"[SWEEP] loaded key from store: {rec.key}")
        except StoreUnavailable as e:
            report.aborted = True
            logger.error(f"[SWEEP] tick aborted, retrying next interval: {e}")
        except Exception:
            report.aborted = True
            logger.exception("[SWEEP] tick failed")
        logger.info(
            f"[SWEEP] done scanned={report.scanned} expired={report.expired} "
            f"restored={report.restored} failed={report.failed} aborted={report.aborted}"
        )
        return report

    def start(self) -> None:
        if self._scheduler is not None:
            return
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self.run_once,
            "interval",
            seconds=self.interval_seconds,
            id=JOB_ID,
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(f"[SWEEP] scheduler started, interval={self.interval_seconds}s")

    def stop(self, wait: bool = False) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("[SWEEP] scheduler stopped")

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running
