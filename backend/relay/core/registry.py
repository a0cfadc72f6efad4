from __future__ import annotations
import logging
import secrets
import threading
from typing import Callable, Iterable, Optional

from relay.core.errors import KeySpaceExhausted

logger = logging.getLogger(__name__)

KEY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ123456789"
KEY_LENGTH = 5
KEY_SPACE = len(KEY_ALPHABET) ** KEY_LENGTH


def is_well_formed(key: Optional[str]) -> bool:
    """Exactly KEY_LENGTH symbols, all from KEY_ALPHABET."""
    if not isinstance(key, str) or len(key) != KEY_LENGTH:
        return False
    return all(ch in KEY_ALPHABET for ch in key)


class KeyRegistry:
    """
    In-memory set of the transfer keys that are valid right now.

    Every read and write goes through one lock, so concurrent uploads never
    receive the same key and a sweep never observes a half-applied change.
    The set is only a cache of the metadata store; the expiry scheduler
    rebuilds it after a restart.

    Keys whose expired record could not be cleaned up yet are held: they no
    longer validate, but allocate() will not hand them out until forget().
    """

    def __init__(self, chooser: Callable[[str], str] = secrets.choice, keys: Iterable[str] = ()):
        self._choose = chooser
        self._lock = threading.Lock()
        self._keys: set[str] = set(keys)
        self._held: set[str] = set()

    def _draw(self) -> str:
        return "".join(self._choose(KEY_ALPHABET) for _ in range(KEY_LENGTH))

    def allocate(self) -> str:
        with self._lock:
            if len(self._keys) + len(self._held) >= KEY_SPACE:
                raise KeySpaceExhausted(f"all {KEY_SPACE} keys are in use")
            while True:
                candidate = self._draw()
                if candidate not in self._keys and candidate not in self._held:
                    self._keys.add(candidate)
                    return candidate
                logger.debug(f"[REGISTRY] collision on {candidate}, drawing again")

    def exists(self, key: Optional[str]) -> bool:
        if not is_well_formed(key):
            return False
        with self._lock:
            return key in self._keys

    def forget(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)
            self._held.discard(key)

    def hold(self, key: str) -> None:
        """Invalidate a key but keep it out of circulation."""
        with self._lock:
            self._keys.discard(key)
            self._held.add(key)

    def load(self, key: str) -> bool:
        """Insert a key restored from the store. Returns True if it was missing."""
        with self._lock:
            if key in self._keys:
                return False
            self._held.discard(key)
            self._keys.add(key)
            return True

    def count(self) -> int:
        with self._lock:
            return len(self._keys)

    def __len__(self) -> int:
        return self.count()

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._keys)

    def held(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._held)
