"""In-memory cache of analysis results.

Keys are ``<document_type>_<hash>`` over the canonical serialization of the
document. The hash is a non-cryptographic 32-bit string hash; a collision
returns another document's cached analysis.

Entries expire ``ttl_seconds`` after insertion. Expired entries are treated
as misses and overwritten by the next store, not evicted eagerly.
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from taxdocs.analysis.schema import AnalysisResult

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def hash_string(text: str) -> str:
    """32-bit rolling hash (h * 31 + code point) rendered in base 36."""
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 1 << 32
    return _to_base36(abs(value))


def cache_key(document_type: str, serialized_document: str) -> str:
    return f"{document_type}_{hash_string(serialized_document)}"


@dataclass
class _Entry:
    result: AnalysisResult
    stored_at: float


class AnalysisCache:
    """Thread-safe TTL cache with a size bound.

    When full, the oldest insertion is dropped to make room.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> AnalysisResult | None:
        """Cached result for key, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() - entry.stored_at >= self.ttl_seconds:
                return None
            return entry.result.model_copy(deep=True)

    def set(self, key: str, result: AnalysisResult) -> None:
        with self._lock:
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = _Entry(result=result.model_copy(deep=True), stored_at=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
