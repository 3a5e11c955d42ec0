"""
cache_manager.py
----------------
Cache in-memory sederhana dengan TTL per entry, dipakai untuk menyimpan
hasil panggilan API / query yang mahal (GenieACS, MikroTik, data paket).

- get()/has() selalu cek kedaluwarsa (lazy expiry), jadi entry basi tidak
  pernah dikembalikan walaupun sweep belum jalan.
- Sweep berkala (cleanup) hanya untuk membebaskan memori.
- Waktu dalam detik.
"""

from __future__ import annotations

import logging
import re
import sys
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5 * 60  # 5 menit
CLEANUP_INTERVAL = 60  # 1 menit


def _pattern_to_regex(pattern: str) -> Optional["re.Pattern[str]"]:
    # '*' -> '.*', sisanya dipakai apa adanya (search, bukan full match).
    # Pattern yang bukan regex valid -> None (tidak cocok dengan key apapun)
    try:
        return re.compile(pattern.replace("*", ".*"))
    except re.error as e:
        logger.warning("Pattern cache tidak valid '%s': %s", pattern, e)
        return None


def is_valid_pattern(pattern: str) -> bool:
    try:
        re.compile(pattern.replace("*", ".*"))
    except re.error:
        return False
    return True


class CacheManager:
    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        cleanup_interval: float = CLEANUP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

        logger.info("CacheManager siap, default TTL %ss", default_ttl)

    @staticmethod
    def _is_expired(entry: Dict[str, Any], now: float) -> bool:
        return now > entry["expires_at"]

    # ------------------------------------------------------------------
    # Operasi dasar
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if ttl is None:
            ttl = self.default_ttl
        now = self._clock()
        with self._lock:
            self._cache[key] = {
                "value": value,
                "created_at": now,
                "expires_at": now + ttl,
            }
        logger.debug("Cache SET: %s (TTL: %ss)", key, ttl)

    def get(self, key: str) -> Any:
        """
        Ambil value, atau None kalau tidak ada / sudah kedaluwarsa.
        """
        now = self._clock()
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                logger.debug("Cache MISS: %s", key)
                return None
            if self._is_expired(entry, now):
                del self._cache[key]
                logger.debug("Cache EXPIRED: %s", key)
                return None
        logger.debug("Cache HIT: %s (age: %.1fs)", key, now - entry["created_at"])
        return entry["value"]

    def has(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return False
            if self._is_expired(entry, now):
                del self._cache[key]
                return False
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            deleted = self._cache.pop(key, None) is not None
        if deleted:
            logger.debug("Cache DELETE: %s", key)
        return deleted

    def clear(self) -> None:
        with self._lock:
            size = len(self._cache)
            self._cache.clear()
        logger.info("Cache CLEARED: %d entries removed", size)

    # ------------------------------------------------------------------
    # Pattern
    # ------------------------------------------------------------------

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Hapus semua key yang cocok dengan pattern ('*' sebagai wildcard).
        Mengembalikan jumlah entry yang dihapus.
        """
        regex = _pattern_to_regex(pattern)
        if regex is None:
            return 0
        with self._lock:
            keys = [k for k in self._cache if regex.search(k)]
            for k in keys:
                del self._cache[k]
        if keys:
            logger.info("Cache INVALIDATED: %d entries matching pattern: %s", len(keys), pattern)
        return len(keys)

    def get_entries_by_pattern(self, pattern: str) -> List[Dict[str, Any]]:
        regex = _pattern_to_regex(pattern)
        if regex is None:
            return []
        with self._lock:
            return [
                {"key": k, **entry}
                for k, entry in self._cache.items()
                if regex.search(k)
            ]

    # ------------------------------------------------------------------
    # Statistik & sweep
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        valid = 0
        expired = 0
        total_age = 0.0

        with self._lock:
            total = len(self._cache)
            for entry in self._cache.values():
                if self._is_expired(entry, now):
                    expired += 1
                else:
                    valid += 1
                    total_age += now - entry["created_at"]
            memory = self._memory_usage()

        return {
            "total_entries": total,
            "valid_entries": valid,
            "expired_entries": expired,
            "average_age": round(total_age / valid, 3) if valid else 0,
            "memory_usage": memory,
        }

    def _memory_usage(self) -> str:
        # Perkiraan kasar: ukuran dict + key + value, tidak rekursif
        size = sys.getsizeof(self._cache)
        for key, entry in self._cache.items():
            size += sys.getsizeof(key) + sys.getsizeof(entry) + sys.getsizeof(entry["value"])
        return f"{size / 1024 / 1024:.2f}MB"

    def cleanup(self) -> int:
        """
        Hapus semua entry yang sudah kedaluwarsa. Mengembalikan jumlahnya.
        """
        now = self._clock()
        with self._lock:
            keys = [k for k, e in self._cache.items() if self._is_expired(e, now)]
            for k in keys:
                del self._cache[k]
        if keys:
            logger.debug("Cache CLEANUP: %d expired entries removed", len(keys))
        return len(keys)

    def start_cleanup(self) -> None:
        """
        Jalankan sweep berkala di thread daemon. Aman dipanggil ulang.
        """
        if self._thread is not None and self._thread.is_alive():
            return

        stop_event = threading.Event()

        def _loop() -> None:
            while not stop_event.wait(self.cleanup_interval):
                try:
                    self.cleanup()
                except Exception:
                    logger.exception("Cache cleanup gagal")

        self._stop_event = stop_event
        self._thread = threading.Thread(target=_loop, name="cache-cleanup", daemon=True)
        self._thread.start()

    def stop_cleanup(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=1)
        self._thread = None
        self._stop_event = None

    # ------------------------------------------------------------------
    # Helper cache respon API
    # ------------------------------------------------------------------

    @staticmethod
    def generate_key(service: str, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """
        Key deterministik: urutan param tidak berpengaruh.

        Contoh:
          generate_key("genieacs", "devices", {"b": 1, "a": 2})
          -> "genieacs:devices:a=2&b=1"
        """
        params = params or {}
        param_string = "&".join(f"{k}={params[k]}" for k in sorted(params))
        if param_string:
            return f"{service}:{endpoint}:{param_string}"
        return f"{service}:{endpoint}"

    def cache_api_response(
        self,
        service: str,
        endpoint: str,
        params: Optional[Mapping[str, Any]],
        response: Any,
        ttl: Optional[float] = None,
    ) -> str:
        key = self.generate_key(service, endpoint, params)
        self.set(key, response, ttl)
        return key

    def get_cached_api_response(
        self, service: str, endpoint: str, params: Optional[Mapping[str, Any]] = None
    ) -> Any:
        return self.get(self.generate_key(service, endpoint, params))
