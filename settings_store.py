"""
settings_store.py
-----------------
Penyimpanan pengaturan runtime berbasis file JSON (settings.json).

Menyediakan:
- SettingsStore.get_setting(key, default)
- SettingsStore.set_setting(key, value)
- SettingsStore.all()

File selalu dibaca ulang setiap get_setting() supaya perubahan dari admin
langsung terpakai tanpa restart. Penulisan dilakukan utuh (seluruh file)
lewat file sementara + os.replace, jadi pembaca tidak pernah melihat file
setengah jadi.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict

logger = logging.getLogger(__name__)


class SettingsError(Exception):
    """Kesalahan saat menyimpan settings.json."""


class SettingsStore:
    def __init__(self, path: str) -> None:
        if not path:
            raise ValueError("path settings wajib diisi")
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            # File rusak dianggap kosong, sama seperti key yang belum ada
            logger.warning("[settings] gagal baca %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".settings-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise SettingsError(f"Gagal menulis {self.path}: {e}") from e

    def all(self) -> Dict[str, Any]:
        return self._read()

    def get_setting(self, key: str, default: Any = None) -> Any:
        """
        Ambil nilai setting. Key yang tidak ada -> default.
        """
        value = self._read().get(key)
        return default if value is None else value

    def set_setting(self, key: str, value: Any) -> None:
        """
        Simpan satu setting (read-modify-write seluruh file).
        """
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)
