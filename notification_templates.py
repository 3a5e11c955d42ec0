"""
notification_templates.py
-------------------------
Template pesan notifikasi WhatsApp.

- DEFAULT_TEMPLATES: template bawaan (semua aktif).
- TemplateStore: memuat file JSON (di-merge di atas default), menyimpan
  ulang seluruh file setiap ada update dari admin.

Setiap template: {"title": str, "template": str, "enabled": bool}.
Placeholder memakai format {nama_variabel}.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class TemplateError(Exception):
    """Payload update template tidak valid."""


DEFAULT_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "invoice_created": {
        "title": "Tagihan Baru",
        "template": (
            "📋 *TAGIHAN BARU*\n\n"
            "Halo {customer_name},\n\n"
            "Tagihan bulanan Anda telah dibuat:\n\n"
            "📄 *No. Invoice:* {invoice_number}\n"
            "💰 *Jumlah:* Rp {amount}\n"
            "📅 *Jatuh Tempo:* {due_date}\n"
            "📦 *Paket:* {package_name} ({package_speed})\n"
            "📝 *Catatan:* {notes}\n\n"
            "Silakan lakukan pembayaran sebelum tanggal jatuh tempo untuk menghindari "
            "denda keterlambatan.\n\n"
            "Terima kasih atas kepercayaan Anda."
        ),
        "enabled": True,
    },
    "due_date_reminder": {
        "title": "Peringatan Jatuh Tempo",
        "template": (
            "⚠️ *PERINGATAN JATUH TEMPO*\n\n"
            "Halo {customer_name},\n\n"
            "Tagihan Anda akan jatuh tempo dalam {days_remaining} hari:\n\n"
            "📄 *No. Invoice:* {invoice_number}\n"
            "💰 *Jumlah:* Rp {amount}\n"
            "📅 *Jatuh Tempo:* {due_date}\n"
            "📦 *Paket:* {package_name} ({package_speed})\n\n"
            "Silakan lakukan pembayaran segera untuk menghindari denda keterlambatan.\n\n"
            "Terima kasih."
        ),
        "enabled": True,
    },
    "payment_received": {
        "title": "Pembayaran Diterima",
        "template": (
            "✅ *PEMBAYARAN DITERIMA*\n\n"
            "Halo {customer_name},\n\n"
            "Terima kasih! Pembayaran Anda telah kami terima:\n\n"
            "📄 *No. Invoice:* {invoice_number}\n"
            "💰 *Jumlah:* Rp {amount}\n"
            "💳 *Metode Pembayaran:* {payment_method}\n"
            "📅 *Tanggal Pembayaran:* {payment_date}\n"
            "🔢 *No. Referensi:* {reference_number}\n\n"
            "Layanan internet Anda akan tetap aktif. Terima kasih atas kepercayaan Anda."
        ),
        "enabled": True,
    },
    "service_disruption": {
        "title": "Gangguan Layanan",
        "template": (
            "🚨 *GANGGUAN LAYANAN*\n\n"
            "Halo Pelanggan Setia,\n\n"
            "Kami informasikan bahwa sedang terjadi gangguan pada jaringan internet:\n\n"
            "📡 *Jenis Gangguan:* {disruption_type}\n"
            "📍 *Area Terdampak:* {affected_area}\n"
            "⏰ *Perkiraan Selesai:* {estimated_resolution}\n"
            "📞 *Hotline:* {support_phone}\n\n"
            "Kami sedang bekerja untuk mengatasi masalah ini secepat mungkin. "
            "Mohon maaf atas ketidaknyamanannya."
        ),
        "enabled": True,
    },
    "service_announcement": {
        "title": "Pengumuman Layanan",
        "template": (
            "📢 *PENGUMUMAN LAYANAN*\n\n"
            "Halo Pelanggan Setia,\n\n"
            "{announcement_content}\n\n"
            "Terima kasih atas perhatian Anda."
        ),
        "enabled": True,
    },
    "service_suspension": {
        "title": "Layanan Diisolir",
        "template": (
            "⛔ *LAYANAN DIISOLIR*\n\n"
            "Halo {customer_name},\n\n"
            "Layanan internet Anda untuk sementara dinonaktifkan.\n\n"
            "📝 *Alasan:* {reason}\n\n"
            "Silakan selesaikan pembayaran agar layanan aktif kembali. "
            "Hubungi {support_phone} jika ada pertanyaan."
        ),
        "enabled": True,
    },
    "service_restoration": {
        "title": "Layanan Aktif Kembali",
        "template": (
            "✅ *LAYANAN AKTIF KEMBALI*\n\n"
            "Halo {customer_name},\n\n"
            "Layanan internet Anda telah diaktifkan kembali.\n\n"
            "📦 *Paket:* {package_name} ({package_speed})\n"
            "📝 *Keterangan:* {reason}\n\n"
            "Terima kasih atas pembayaran Anda."
        ),
        "enabled": True,
    },
    "welcome_message": {
        "title": "Selamat Datang",
        "template": (
            "👋 *SELAMAT DATANG*\n\n"
            "Halo {customer_name},\n\n"
            "Terima kasih telah berlangganan layanan internet kami.\n\n"
            "📦 *Paket:* {package_name} ({package_speed})\n"
            "🔑 *Password WiFi:* {wifi_password}\n"
            "📞 *Bantuan:* {support_phone}\n\n"
            "Selamat menikmati layanan kami."
        ),
        "enabled": True,
    },
    "installation_job_assigned": {
        "title": "Tugas Instalasi Baru",
        "template": (
            "🔧 *TUGAS INSTALASI BARU*\n\n"
            "Halo {technician_name},\n\n"
            "Anda ditugaskan untuk instalasi berikut:\n\n"
            "🔢 *No. Job:* {job_number}\n"
            "👤 *Pelanggan:* {customer_name}\n"
            "📞 *Telepon:* {customer_phone}\n"
            "📍 *Alamat:* {customer_address}\n"
            "📦 *Paket:* {package_name} (Rp {package_price})\n"
            "📅 *Jadwal:* {installation_date} {installation_time}\n"
            "📝 *Catatan:* {notes}\n\n"
            "Harap konfirmasi dan laksanakan sesuai jadwal."
        ),
        "enabled": True,
    },
    "installation_status_update": {
        "title": "Update Status Instalasi",
        "template": (
            "🔄 *UPDATE STATUS INSTALASI*\n\n"
            "🔢 *No. Job:* {job_number}\n"
            "👤 *Pelanggan:* {customer_name}\n"
            "👷 *Teknisi:* {technician_name}\n"
            "📌 *Status:* {status}\n"
            "📝 *Catatan:* {notes}\n"
            "⏰ *Waktu:* {update_time}"
        ),
        "enabled": True,
    },
    "installation_completed": {
        "title": "Instalasi Selesai",
        "template": (
            "🎉 *INSTALASI SELESAI*\n\n"
            "🔢 *No. Job:* {job_number}\n"
            "👤 *Pelanggan:* {customer_name}\n"
            "📍 *Alamat:* {customer_address}\n"
            "👷 *Teknisi:* {technician_name}\n"
            "📝 *Catatan:* {notes}\n"
            "⏰ *Selesai:* {completion_time}\n\n"
            "Terima kasih atas kerja kerasnya."
        ),
        "enabled": True,
    },
}

_ALLOWED_FIELDS = ("title", "template", "enabled")


class TemplateStore:
    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._templates: Dict[str, Dict[str, Any]] = {}
        self.reload()

    def reload(self) -> None:
        """
        Muat ulang: default dulu, lalu ditimpa isi file JSON (jika ada).
        """
        templates = copy.deepcopy(DEFAULT_TEMPLATES)
        for key, saved in self._read_file().items():
            if not isinstance(saved, dict):
                continue
            merged = dict(templates.get(key, {"title": key, "template": "", "enabled": True}))
            merged.update({f: saved[f] for f in _ALLOWED_FIELDS if f in saved})
            templates[key] = merged
        with self._lock:
            self._templates = templates

    def _read_file(self) -> Dict[str, Any]:
        if not self.path or not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.error("[templates] gagal baca %s, pakai default: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.error("[templates] format %s bukan object, pakai default", self.path)
            return {}
        logger.info("[templates] %d template dimuat dari %s", len(data), self.path)
        return data

    def save(self) -> None:
        """
        Tulis ulang seluruh file template. Direktori dibuat kalau belum ada.
        """
        with self._lock:
            snapshot = copy.deepcopy(self._templates)
        self._write(snapshot)

    def _write(self, templates: Dict[str, Dict[str, Any]]) -> None:
        if not self.path:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".templates-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(templates, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    # ------------------------------------------------------------------
    # Akses
    # ------------------------------------------------------------------

    def get_templates(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._templates)

    def get_template(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            template = self._templates.get(key)
            return dict(template) if template is not None else None

    def is_template_enabled(self, key: str) -> bool:
        template = self.get_template(key)
        return bool(template) and template.get("enabled", True) is not False

    # ------------------------------------------------------------------
    # Update dari admin
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(key: str, data: Any) -> None:
        if not isinstance(data, Mapping):
            raise TemplateError(f"Template {key} harus berupa object")
        if "template" in data and not isinstance(data["template"], str):
            raise TemplateError(f"Isi template {key} harus string")

    def update_template(self, key: str, data: Mapping[str, Any]) -> bool:
        """
        Update satu template yang sudah ada lalu simpan.
        Key tidak dikenal -> False.
        """
        return self.update_templates({key: data}) == 1

    def update_templates(self, templates: Mapping[str, Mapping[str, Any]]) -> int:
        """
        Update banyak template sekaligus (semua atau tidak sama sekali).

        Semua entry divalidasi dulu, perubahan diterapkan ke salinan, salinan
        ditulis ke file, baru kemudian dipakai. TemplateError / OSError ->
        template di memori dan di file tetap yang lama.
        Mengembalikan jumlah template yang ter-update.
        """
        if not isinstance(templates, Mapping):
            raise TemplateError("Data template harus berupa object")
        for key, data in templates.items():
            self._validate(key, data)

        with self._lock:
            staged = copy.deepcopy(self._templates)
            count = 0
            for key, data in templates.items():
                current = staged.get(key)
                if current is None:
                    continue
                for field in _ALLOWED_FIELDS:
                    if field in data:
                        current[field] = bool(data[field]) if field == "enabled" else data[field]
                count += 1

            if not count:
                return 0
            self._write(staged)
            self._templates = staged

        logger.info("[templates] %d template disimpan", count)
        return count
