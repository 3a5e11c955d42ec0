"""
whatsapp_notifications.py
-------------------------
Pipeline notifikasi WhatsApp:

- helper format (nomor HP, template, rupiah, tanggal)
- RateLimitSettings: dibaca segar dari settings.json setiap kirim
- DailyQuota: counter pesan harian per tanggal (YYYY-MM-DD)
- WhatsAppNotifier:
    * send_notification()              -> kirim 1 pesan (header + footer)
    * send_notification_with_retry()   -> retry dengan jeda 2s, 4s, 6s, ...
    * send_bulk_notifications()        -> batch + jeda + kuota harian
    * send_to_configured_groups()      -> broadcast ke grup teknisi
    * send_*_notification()            -> pengirim per event domain

Semua error transport ditangkap per pesan dan dikembalikan sebagai dict
{"success": False, "error": "..."}; tidak pernah dilempar ke pemanggil.
"""

from __future__ import annotations

import logging
import math
import os
import re
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

import pytz

from wa_client import ImagePayload, Payload, TextPayload

logger = logging.getLogger(__name__)

ERROR_NOT_CONNECTED = "WhatsApp not connected"
ERROR_DAILY_LIMIT = "Daily message limit reached"
ERROR_MISSING_DATA = "Missing data"
ERROR_TEMPLATE_NOT_FOUND = "Template not found"
REASON_TEMPLATE_DISABLED = "Template disabled"

# Error yang tidak ada gunanya di-retry
_NON_RETRYABLE = (ERROR_NOT_CONNECTED, ERROR_DAILY_LIMIT)

RETRY_BASE_DELAY = 2  # detik
GROUP_MESSAGE_DELAY = 1  # detik

DEFAULT_COMPANY_HEADER = "📱 GEMBOK BILLING 📱\n\n"
DEFAULT_FOOTER_INFO = "Powered by GEMBOK Billing"
FOOTER_SEPARATOR = "\n\n" + "━" * 40 + "\n\n"
DEFAULT_SUPPORT_PHONE = "081947215703"

RATE_LIMIT_SETTING = "whatsapp_rate_limit"
DAILY_COUNTS_SETTING = "whatsapp_daily_counts"
QUOTA_RETENTION_DAYS = 7

BULAN = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]

STATUS_LABELS = {
    "scheduled": "Terjadwal",
    "assigned": "Ditugaskan",
    "in_progress": "Sedang Dikerjakan",
    "completed": "Selesai",
    "cancelled": "Dibatalkan",
}


# -----------------------------------------------------------------------------
# Helper format
# -----------------------------------------------------------------------------

def format_phone_number(number: Any) -> str:
    """
    Normalisasi nomor ke format 62xxxx.

    Contoh:
      format_phone_number("0812-3456-7890") -> "6281234567890"
      format_phone_number("+62 812 3456")   -> "628123456"
    """
    cleaned = re.sub(r"\D", "", str(number or ""))
    if cleaned.startswith("0"):
        cleaned = "62" + cleaned[1:]
    if not cleaned.startswith("62"):
        cleaned = "62" + cleaned
    return cleaned


def replace_template_variables(template: str, data: Mapping[str, Any]) -> str:
    """
    Ganti setiap {key} dengan nilai data[key].

    - key ada tapi nilainya falsy (None, "", 0) -> diganti string kosong
    - key tidak ada di data -> placeholder dibiarkan apa adanya
    """
    message = template
    for key, value in data.items():
        message = message.replace("{" + str(key) + "}", str(value) if value else "")
    return message


def format_currency(amount: Any) -> str:
    """
    Format angka gaya Indonesia: 100000 -> '100.000', 1500.5 -> '1.500,50'.
    """
    try:
        value = Decimal(str(amount))
    except (ArithmeticError, ValueError):
        return str(amount)
    if not value.is_finite():
        return str(amount)
    if value == value.to_integral_value():
        return f"{int(value):,}".replace(",", ".")
    text = f"{value:,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def _to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_date(value: Any) -> str:
    """
    Tanggal panjang gaya Indonesia: '2024-01-15' -> '15 Januari 2024'.
    Nilai yang tidak bisa dibaca dikembalikan apa adanya.
    """
    d = _to_date(value)
    if d is None:
        return "" if value is None else str(value)
    return f"{d.day} {BULAN[d.month - 1]} {d.year}"


def _resolve_destination(target: str) -> str:
    # id grup / JID lengkap dipakai apa adanya
    if "@" in str(target):
        return str(target)
    return format_phone_number(target)


# -----------------------------------------------------------------------------
# Rate limit & kuota harian
# -----------------------------------------------------------------------------

DEFAULT_RATE_LIMIT: Dict[str, Any] = {
    "maxMessagesPerBatch": 10,
    "delayBetweenBatches": 30,
    "delayBetweenMessages": 2,
    "maxRetries": 2,
    "dailyMessageLimit": 0,  # 0 = tanpa batas
    "enabled": True,
}


@dataclass(frozen=True)
class RateLimitSettings:
    max_messages_per_batch: int = 10
    delay_between_batches: float = 30
    delay_between_messages: float = 2
    max_retries: int = 2
    daily_message_limit: int = 0
    enabled: bool = True

    @classmethod
    def from_settings(cls, raw: Optional[Mapping[str, Any]]) -> "RateLimitSettings":
        merged = dict(DEFAULT_RATE_LIMIT)
        if isinstance(raw, Mapping):
            merged.update({k: v for k, v in raw.items() if v is not None})
        enabled = merged["enabled"]
        if isinstance(enabled, str):
            # nilai dari form HTML
            enabled = enabled.strip().lower() in ("1", "true", "yes", "on")
        for field in ("delayBetweenBatches", "delayBetweenMessages"):
            if not math.isfinite(float(merged[field])):
                raise ValueError(f"{field} harus angka terbatas")
        return cls(
            max_messages_per_batch=max(1, int(merged["maxMessagesPerBatch"])),
            delay_between_batches=max(0.0, float(merged["delayBetweenBatches"])),
            delay_between_messages=max(0.0, float(merged["delayBetweenMessages"])),
            max_retries=max(0, int(merged["maxRetries"])),
            daily_message_limit=max(0, int(merged["dailyMessageLimit"])),
            enabled=bool(enabled),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxMessagesPerBatch": self.max_messages_per_batch,
            "delayBetweenBatches": self.delay_between_batches,
            "delayBetweenMessages": self.delay_between_messages,
            "maxRetries": self.max_retries,
            "dailyMessageLimit": self.daily_message_limit,
            "enabled": self.enabled,
        }


class DailyQuota:
    """
    Counter pesan per tanggal, disimpan di settings store sebagai
    {"YYYY-MM-DD": jumlah}. Tanggal lebih lama dari retention_days dibuang
    setiap kali menulis.

    reserve() = cek + tambah dalam satu lock, jadi dua bulk send yang jalan
    bersamaan di proses yang sama tidak bisa melewati limit.
    """

    def __init__(self, settings, today: Callable[[], date], retention_days: int = QUOTA_RETENTION_DAYS) -> None:
        self.settings = settings
        self.today = today
        self.retention_days = retention_days
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, int]:
        counts = self.settings.get_setting(DAILY_COUNTS_SETTING, {})
        return dict(counts) if isinstance(counts, Mapping) else {}

    def _store(self, counts: Dict[str, int]) -> None:
        cutoff = (self.today() - timedelta(days=self.retention_days)).isoformat()
        pruned = {k: v for k, v in counts.items() if k >= cutoff}
        self.settings.set_setting(DAILY_COUNTS_SETTING, pruned)

    def _key(self) -> str:
        return self.today().isoformat()

    def count_today(self) -> int:
        return int(self._load().get(self._key(), 0))

    def is_exhausted(self, limit: int) -> bool:
        return limit > 0 and self.count_today() >= limit

    def reserve(self, limit: int) -> bool:
        with self._lock:
            counts = self._load()
            key = self._key()
            current = int(counts.get(key, 0))
            if limit > 0 and current >= limit:
                return False
            counts[key] = current + 1
            self._store(counts)
            return True

    def release(self) -> None:
        with self._lock:
            counts = self._load()
            key = self._key()
            current = int(counts.get(key, 0))
            if current > 0:
                counts[key] = current - 1
                self._store(counts)

    def increment(self) -> None:
        with self._lock:
            counts = self._load()
            key = self._key()
            counts[key] = int(counts.get(key, 0)) + 1
            self._store(counts)


# -----------------------------------------------------------------------------
# Notifier
# -----------------------------------------------------------------------------

@dataclass
class NotificationJob:
    phone_number: str
    message: str
    image_path: Optional[str] = None


JobLike = Union[NotificationJob, Mapping[str, Any]]


def _as_job(item: JobLike) -> NotificationJob:
    if isinstance(item, NotificationJob):
        return item
    return NotificationJob(
        phone_number=item.get("phone_number") or item.get("phone") or "",
        message=item.get("message") or "",
        image_path=item.get("image_path"),
    )


def _empty_summary() -> Dict[str, Any]:
    return {"success": 0, "failed": 0, "skipped": 0, "errors": []}


class WhatsAppNotifier:
    def __init__(
        self,
        settings,
        templates,
        billing=None,
        *,
        transport=None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Optional[Callable[[], datetime]] = None,
        timezone: str = "Asia/Jakarta",
    ) -> None:
        if settings is None or templates is None:
            raise ValueError("settings dan templates wajib diisi")

        self.settings = settings
        self.templates = templates
        self.billing = billing
        self.transport = transport
        self.sleep = sleep

        if clock is None:
            tz = pytz.timezone(timezone)

            def clock() -> datetime:
                return datetime.now(tz)

        self.clock = clock
        self.quota = DailyQuota(settings, today=lambda: self.clock().date())

    def set_transport(self, transport) -> None:
        self.transport = transport

    @property
    def is_connected(self) -> bool:
        return self.transport is not None

    def rate_limit_settings(self) -> RateLimitSettings:
        raw = self.settings.get_setting(RATE_LIMIT_SETTING, {})
        try:
            return RateLimitSettings.from_settings(raw)
        except (TypeError, ValueError, OverflowError) as e:
            # settings.json diedit manual dengan nilai rusak
            logger.error("Rate limit di settings tidak valid (%s), pakai default", e)
            return RateLimitSettings.from_settings(None)

    def quota_status(self) -> Dict[str, Any]:
        rl = self.rate_limit_settings()
        return {
            "date": self.clock().date().isoformat(),
            "count": self.quota.count_today(),
            "limit": rl.daily_message_limit,
            "enabled": rl.enabled,
        }

    def _build_message(self, message: str) -> str:
        header = self.settings.get_setting("company_header", DEFAULT_COMPANY_HEADER)
        footer = FOOTER_SEPARATOR + self.settings.get_setting("footer_info", DEFAULT_FOOTER_INFO)
        return f"{header}{message}{footer}"

    # ------------------------------------------------------------------
    # Kirim 1 pesan
    # ------------------------------------------------------------------

    def send_notification(
        self, phone_number: str, message: str, image_path: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Kirim satu notifikasi (header + pesan + footer).

        Urutan:
        1. transport belum dipasang -> gagal 'WhatsApp not connected'
        2. rate limit aktif & kuota harian habis -> gagal 'Daily message limit reached'
        3. kalau image_path ada & filenya ada -> coba kirim gambar + caption,
           gagal -> lanjut kirim teks biasa
        4. sukses -> dihitung ke kuota harian

        :return: {"success": True, "with_image": bool} atau {"success": False, "error": str}
        """
        if self.transport is None:
            logger.error("WhatsApp transport belum dipasang")
            return {"success": False, "error": ERROR_NOT_CONNECTED}

        rl = self.rate_limit_settings()
        reserved = False
        if rl.enabled:
            if not self.quota.reserve(rl.daily_message_limit):
                logger.warning("Limit pesan harian (%d) tercapai, skip %s", rl.daily_message_limit, phone_number)
                return {"success": False, "error": ERROR_DAILY_LIMIT}
            reserved = True

        try:
            destination = _resolve_destination(phone_number)
            full_message = self._build_message(message)
            with_image = self._deliver(destination, full_message, image_path)
        except Exception as e:
            if reserved:
                self.quota.release()
            logger.error("Gagal kirim notifikasi WhatsApp ke %s: %s", phone_number, e)
            return {"success": False, "error": str(e)}

        if not reserved:
            self.quota.increment()

        logger.info("Notifikasi WhatsApp terkirim ke %s%s", phone_number, " (dengan gambar)" if with_image else "")
        return {"success": True, "with_image": with_image}

    def _resolve_payload(self, text: str, image_path: Optional[str]) -> Payload:
        if image_path and os.path.isfile(image_path):
            return ImagePayload(path=image_path, caption=text)
        if image_path:
            logger.warning("File gambar %s tidak ditemukan, kirim teks saja", image_path)
        return TextPayload(text=text)

    def _deliver(self, destination: str, text: str, image_path: Optional[str]) -> bool:
        payload = self._resolve_payload(text, image_path)
        if isinstance(payload, ImagePayload):
            try:
                self.transport.send_message(destination, payload)
                return True
            except Exception as e:
                logger.warning("Kirim gambar ke %s gagal, fallback ke teks: %s", destination, e)
        self.transport.send_message(destination, TextPayload(text=text))
        return False

    def send_notification_with_retry(
        self,
        phone_number: str,
        message: str,
        image_path: Optional[str] = None,
        retry_count: int = 0,
    ) -> Dict[str, Any]:
        """
        Kirim dengan retry. Jeda sebelum percobaan ke-(n+1) = 2 * (n + 1) detik
        (linear). Total percobaan maksimal = maxRetries + 1.
        """
        max_retries = self.rate_limit_settings().max_retries
        while True:
            result = self.send_notification(phone_number, message, image_path)
            if result.get("success") or result.get("error") in _NON_RETRYABLE:
                return result
            if retry_count >= max_retries:
                return result

            delay = RETRY_BASE_DELAY * (retry_count + 1)
            logger.info(
                "Retry %d/%d ke %s dalam %ss: %s",
                retry_count + 1, max_retries, phone_number, delay, result.get("error"),
            )
            self.sleep(delay)
            retry_count += 1

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def send_bulk_notifications(self, notifications: Iterable[JobLike]) -> Dict[str, Any]:
        """
        Kirim banyak notifikasi dengan batas rate.

        - rate limit nonaktif -> semua langsung dikirim tanpa jeda
        - aktif -> dibagi per batch maxMessagesPerBatch, jeda antar pesan
          (bukan setelah pesan terakhir batch) dan antar batch (bukan setelah
          batch terakhir)
        - kuota harian habis (sebelum batch atau di tengah batch) -> semua
          sisa pesan dihitung skipped dan proses berhenti

        :return: {"success": int, "failed": int, "skipped": int, "errors": [str]}
        """
        jobs = [_as_job(n) for n in notifications]
        summary = _empty_summary()
        if not jobs:
            return summary

        if self.transport is None:
            summary["failed"] = len(jobs)
            summary["errors"].append(ERROR_NOT_CONNECTED)
            return summary

        rl = self.rate_limit_settings()
        if not rl.enabled:
            return self._send_bulk_unthrottled(jobs)

        batch_size = rl.max_messages_per_batch
        batches = [jobs[i:i + batch_size] for i in range(0, len(jobs), batch_size)]
        logger.info("Bulk send %d pesan dalam %d batch", len(jobs), len(batches))

        processed = 0
        for batch_index, batch in enumerate(batches):
            if self.quota.is_exhausted(rl.daily_message_limit):
                summary["skipped"] += len(jobs) - processed
                logger.warning("Kuota harian habis, %d pesan di-skip", len(jobs) - processed)
                return summary

            for msg_index, job in enumerate(batch):
                if self.quota.is_exhausted(rl.daily_message_limit):
                    summary["skipped"] += len(jobs) - processed
                    logger.warning("Kuota harian habis di tengah batch, %d pesan di-skip", len(jobs) - processed)
                    return summary

                try:
                    result = self.send_notification_with_retry(job.phone_number, job.message, job.image_path)
                except Exception as e:
                    result = {"success": False, "error": str(e)}

                if result.get("error") == ERROR_DAILY_LIMIT:
                    summary["skipped"] += len(jobs) - processed
                    return summary

                processed += 1
                self._tally(summary, job, result)

                if msg_index < len(batch) - 1:
                    self.sleep(rl.delay_between_messages)

            if batch_index < len(batches) - 1:
                logger.info("Batch %d/%d selesai, jeda %ss", batch_index + 1, len(batches), rl.delay_between_batches)
                self.sleep(rl.delay_between_batches)

        return summary

    def _send_bulk_unthrottled(self, jobs: List[NotificationJob]) -> Dict[str, Any]:
        summary = _empty_summary()
        for job in jobs:
            try:
                result = self.send_notification(job.phone_number, job.message, job.image_path)
            except Exception as e:
                result = {"success": False, "error": str(e)}
            self._tally(summary, job, result)
        return summary

    @staticmethod
    def _tally(summary: Dict[str, Any], job: NotificationJob, result: Mapping[str, Any]) -> None:
        if result.get("success"):
            summary["success"] += 1
        else:
            summary["failed"] += 1
            summary["errors"].append(f"{job.phone_number}: {result.get('error')}")

    # ------------------------------------------------------------------
    # Grup
    # ------------------------------------------------------------------

    def configured_groups(self) -> List[str]:
        groups: List[str] = []
        raw = self.settings.get_setting("whatsapp_groups", [])
        if isinstance(raw, str):
            raw = [g.strip() for g in raw.split(",")]
        for group in list(raw or []) + [self.settings.get_setting("technician_group_id", "")]:
            if group and group not in groups:
                groups.append(group)
        return groups

    def send_to_configured_groups(self, message: str) -> Dict[str, Any]:
        """
        Kirim pesan jadi (tanpa substitusi template) ke semua grup yang
        dikonfigurasi, jeda 1 detik antar grup. Gagal di satu grup tidak
        menghentikan grup lain.
        """
        groups = self.configured_groups()
        summary = {"success": True, "sent": 0, "failed": 0, "total": len(groups), "errors": []}

        for index, group_id in enumerate(groups):
            try:
                result = self.send_notification(group_id, message)
            except Exception as e:
                result = {"success": False, "error": str(e)}

            if result.get("success"):
                summary["sent"] += 1
            else:
                summary["failed"] += 1
                summary["errors"].append(f"{group_id}: {result.get('error')}")

            if index < len(groups) - 1:
                self.sleep(GROUP_MESSAGE_DELAY)

        return summary

    # ------------------------------------------------------------------
    # Template
    # ------------------------------------------------------------------

    def _render(self, template_key: str, data: Mapping[str, Any]) -> Optional[str]:
        template = self.templates.get_template(template_key)
        if template is None:
            return None
        return replace_template_variables(template.get("template", ""), data)

    @staticmethod
    def _disabled() -> Dict[str, Any]:
        return {"success": True, "skipped": True, "reason": REASON_TEMPLATE_DISABLED}

    def _send_template(self, template_key: str, phone_number: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        message = self._render(template_key, data)
        if message is None:
            return {"success": False, "error": ERROR_TEMPLATE_NOT_FOUND}
        return self.send_notification(phone_number, message)

    def _broadcast_template(self, template_key: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        message = self._render(template_key, data)
        if message is None:
            return {"success": False, "error": ERROR_TEMPLATE_NOT_FOUND}

        customers = self.billing.get_customers()
        recipients = [c for c in customers if c.get("status") == "active" and c.get("phone")]
        summary = self.send_bulk_notifications(
            NotificationJob(phone_number=c["phone"], message=message) for c in recipients
        )
        return {
            "success": True,
            "sent": summary["success"],
            "failed": summary["failed"],
            "skipped": summary["skipped"],
            "total": len(recipients),
            "errors": summary["errors"],
        }

    def _support_phone(self) -> str:
        return self.settings.get_setting("support_phone", DEFAULT_SUPPORT_PHONE)

    def _now_text(self) -> str:
        return self.clock().strftime("%d/%m/%Y %H:%M")

    # ------------------------------------------------------------------
    # Pengirim per event
    # ------------------------------------------------------------------

    def send_invoice_created_notification(self, customer_id, invoice_id) -> Dict[str, Any]:
        if not self.templates.is_template_enabled("invoice_created"):
            return self._disabled()
        try:
            customer = self.billing.get_customer_by_id(customer_id)
            invoice = self.billing.get_invoice_by_id(invoice_id)
            package = self.billing.get_package_by_id(invoice["package_id"]) if invoice else None

            if not customer or not invoice or not package or not customer.get("phone"):
                logger.error("Data tidak lengkap untuk notifikasi invoice %s", invoice_id)
                return {"success": False, "error": ERROR_MISSING_DATA}

            data = {
                "customer_name": customer.get("name"),
                "invoice_number": invoice.get("invoice_number"),
                "amount": format_currency(invoice.get("amount")),
                "due_date": format_date(invoice.get("due_date")),
                "package_name": package.get("name"),
                "package_speed": package.get("speed"),
                "notes": invoice.get("notes") or "Tagihan bulanan",
            }
            return self._send_template("invoice_created", customer["phone"], data)
        except Exception as e:
            logger.error("Error kirim notifikasi invoice baru: %s", e)
            return {"success": False, "error": str(e)}

    def send_due_date_reminder(self, invoice_id) -> Dict[str, Any]:
        if not self.templates.is_template_enabled("due_date_reminder"):
            return self._disabled()
        try:
            invoice = self.billing.get_invoice_by_id(invoice_id)
            customer = self.billing.get_customer_by_id(invoice["customer_id"]) if invoice else None
            package = self.billing.get_package_by_id(invoice["package_id"]) if invoice else None
            due = _to_date(invoice.get("due_date")) if invoice else None

            if not customer or not invoice or not package or not due or not customer.get("phone"):
                logger.error("Data tidak lengkap untuk pengingat jatuh tempo %s", invoice_id)
                return {"success": False, "error": ERROR_MISSING_DATA}

            days_remaining = (due - self.clock().date()).days
            data = {
                "customer_name": customer.get("name"),
                "invoice_number": invoice.get("invoice_number"),
                "amount": format_currency(invoice.get("amount")),
                "due_date": format_date(due),
                "days_remaining": str(days_remaining),
                "package_name": package.get("name"),
                "package_speed": package.get("speed"),
            }
            return self._send_template("due_date_reminder", customer["phone"], data)
        except Exception as e:
            logger.error("Error kirim pengingat jatuh tempo: %s", e)
            return {"success": False, "error": str(e)}

    def send_payment_received_notification(self, payment_id) -> Dict[str, Any]:
        if not self.templates.is_template_enabled("payment_received"):
            return self._disabled()
        try:
            payment = self.billing.get_payment_by_id(payment_id)
            invoice = self.billing.get_invoice_by_id(payment["invoice_id"]) if payment else None
            customer = self.billing.get_customer_by_id(invoice["customer_id"]) if invoice else None

            if not payment or not invoice or not customer or not customer.get("phone"):
                logger.error("Data tidak lengkap untuk notifikasi pembayaran %s", payment_id)
                return {"success": False, "error": ERROR_MISSING_DATA}

            data = {
                "customer_name": customer.get("name"),
                "invoice_number": invoice.get("invoice_number"),
                "amount": format_currency(payment.get("amount")),
                "payment_method": payment.get("payment_method"),
                "payment_date": format_date(payment.get("payment_date")),
                "reference_number": payment.get("reference_number") or "N/A",
            }
            return self._send_template("payment_received", customer["phone"], data)
        except Exception as e:
            logger.error("Error kirim notifikasi pembayaran: %s", e)
            return {"success": False, "error": str(e)}

    def send_service_disruption_notification(self, disruption: Mapping[str, Any]) -> Dict[str, Any]:
        if not self.templates.is_template_enabled("service_disruption"):
            return self._disabled()
        try:
            data = {
                "disruption_type": disruption.get("type") or "Gangguan Jaringan",
                "affected_area": disruption.get("area") or "Seluruh Area",
                "estimated_resolution": disruption.get("estimated_time") or "Sedang dalam penanganan",
                "support_phone": self._support_phone(),
            }
            return self._broadcast_template("service_disruption", data)
        except Exception as e:
            logger.error("Error kirim notifikasi gangguan: %s", e)
            return {"success": False, "error": str(e)}

    def send_service_announcement(self, announcement: Mapping[str, Any]) -> Dict[str, Any]:
        if not self.templates.is_template_enabled("service_announcement"):
            return self._disabled()
        try:
            data = {"announcement_content": announcement.get("content") or "Tidak ada konten pengumuman"}
            return self._broadcast_template("service_announcement", data)
        except Exception as e:
            logger.error("Error kirim pengumuman: %s", e)
            return {"success": False, "error": str(e)}

    def send_service_suspension_notification(self, customer: Optional[Mapping[str, Any]], reason: str) -> Dict[str, Any]:
        if not self.templates.is_template_enabled("service_suspension"):
            return self._disabled()
        if not customer or not customer.get("phone"):
            return {"success": False, "error": ERROR_MISSING_DATA}
        data = {
            "customer_name": customer.get("name"),
            "reason": reason or "Tagihan belum dibayar",
            "support_phone": self._support_phone(),
        }
        return self._send_template("service_suspension", customer["phone"], data)

    def send_service_restoration_notification(
        self, customer: Optional[Mapping[str, Any]], reason: Optional[str] = None
    ) -> Dict[str, Any]:
        if not self.templates.is_template_enabled("service_restoration"):
            return self._disabled()
        if not customer or not customer.get("phone"):
            return {"success": False, "error": ERROR_MISSING_DATA}
        try:
            package = None
            if customer.get("package_id") is not None:
                package = self.billing.get_package_by_id(customer["package_id"])
            package = package or {}
            data = {
                "customer_name": customer.get("name"),
                "package_name": package.get("name") or "-",
                "package_speed": package.get("speed") or "-",
                "reason": reason or "Pembayaran telah diterima",
            }
            return self._send_template("service_restoration", customer["phone"], data)
        except Exception as e:
            logger.error("Error kirim notifikasi pemulihan layanan: %s", e)
            return {"success": False, "error": str(e)}

    def send_welcome_message(self, customer: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        if not self.templates.is_template_enabled("welcome_message"):
            return self._disabled()
        if not customer or not customer.get("phone"):
            return {"success": False, "error": ERROR_MISSING_DATA}
        try:
            package = None
            if customer.get("package_id") is not None:
                package = self.billing.get_package_by_id(customer["package_id"])
            if not package:
                return {"success": False, "error": ERROR_MISSING_DATA}
            data = {
                "customer_name": customer.get("name"),
                "package_name": package.get("name"),
                "package_speed": package.get("speed"),
                "wifi_password": customer.get("wifi_password") or "-",
                "support_phone": self._support_phone(),
            }
            return self._send_template("welcome_message", customer["phone"], data)
        except Exception as e:
            logger.error("Error kirim welcome message: %s", e)
            return {"success": False, "error": str(e)}

    def send_installation_job_notification(self, technician, job, customer, package) -> Dict[str, Any]:
        """
        Kirim tugas instalasi ke teknisi, lalu salinannya ke grup teknisi.
        """
        if not self.templates.is_template_enabled("installation_job_assigned"):
            return self._disabled()
        if not technician or not technician.get("phone") or not job or not customer:
            return {"success": False, "error": ERROR_MISSING_DATA}

        package = package or {}
        data = {
            "technician_name": technician.get("name"),
            "job_number": job.get("job_number"),
            "customer_name": customer.get("name"),
            "customer_phone": customer.get("phone") or "-",
            "customer_address": customer.get("address") or "-",
            "package_name": package.get("name") or "-",
            "package_price": format_currency(package.get("price") or 0),
            "installation_date": format_date(job.get("installation_date")) or "-",
            "installation_time": job.get("installation_time") or "",
            "notes": job.get("notes") or "-",
        }
        message = self._render("installation_job_assigned", data)
        if message is None:
            return {"success": False, "error": ERROR_TEMPLATE_NOT_FOUND}

        result = self.send_notification(technician["phone"], message)
        result["groups"] = self.send_to_configured_groups(message)
        return result

    def send_installation_status_update_notification(
        self, technician, job, customer, status: str, notes: Optional[str] = None
    ) -> Dict[str, Any]:
        if not self.templates.is_template_enabled("installation_status_update"):
            return self._disabled()
        if not technician or not technician.get("phone") or not job or not customer:
            return {"success": False, "error": ERROR_MISSING_DATA}

        data = {
            "job_number": job.get("job_number"),
            "customer_name": customer.get("name"),
            "technician_name": technician.get("name"),
            "status": STATUS_LABELS.get(status, status),
            "notes": notes or "-",
            "update_time": self._now_text(),
        }
        return self._send_template("installation_status_update", technician["phone"], data)

    def send_installation_completion_notification(
        self, technician, job, customer, notes: Optional[str] = None
    ) -> Dict[str, Any]:
        if not self.templates.is_template_enabled("installation_completed"):
            return self._disabled()
        if not technician or not technician.get("phone") or not job or not customer:
            return {"success": False, "error": ERROR_MISSING_DATA}

        data = {
            "job_number": job.get("job_number"),
            "customer_name": customer.get("name"),
            "customer_address": customer.get("address") or "-",
            "technician_name": technician.get("name"),
            "notes": notes or "-",
            "completion_time": self._now_text(),
        }
        message = self._render("installation_completed", data)
        if message is None:
            return {"success": False, "error": ERROR_TEMPLATE_NOT_FOUND}

        result = self.send_notification(technician["phone"], message)
        result["groups"] = self.send_to_configured_groups(message)
        return result

    def test_notification(self, phone_number: str, template_key: str, test_data: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Kirim template apapun (aktif/nonaktif) ke satu nomor untuk uji coba."""
        message = self._render(template_key, test_data or {})
        if message is None:
            return {"success": False, "error": ERROR_TEMPLATE_NOT_FOUND}
        return self.send_notification(phone_number, message)
