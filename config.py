import os
from dotenv import load_dotenv

# .env dibaca sekali saat import; variabel environment asli tetap menang
load_dotenv()


def _env_float(name, default):
    return float(os.getenv(name, default))


def _env_int(name, default):
    return int(os.getenv(name, default))


class Config:
    """
    Konfigurasi statis layanan notifikasi (dari environment / .env).

    Yang bisa diubah admin tanpa restart (rate limit WhatsApp, header/footer
    pesan, grup teknisi, nomor support) disimpan terpisah di settings.json,
    lihat settings_store.py.
    """

    # Flask & login admin
    SECRET_KEY = os.getenv("SECRET_KEY")
    DEBUG = os.getenv("DEBUG", "false").lower() in ("1", "true", "yes")
    ADMIN_USERNAME = os.getenv("ADMIN_USERNAME")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

    # Postgres billing (customers, packages, invoices, payments)
    DATABASE_URL = os.getenv("DATABASE_URL")

    # Gateway WhatsApp. Kosong -> notifier jalan tanpa transport
    WA_API_URL = os.getenv("WA_API_URL")

    # Lokasi file JSON runtime
    SETTINGS_PATH = os.getenv("SETTINGS_PATH", "settings.json")
    TEMPLATES_PATH = os.getenv("TEMPLATES_PATH", os.path.join("data", "whatsapp-templates.json"))

    # CacheManager, satuan detik
    CACHE_DEFAULT_TTL = _env_float("CACHE_DEFAULT_TTL", "300")
    CACHE_CLEANUP_INTERVAL = _env_float("CACHE_CLEANUP_INTERVAL", "60")

    # cron_jobs/send_due_date_reminders.py
    REMINDER_DAYS_AHEAD = _env_int("REMINDER_DAYS_AHEAD", "3")
    REMINDER_HOUR = _env_int("REMINDER_HOUR", "9")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    TIMEZONE = os.getenv("TIMEZONE", "Asia/Jakarta")
