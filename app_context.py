"""
app_context.py
--------------
Satu objek konteks berisi semua komponen yang dipakai bersama
(settings, cache, template, billing, notifier).

Lifecycle:
- build_context(config) dipanggil SEKALI saat boot (create_app() atau cron).
- Komponen saling menerima dependensi lewat konstruktor, bukan global.
- shutdown() menghentikan sweep cache dan menutup pool DB.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import db
from billing_logic import BillingManager
from cache_manager import CacheManager
from config import Config
from notification_templates import TemplateStore
from settings_store import SettingsStore
from wa_client import WhatsAppClient
from whatsapp_notifications import WhatsAppNotifier

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@dataclass
class AppContext:
    config: type
    settings: SettingsStore
    cache: CacheManager
    templates: TemplateStore
    billing: BillingManager
    notifier: WhatsAppNotifier

    def shutdown(self) -> None:
        self.cache.stop_cleanup()
        db.close_all()


def build_context(
    config=Config,
    *,
    transport: Optional[object] = None,
    start_cleanup: bool = True,
) -> AppContext:
    """
    Rakit semua komponen dari Config.

    transport default: WhatsAppClient(WA_API_URL) kalau WA_API_URL ada,
    selain itu notifier dibiarkan tanpa transport (kirim -> 'WhatsApp not connected').
    """
    configure_logging(config.LOG_LEVEL)

    settings = SettingsStore(config.SETTINGS_PATH)
    cache = CacheManager(
        default_ttl=config.CACHE_DEFAULT_TTL,
        cleanup_interval=config.CACHE_CLEANUP_INTERVAL,
    )
    if start_cleanup:
        cache.start_cleanup()

    templates = TemplateStore(config.TEMPLATES_PATH)
    billing = BillingManager(cache=cache)

    if transport is None and config.WA_API_URL:
        transport = WhatsAppClient(config.WA_API_URL)

    notifier = WhatsAppNotifier(
        settings,
        templates,
        billing,
        transport=transport,
        timezone=config.TIMEZONE,
    )

    return AppContext(
        config=config,
        settings=settings,
        cache=cache,
        templates=templates,
        billing=billing,
        notifier=notifier,
    )
