"""
Pytest fixtures: fake settings, transport, billing, clock & sleep.
Tidak ada network atau database yang disentuh.
"""

from datetime import datetime

import pytest
import pytz

from notification_templates import TemplateStore
from wa_client import ImagePayload, TextPayload
from whatsapp_notifications import RATE_LIMIT_SETTING, WhatsAppNotifier

JAKARTA = pytz.timezone("Asia/Jakarta")


# =============================================================================
# Fakes
# =============================================================================

class FakeTime:
    """Jam float (detik) yang bisa dimajukan manual, untuk CacheManager."""

    def __init__(self, start=1_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeClock:
    """Jam datetime (zona Jakarta) untuk notifier."""

    def __init__(self, value):
        self.value = value

    def __call__(self):
        return self.value


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


class MemorySettings:
    def __init__(self, initial=None):
        self.data = dict(initial or {})
        self.writes = 0

    def get_setting(self, key, default=None):
        value = self.data.get(key)
        return default if value is None else value

    def set_setting(self, key, value):
        self.writes += 1
        self.data[key] = value


class FakeTransport:
    """
    Transport palsu: mencatat semua pesan terkirim.

    - always_fail: semua kirim gagal
    - fail_first: N percobaan pertama gagal
    - fail_images: kirim ImagePayload gagal
    - fail_for: set tujuan yang selalu gagal
    """

    def __init__(self, always_fail=False, fail_first=0, fail_images=False, fail_for=()):
        self.always_fail = always_fail
        self.fail_first = fail_first
        self.fail_images = fail_images
        self.fail_for = set(fail_for)
        self.attempts = []
        self.sent = []

    def send_message(self, destination, payload):
        self.attempts.append((destination, payload))
        if self.always_fail or len(self.attempts) <= self.fail_first:
            raise RuntimeError("gateway timeout")
        if destination in self.fail_for:
            raise RuntimeError(f"gagal kirim ke {destination}")
        if self.fail_images and isinstance(payload, ImagePayload):
            raise RuntimeError("media upload failed")
        self.sent.append((destination, payload))
        return {"status": True}

    @property
    def texts(self):
        return [p.text for _, p in self.sent if isinstance(p, TextPayload)]


class FakeBilling:
    def __init__(self, customers=None, packages=None, invoices=None, payments=None, upcoming=None):
        self.customers = customers or {}
        self.packages = packages or {}
        self.invoices = invoices or {}
        self.payments = payments or {}
        self.upcoming = upcoming or []

    def get_customer_by_id(self, customer_id):
        return self.customers.get(customer_id)

    def get_customers(self):
        return list(self.customers.values())

    def get_package_by_id(self, package_id):
        return self.packages.get(package_id)

    def get_invoice_by_id(self, invoice_id):
        return self.invoices.get(invoice_id)

    def get_payment_by_id(self, payment_id):
        return self.payments.get(payment_id)

    def get_upcoming_unpaid_invoices(self, today, days=3):
        return list(self.upcoming)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def clock():
    return FakeClock(JAKARTA.localize(datetime(2024, 1, 12, 9, 0)))


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    return MemorySettings(
        {
            RATE_LIMIT_SETTING: {
                "maxMessagesPerBatch": 10,
                "delayBetweenBatches": 5,
                "delayBetweenMessages": 1,
                "maxRetries": 2,
                "dailyMessageLimit": 0,
                "enabled": True,
            },
            "company_header": "HEADER\n",
            "footer_info": "FOOTER",
        }
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def templates():
    return TemplateStore(None)


@pytest.fixture
def billing():
    return FakeBilling(
        customers={
            1: {"id": 1, "name": "Budi", "phone": "081111", "status": "active", "package_id": 10,
                "address": "Jl. Melati 1", "wifi_password": "rahasia123"},
            2: {"id": 2, "name": "Siti", "phone": "082222", "status": "active", "package_id": 10},
            3: {"id": 3, "name": "Joko", "phone": "083333", "status": "inactive", "package_id": 10},
            4: {"id": 4, "name": "Tanpa HP", "phone": None, "status": "active", "package_id": 10},
        },
        packages={10: {"id": 10, "name": "Paket 10M", "speed": "10 Mbps", "price": 150000}},
        invoices={
            5: {"id": 5, "customer_id": 1, "package_id": 10, "invoice_number": "INV-1",
                "amount": 100000, "due_date": "2024-01-15", "notes": None},
        },
        payments={
            7: {"id": 7, "invoice_id": 5, "amount": 100000, "payment_method": "Transfer Bank",
                "payment_date": "2024-01-10", "reference_number": "TRX9"},
        },
    )


@pytest.fixture
def notifier(settings, templates, billing, transport, sleep, clock):
    return WhatsAppNotifier(settings, templates, billing, transport=transport, sleep=sleep, clock=clock)


def set_rate_limit(settings, **overrides):
    """Helper: ubah sebagian field rate limit (camelCase)."""
    current = dict(settings.get_setting(RATE_LIMIT_SETTING, {}))
    current.update(overrides)
    settings.set_setting(RATE_LIMIT_SETTING, current)


@pytest.fixture
def rate_limit(settings):
    def _apply(**overrides):
        set_rate_limit(settings, **overrides)

    return _apply
