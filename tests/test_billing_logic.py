from datetime import date

import pytest

import billing_logic
from billing_logic import BillingManager, _phone_variants
from cache_manager import CacheManager


class FakeDB:
    def __init__(self, one=None, rows=None):
        self.one = one
        self.rows = rows or []
        self.calls = []

    def query_one(self, sql, params=None):
        self.calls.append((sql, params))
        return self.one

    def query_all(self, sql, params=None):
        self.calls.append((sql, params))
        return self.rows


@pytest.fixture
def fake_db(monkeypatch):
    fake = FakeDB()
    monkeypatch.setattr(billing_logic.db, "query_one", fake.query_one)
    monkeypatch.setattr(billing_logic.db, "query_all", fake.query_all)
    return fake


@pytest.mark.parametrize("raw", ["081234", "6281234", "+62 812-34", "81234"])
def test_phone_variants(raw):
    assert _phone_variants(raw) == ["6281234", "081234", "81234", "+6281234"]


def test_phone_variants_empty():
    assert _phone_variants("") == []


def test_get_customer_by_phone_queries_all_variants(fake_db):
    fake_db.one = {"id": 1}
    assert BillingManager().get_customer_by_phone("081234") == {"id": 1}
    assert fake_db.calls[0][1] == {"phones": ["6281234", "081234", "81234", "+6281234"]}


def test_get_customer_by_phone_without_digits(fake_db):
    assert BillingManager().get_customer_by_phone("-") is None
    assert fake_db.calls == []


def test_package_lookup_is_cached(fake_db):
    fake_db.one = {"id": 10, "name": "Paket 10M"}
    billing = BillingManager(cache=CacheManager())

    assert billing.get_package_by_id(10) == {"id": 10, "name": "Paket 10M"}
    assert billing.get_package_by_id(10) == {"id": 10, "name": "Paket 10M"}
    assert len(fake_db.calls) == 1

    assert billing.invalidate_packages() == 1
    billing.get_package_by_id(10)
    assert len(fake_db.calls) == 2


def test_missing_package_not_cached(fake_db):
    billing = BillingManager(cache=CacheManager())
    assert billing.get_package_by_id(99) is None
    assert billing.get_package_by_id(99) is None
    assert len(fake_db.calls) == 2


def test_without_cache(fake_db):
    billing = BillingManager()
    billing.get_package_by_id(1)
    billing.get_package_by_id(1)
    assert len(fake_db.calls) == 2
    assert billing.invalidate_packages() == 0


def test_upcoming_unpaid_invoice_window(fake_db):
    fake_db.rows = [{"id": 5}]
    rows = BillingManager().get_upcoming_unpaid_invoices(date(2024, 1, 12), days=3)
    assert rows == [{"id": 5}]
    assert fake_db.calls[0][1] == {"start": date(2024, 1, 12), "end": date(2024, 1, 15)}
