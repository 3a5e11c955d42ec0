"""
billing_logic.py
----------------
Penyedia data billing untuk notifikasi (pelanggan, paket, invoice, payment).

Semua getter mengembalikan dict (atau None kalau tidak ditemukan) dan tidak
melempar error "not found". Lookup paket di-cache lewat CacheManager karena
data paket jarang berubah tapi dibaca di hampir setiap notifikasi invoice.

Tabel yang dipakai:
- customers (id, username, name, phone, address, package_id, status, wifi_password)
- packages  (id, name, speed, price)
- invoices  (id, customer_id, package_id, invoice_number, amount, due_date, status, notes)
- payments  (id, invoice_id, amount, payment_method, payment_date, reference_number)
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import db
from cache_manager import CacheManager

PACKAGE_CACHE_TTL = 10 * 60  # 10 menit


def _phone_variants(phone: str) -> List[str]:
    """
    Variasi penulisan nomor yang mungkin tersimpan di DB:
    '6281...', '081...', '81...', '+6281...'.
    """
    digits = "".join(ch for ch in str(phone or "") if ch.isdigit())
    if not digits:
        return []
    if digits.startswith("62"):
        local = digits[2:]
    elif digits.startswith("0"):
        local = digits[1:]
    else:
        local = digits
    return ["62" + local, "0" + local, local, "+62" + local]


class BillingManager:
    def __init__(self, cache: Optional[CacheManager] = None) -> None:
        self.cache = cache

    # -------------------------------------------------------------------------
    # Customer
    # -------------------------------------------------------------------------

    def get_customer_by_id(self, customer_id) -> Optional[Dict[str, Any]]:
        return db.query_one(
            "SELECT * FROM customers WHERE id = %(id)s",
            {"id": customer_id},
        )

    def get_customer_by_username(self, username: str) -> Optional[Dict[str, Any]]:
        return db.query_one(
            "SELECT * FROM customers WHERE username = %(u)s OR pppoe_username = %(u)s LIMIT 1",
            {"u": username},
        )

    def get_customer_by_phone(self, phone: str) -> Optional[Dict[str, Any]]:
        variants = _phone_variants(phone)
        if not variants:
            return None
        return db.query_one(
            "SELECT * FROM customers WHERE phone = ANY(%(phones)s) ORDER BY id LIMIT 1",
            {"phones": variants},
        )

    def get_customers(self) -> List[Dict[str, Any]]:
        return db.query_all("SELECT * FROM customers ORDER BY id")

    # -------------------------------------------------------------------------
    # Paket (di-cache)
    # -------------------------------------------------------------------------

    def get_package_by_id(self, package_id) -> Optional[Dict[str, Any]]:
        params = {"id": package_id}
        if self.cache is not None:
            cached = self.cache.get_cached_api_response("billing", "package", params)
            if cached is not None:
                return cached

        row = db.query_one("SELECT * FROM packages WHERE id = %(id)s", params)

        if row is not None and self.cache is not None:
            self.cache.cache_api_response("billing", "package", params, row, PACKAGE_CACHE_TTL)
        return row

    def invalidate_packages(self) -> int:
        """Dipanggil setelah admin mengubah data paket."""
        if self.cache is None:
            return 0
        return self.cache.invalidate_pattern("billing:package*")

    # -------------------------------------------------------------------------
    # Invoice & payment
    # -------------------------------------------------------------------------

    def get_invoice_by_id(self, invoice_id) -> Optional[Dict[str, Any]]:
        return db.query_one(
            "SELECT * FROM invoices WHERE id = %(id)s",
            {"id": invoice_id},
        )

    def get_payment_by_id(self, payment_id) -> Optional[Dict[str, Any]]:
        return db.query_one(
            "SELECT * FROM payments WHERE id = %(id)s",
            {"id": payment_id},
        )

    def get_upcoming_unpaid_invoices(self, today: date, days: int = 3) -> List[Dict[str, Any]]:
        """
        Invoice unpaid yang jatuh tempo antara hari ini s/d hari ini + days.
        """
        return db.query_all(
            """
            SELECT *
            FROM invoices
            WHERE status = 'unpaid'
              AND due_date BETWEEN %(start)s AND %(end)s
            ORDER BY due_date, id
            """,
            {"start": today, "end": today + timedelta(days=days)},
        )
