"""
db.py
------
Akses baca Postgres untuk BillingManager (psycopg2 ThreadedConnectionPool).

Layanan notifikasi hanya MEMBACA data billing, jadi yang tersedia cuma:
- init_pool(dsn=None)
- query_one(sql, params) -> dict | None
- query_all(sql, params) -> list[dict]
- close_all()

Pool dibuat sekali saat boot; kalau lupa, query pertama akan membuatnya
dari Config.DATABASE_URL.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from config import Config

logger = logging.getLogger(__name__)

_POOL: Optional[pool.ThreadedConnectionPool] = None

Params = Union[Dict[str, Any], Sequence[Any], None]


def init_pool(dsn: Optional[str] = None, minconn: int = 1, maxconn: int = 10) -> None:
    global _POOL
    if _POOL is not None:
        return

    dsn = dsn or Config.DATABASE_URL
    if not dsn:
        raise RuntimeError("DATABASE_URL kosong, isi di environment atau .env")

    # Flask (multi-thread) dan cron berbagi pool yang sama
    _POOL = pool.ThreadedConnectionPool(minconn, maxconn, dsn)
    logger.info("[db] pool Postgres siap (%d-%d koneksi)", minconn, maxconn)


def close_all() -> None:
    global _POOL
    if _POOL is None:
        return
    _POOL.closeall()
    _POOL = None
    logger.info("[db] pool ditutup")


@contextmanager
def _cursor() -> Iterator[Any]:
    """
    Pinjam koneksi + RealDictCursor. Transaksi baca ditutup (commit) sebelum
    koneksi dikembalikan supaya tidak ada sesi 'idle in transaction'.
    """
    if _POOL is None:
        init_pool()
    conn = _POOL.getconn()
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _POOL.putconn(conn)


def query_one(sql: str, params: Params = None) -> Optional[Dict[str, Any]]:
    with _cursor() as cur:
        cur.execute(sql, params or {})
        row = cur.fetchone()
    return dict(row) if row is not None else None


def query_all(sql: str, params: Params = None) -> List[Dict[str, Any]]:
    with _cursor() as cur:
        cur.execute(sql, params or {})
        rows = cur.fetchall()
    # RealDictRow -> dict biasa supaya aman di-cache & di-jsonify
    return [dict(r) for r in rows]
