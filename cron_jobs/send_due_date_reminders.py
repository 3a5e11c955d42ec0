# cron_jobs/send_due_date_reminders.py

from __future__ import annotations

import argparse
import datetime
import sys
from typing import Any, Dict, Optional

import pytz

from app_context import AppContext, build_context
from config import Config

FLAG_SETTING = "due_date_reminder_last_run"


def send_due_date_reminders(
    ctx: AppContext,
    force: bool = False,
    now: Optional[datetime.datetime] = None,
) -> Dict[str, Any]:
    """
    Kirim pengingat jatuh tempo untuk invoice unpaid yang jatuh tempo
    dalam REMINDER_DAYS_AHEAD hari ke depan.

    - Tanpa --force hanya jalan di jam REMINDER_HOUR.
    - Tanpa --force tidak kirim ulang di hari yang sama (tanggal terakhir
      disimpan di settings.json).
    """
    tz = pytz.timezone(ctx.config.TIMEZONE)
    now = now or datetime.datetime.now(tz)
    today = now.date()
    summary: Dict[str, Any] = {"ran": False, "total": 0, "sent": 0, "skipped": 0, "failed": 0}

    if not force and now.hour != ctx.config.REMINDER_HOUR:
        print(f"[{now:%Y-%m-%d %H:%M:%S}] ⏸️ Skip: sekarang jam {now.hour}, bukan {ctx.config.REMINDER_HOUR} (gunakan --force).")
        return summary

    if not force and ctx.settings.get_setting(FLAG_SETTING) == today.isoformat():
        print(f"[{now:%Y-%m-%d %H:%M:%S}] ⏸️ Pengingat tanggal {today} sudah dikirim, skip ulang.")
        return summary

    invoices = ctx.billing.get_upcoming_unpaid_invoices(today, ctx.config.REMINDER_DAYS_AHEAD)
    summary["ran"] = True
    summary["total"] = len(invoices)
    print(f"[{now:%Y-%m-%d %H:%M:%S}] 🔔 {len(invoices)} invoice jatuh tempo dalam {ctx.config.REMINDER_DAYS_AHEAD} hari{' (FORCED)' if force else ''}.")

    for i, invoice in enumerate(invoices, start=1):
        result = ctx.notifier.send_due_date_reminder(invoice["id"])
        label = invoice.get("invoice_number") or invoice["id"]
        if result.get("skipped"):
            summary["skipped"] += 1
            print(f"⏭️ {i}/{len(invoices)} {label}: {result.get('reason')}")
        elif result.get("success"):
            summary["sent"] += 1
            print(f"✅ {i}/{len(invoices)} {label}: terkirim")
        else:
            summary["failed"] += 1
            print(f"❌ {i}/{len(invoices)} {label}: {result.get('error')}")

    if not force:
        ctx.settings.set_setting(FLAG_SETTING, today.isoformat())

    print(f"🎯 Terkirim: {summary['sent']}, gagal: {summary['failed']}, skip: {summary['skipped']}")
    return summary


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Kirim pengingat jatuh tempo invoice.")
    parser.add_argument("--force", action="store_true", help="Jalankan di luar jam terjadwal / kirim ulang hari ini.")
    args = parser.parse_args()

    context = build_context(Config, start_cleanup=False)
    try:
        send_due_date_reminders(context, force=args.force)
    except KeyboardInterrupt:
        print("\n🛑 Dibatalkan oleh pengguna.")
        sys.exit(0)
    finally:
        context.shutdown()
