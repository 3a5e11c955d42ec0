# blueprints/whatsapp_settings.py

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

from app import get_context
from blueprints.admin import request_data, require_admin
from notification_templates import TemplateError
from whatsapp_notifications import RATE_LIMIT_SETTING, RateLimitSettings

logger = logging.getLogger(__name__)

bp = Blueprint("whatsapp_settings", __name__, url_prefix="/admin/whatsapp")

# Contoh data untuk tombol "Test" di halaman template
TEST_DATA = {
    "invoice_created": {
        "customer_name": "Test Customer",
        "invoice_number": "INV-2024-001",
        "amount": "500.000",
        "due_date": "15 Januari 2024",
        "package_name": "Paket Premium",
        "package_speed": "50 Mbps",
        "notes": "Tagihan bulanan",
    },
    "due_date_reminder": {
        "customer_name": "Test Customer",
        "invoice_number": "INV-2024-001",
        "amount": "500.000",
        "due_date": "15 Januari 2024",
        "days_remaining": "3",
        "package_name": "Paket Premium",
        "package_speed": "50 Mbps",
    },
    "payment_received": {
        "customer_name": "Test Customer",
        "invoice_number": "INV-2024-001",
        "amount": "500.000",
        "payment_method": "Transfer Bank",
        "payment_date": "10 Januari 2024",
        "reference_number": "TRX123456",
    },
    "service_disruption": {
        "disruption_type": "Gangguan Jaringan",
        "affected_area": "Seluruh Area",
        "estimated_resolution": "2 jam",
        "support_phone": "081947215703",
    },
    "service_announcement": {
        "announcement_content": "Pengumuman penting untuk semua pelanggan.",
    },
    "service_suspension": {
        "customer_name": "Test Customer",
        "reason": "Tagihan terlambat lebih dari 7 hari",
        "support_phone": "081947215703",
    },
    "service_restoration": {
        "customer_name": "Test Customer",
        "package_name": "Paket Premium",
        "package_speed": "50 Mbps",
        "reason": "Pembayaran telah diterima",
    },
    "welcome_message": {
        "customer_name": "Test Customer",
        "package_name": "Paket Premium",
        "package_speed": "50 Mbps",
        "wifi_password": "test123456",
        "support_phone": "081947215703",
    },
}


# ======================================================================
# Template
# ======================================================================

@bp.route("/templates", methods=["GET"])
@require_admin
def get_templates():
    return jsonify({"success": True, "templates": get_context().templates.get_templates()})


@bp.route("/templates", methods=["POST"])
@require_admin
def save_templates():
    """
    Body: {"<template_key>": {"title"?, "template"?, "enabled"?}, ...}
    """
    data = request_data()
    if not data:
        return jsonify({"success": False, "message": "Data template kosong"}), 400

    try:
        count = get_context().templates.update_templates(data)
    except TemplateError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    except OSError as e:
        logger.error("[templates] gagal simpan: %s", e)
        return jsonify({"success": False, "message": f"Gagal menyimpan template: {e}"}), 500

    return jsonify({"success": True, "message": f"{count} templates saved successfully", "updated": count})


@bp.route("/test", methods=["POST"])
@require_admin
def test_notification():
    data = request_data()
    phone = (data.get("phoneNumber") or data.get("phone_number") or "").strip()
    template_key = (data.get("templateKey") or data.get("template_key") or "").strip()
    if not phone or not template_key:
        return jsonify({"success": False, "message": "Nomor dan template wajib diisi"}), 400

    result = get_context().notifier.test_notification(phone, template_key, TEST_DATA.get(template_key, {}))
    if result.get("success"):
        return jsonify({"success": True, "message": "Test notification sent successfully"})
    return jsonify({"success": False, "message": result.get("error")})


# ======================================================================
# Broadcast
# ======================================================================

@bp.route("/broadcast", methods=["POST"])
@require_admin
def broadcast():
    data = request_data()
    notifier = get_context().notifier
    broadcast_type = data.get("type")

    if broadcast_type == "service_disruption":
        result = notifier.send_service_disruption_notification(
            {
                "type": data.get("disruptionType"),
                "area": data.get("affectedArea"),
                "estimated_time": data.get("estimatedResolution"),
            }
        )
    elif broadcast_type == "service_announcement":
        if not (data.get("message") or "").strip():
            return jsonify({"success": False, "message": "Isi pengumuman wajib diisi"}), 400
        result = notifier.send_service_announcement({"content": data.get("message")})
    else:
        return jsonify({"success": False, "message": "Invalid broadcast type"}), 400

    return jsonify(result)


# ======================================================================
# Rate limit & kuota
# ======================================================================

@bp.route("/rate-limit", methods=["GET"])
@require_admin
def get_rate_limit():
    return jsonify({"success": True, "data": get_context().notifier.rate_limit_settings().to_dict()})


@bp.route("/rate-limit", methods=["POST"])
@require_admin
def save_rate_limit():
    ctx = get_context()
    current = ctx.notifier.rate_limit_settings().to_dict()
    data = request_data()
    current.update({k: v for k, v in data.items() if k in current})

    try:
        rate_limit = RateLimitSettings.from_settings(current)
    except (TypeError, ValueError, OverflowError) as e:
        return jsonify({"success": False, "message": f"Nilai rate limit tidak valid: {e}"}), 400

    ctx.settings.set_setting(RATE_LIMIT_SETTING, rate_limit.to_dict())
    return jsonify({"success": True, "data": rate_limit.to_dict()})


@bp.route("/quota", methods=["GET"])
@require_admin
def quota():
    return jsonify({"success": True, "data": get_context().notifier.quota_status()})
