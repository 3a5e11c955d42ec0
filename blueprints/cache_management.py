# blueprints/cache_management.py

from __future__ import annotations

import logging
import re

from flask import Blueprint, jsonify, request

from app import get_context
from cache_manager import is_valid_pattern
from blueprints.admin import request_data, require_admin

logger = logging.getLogger(__name__)

bp = Blueprint("cache_management", __name__, url_prefix="/admin/cache")


@bp.route("/stats", methods=["GET"])
@require_admin
def cache_stats():
    return jsonify({"success": True, "data": get_context().cache.get_stats()})


@bp.route("/entries", methods=["GET"])
@require_admin
def cache_entries():
    """
    Daftar entry yang cocok dengan ?pattern= (default semua).
    Value tidak ikut dikirim, hanya key & timestamp.
    """
    pattern = request.args.get("pattern") or "*"
    if not is_valid_pattern(pattern):
        return jsonify({"success": False, "message": f"Pattern tidak valid: {pattern}"}), 400

    entries = get_context().cache.get_entries_by_pattern(pattern)
    data = [
        {
            "key": e["key"],
            "created_at": e["created_at"],
            "expires_at": e["expires_at"],
        }
        for e in entries
    ]
    return jsonify({"success": True, "pattern": pattern, "count": len(data), "data": data})


@bp.route("/clear", methods=["POST"])
@require_admin
def cache_clear():
    get_context().cache.clear()
    return jsonify({"success": True, "message": "Cache berhasil dikosongkan"})


@bp.route("/invalidate", methods=["POST"])
@require_admin
def cache_invalidate():
    pattern = (request_data().get("pattern") or "").strip()
    if not pattern:
        return jsonify({"success": False, "message": "Pattern wajib diisi"}), 400
    if not is_valid_pattern(pattern):
        return jsonify({"success": False, "message": f"Pattern tidak valid: {pattern}"}), 400

    count = get_context().cache.invalidate_pattern(pattern)
    logger.info("[cache] invalidate '%s' oleh admin: %d entry", pattern, count)
    return jsonify({"success": True, "pattern": pattern, "invalidated": count})


@bp.route("/entries/<path:key>", methods=["DELETE"])
@require_admin
def cache_delete(key):
    if not get_context().cache.delete(key):
        return jsonify({"success": False, "message": "Key tidak ditemukan"}), 404
    return jsonify({"success": True, "key": key})


@bp.route("/service/<service>", methods=["POST", "DELETE"])
@require_admin
def cache_clear_service(service):
    """
    Hapus semua cache milik satu service (key '<service>:...').
    """
    pattern = f"^{re.escape(service)}:*"
    count = get_context().cache.invalidate_pattern(pattern)
    logger.info("[cache] clear service '%s' oleh admin: %d entry", service, count)
    return jsonify({"success": True, "service": service, "invalidated": count})
