# blueprints/admin.py

from __future__ import annotations

from functools import wraps

from flask import Blueprint, current_app, jsonify, request, session

bp = Blueprint("admin", __name__, url_prefix="/admin")


# ======================================================================
# Helper: cek admin
# ======================================================================

def require_admin(view):
    """
    Decorator: tolak request kalau session belum login admin (JSON 401).
    """

    @wraps(view)
    def wrapper(*args, **kwargs):
        if not session.get("is_admin"):
            return jsonify({"success": False, "message": "Unauthorized"}), 401
        return view(*args, **kwargs)

    return wrapper


def request_data() -> dict:
    """Ambil body request dari JSON atau form."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


# ======================================================================
# Login / Logout Admin
# ======================================================================

@bp.route("/login", methods=["POST"])
def admin_login():
    """
    Login admin panel.
    Pakai username/password dari ADMIN_USERNAME / ADMIN_PASSWORD di config app.
    """
    data = request_data()
    username = (data.get("username") or "").strip()
    password = (data.get("password") or "").strip()

    if not username or not password:
        return jsonify({"success": False, "message": "Username dan password wajib diisi."}), 400

    expected_user = current_app.config.get("ADMIN_USERNAME")
    expected_pass = current_app.config.get("ADMIN_PASSWORD")
    if not expected_user or username != expected_user or password != expected_pass:
        return jsonify({"success": False, "message": "Username atau password admin salah."}), 401

    session.clear()
    session["is_admin"] = True
    return jsonify({"success": True, "message": "Login admin berhasil."})


@bp.route("/logout", methods=["POST"])
def admin_logout():
    session.clear()
    return jsonify({"success": True})
