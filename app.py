"""
app.py
------
Panel admin notifikasi (Flask).

create_app() memasang AppContext ke app.extensions["gembok"], lalu
mendaftarkan blueprint:
- /admin            login/logout admin
- /admin/cache      statistik & invalidasi CacheManager
- /admin/whatsapp   template, broadcast, rate limit, kuota harian
"""

from __future__ import annotations

from typing import Optional

from flask import Flask, current_app, jsonify

from app_context import AppContext, build_context
from config import Config

EXTENSION_KEY = "gembok"


def get_context() -> AppContext:
    """AppContext milik app yang sedang aktif (dipakai di blueprint)."""
    return current_app.extensions[EXTENSION_KEY]


def create_app(context: Optional[AppContext] = None) -> Flask:
    flask_app = Flask(__name__)
    flask_app.config.from_object(Config)
    flask_app.extensions[EXTENSION_KEY] = context or build_context(Config)

    from blueprints import admin, cache_management, whatsapp_settings

    for blueprint in (admin.bp, cache_management.bp, whatsapp_settings.bp):
        flask_app.register_blueprint(blueprint)

    @flask_app.route("/")
    def health():
        ctx = get_context()
        return jsonify(
            {
                "success": True,
                "whatsapp_connected": ctx.notifier.is_connected,
                "quota": ctx.notifier.quota_status(),
            }
        )

    return flask_app


if __name__ == "__main__":
    application = create_app()
    application.run(debug=Config.DEBUG, host="0.0.0.0", port=5000)
