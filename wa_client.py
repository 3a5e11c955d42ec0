"""
wa_client.py
------------
Client untuk kirim WhatsApp melalui gateway HTTP (WA_API_URL).

Payload yang dikirim berbentuk tagged:
- TextPayload(text)            -> POST JSON {"number", "message"}
- ImagePayload(path, caption)  -> POST multipart {"number", "caption", file}

URL API diambil dengan prioritas:
1. argumen api_url saat membuat WhatsAppClient
2. current_app.config["WA_API_URL"] (jika ada Flask app context)
3. Config.WA_API_URL (dibaca dari environment/.env)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests
from flask import current_app, has_app_context

from config import Config


class WhatsAppError(Exception):
    """Kesalahan saat mengirim pesan WhatsApp."""


@dataclass(frozen=True)
class TextPayload:
    text: str


@dataclass(frozen=True)
class ImagePayload:
    path: str
    caption: str


Payload = Union[TextPayload, ImagePayload]


def _get_api_url(override_url: Optional[str] = None) -> str:
    if override_url:
        return override_url

    url: Optional[str] = None

    # Kalau lagi di dalam konteks Flask, utamakan config dari app
    if has_app_context():
        url = current_app.config.get("WA_API_URL")

    # Fallback ke konfigurasi global (dari .env)
    if not url:
        url = getattr(Config, "WA_API_URL", None)

    if not url:
        raise WhatsAppError(
            "WA_API_URL belum di-set. "
            "Pastikan ada di environment atau file .env."
        )

    return url


def _image_url(api_url: str) -> str:
    # Gateway memakai endpoint terpisah untuk media: <WA_API_URL>/image
    return api_url.rstrip("/") + "/image"


class WhatsAppClient:
    """
    Transport WhatsApp berbasis HTTP. Dipasang ke WhatsAppNotifier lewat
    set_transport(); notifier hanya memanggil send_message().
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        *,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def send_message(self, destination: str, payload: Payload) -> Dict[str, Any]:
        """
        Kirim satu pesan.

        :param destination: nomor tujuan ('6281234567890') atau id grup ('...@g.us')
        :param payload: TextPayload atau ImagePayload
        :return: dict respon dari server (atau {"raw": "<text>"} kalau bukan JSON)
        """
        if not destination:
            raise ValueError("Nomor tujuan (destination) wajib diisi")

        url = _get_api_url(override_url=self.api_url)

        try:
            if isinstance(payload, ImagePayload):
                with open(payload.path, "rb") as fh:
                    resp = self.session.post(
                        _image_url(url),
                        data={"number": destination, "caption": payload.caption},
                        files={"file": (os.path.basename(payload.path), fh)},
                        timeout=self.timeout,
                    )
            elif isinstance(payload, TextPayload):
                if not payload.text:
                    raise ValueError("Pesan WhatsApp (text) wajib diisi")
                resp = self.session.post(
                    url,
                    json={"number": destination, "message": payload.text},
                    timeout=self.timeout,
                )
            else:
                raise TypeError(f"Payload tidak dikenal: {type(payload).__name__}")
        except (ValueError, TypeError):
            raise
        except (requests.RequestException, OSError) as e:
            raise WhatsAppError(f"Gagal menghubungi WA API: {e}") from e

        if not resp.ok:
            raise WhatsAppError(f"WA API error HTTP {resp.status_code}: {resp.text}")

        try:
            return resp.json()
        except ValueError:
            # Kalau bukan JSON, tetap kembalikan text mentah.
            return {"raw": resp.text}
