from . import admin
from . import cache_management
from . import whatsapp_settings

__all__ = [
    "admin",
    "cache_management",
    "whatsapp_settings",
]
