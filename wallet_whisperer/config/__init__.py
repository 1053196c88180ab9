"""
Configuration package: .env loading and typed settings.
"""

from wallet_whisperer.config.settings import Settings, get_settings, load_settings

__all__ = ["Settings", "get_settings", "load_settings"]
