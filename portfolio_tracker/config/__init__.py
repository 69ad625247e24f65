"""Configuration package for the portfolio tracker service."""

from .settings import DEFAULT_SECTOR, AppSettings, get_settings

__all__ = ["AppSettings", "DEFAULT_SECTOR", "get_settings"]
