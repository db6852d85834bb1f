"""Configuration package for PageSift.

Re-exports the settings symbols so that callers can write::

    from pagesift.config import get_settings
"""

from __future__ import annotations

from pagesift.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
