"""
Configuration package for the PG billing core.

Environment settings are loaded once and shared through
``app.config.settings.settings``.
"""

from app.config.settings import settings, get_settings

__all__ = ['settings', 'get_settings']
