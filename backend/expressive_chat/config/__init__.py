"""Configuration module."""

from .settings import Settings, settings, INSECURE_DEV_SECRET

__all__ = ['Settings', 'settings', 'INSECURE_DEV_SECRET']
