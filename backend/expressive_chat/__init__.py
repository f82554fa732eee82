"""Expressive Chat - authenticated chat backend with persistent conversations."""

__version__ = "1.0.0"
