"""Configuration package for the payment ledger."""
from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
