"""Loaders that submit records to a Bunny instance."""

from .base import BaseLoader, describe_error
from .platform_loader import PlatformLoader, account_identifier, contact_identifier

__all__ = [
    "BaseLoader",
    "describe_error",
    "PlatformLoader",
    "account_identifier",
    "contact_identifier",
]
