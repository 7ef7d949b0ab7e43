"""Shared utilities for HearthGuard services."""
from .pii import hash_pii, configure_pii_salt, configure_pii_salt_from_env

__all__ = ["hash_pii", "configure_pii_salt", "configure_pii_salt_from_env"]
