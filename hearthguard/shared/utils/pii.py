"""Salted hashing of family, guardian and subject identifiers.

Log records correlate on ``hash_pii(identifier)`` and never on the raw id.
Each process sets the salt once at startup; the same salt across services
keeps hashes comparable between decision and notification logs.
"""
import hashlib
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

MIN_SALT_LENGTH = 32

# Only for local runs; deployments inject PII_HASH_SALT
DEV_SALT = "default_dev_salt_change_in_production_32chars"

_PII_SALT: Optional[str] = None


def configure_pii_salt(salt: str) -> None:
    """Set the process-wide salt. Raises ValueError below ``MIN_SALT_LENGTH``."""
    global _PII_SALT
    if not salt or len(salt) < MIN_SALT_LENGTH:
        logger.critical(
            "PII_SALT_REJECTED",
            extra={"salt_length": len(salt or ""), "min_length": MIN_SALT_LENGTH}
        )
        raise ValueError(f"PII salt must be at least {MIN_SALT_LENGTH} characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def configure_pii_salt_from_env() -> None:
    """Entry-point helper: salt from ``PII_HASH_SALT``, else the dev salt."""
    salt = os.getenv("PII_HASH_SALT")
    if not salt:
        logger.warning("PII_SALT_DEV_DEFAULT")
        salt = DEV_SALT
    configure_pii_salt(salt)


def hash_pii(value: str) -> str:
    """64-char hex SHA-256 of salt + identifier.

    Stable for a given salt, so one guardian's records line up across log
    lines without the id itself being recoverable.
    """
    if _PII_SALT is None:
        logger.critical("PII_HASH_WITHOUT_SALT")
        raise RuntimeError("PII salt not configured; call configure_pii_salt() at startup")

    return hashlib.sha256(f"{_PII_SALT}{value}".encode()).hexdigest()
