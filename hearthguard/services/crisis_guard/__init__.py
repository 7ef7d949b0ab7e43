"""Crisis Guard: keeps crisis-resource visits from ever becoming a flag.

Components:
- guard.py: CrisisSuppressionGuard, the boolean gate used by the decision engine
- domain_matcher.py: URL normalization, exact/subdomain and fuzzy matching
- allowlist.py: Versioned allowlist dataset and the bundled snapshot
- allowlist_cache.py: Remote -> local cache -> bundled fallback chain
- config.py: Fuzzy-match bounds, safe-domain blocklist and sync settings

Usage:
    cache = AllowlistCache.from_config(AllowlistSyncConfig.from_env())
    cache.load()
    guard = CrisisSuppressionGuard(cache)
    guard.check(domain="988lifline.org")  # True
"""

from .allowlist import (
    BUNDLED_ALLOWLIST,
    AllowlistDataset,
    AllowlistPayloadError,
    AllowlistUnavailableError,
    CrisisAllowlistEntry,
)
from .allowlist_cache import (
    AllowlistCache,
    AllowlistSource,
    LocalAllowlistCache,
    RemoteAllowlistSource,
    SyncResult,
)
from .config import AllowlistSyncConfig
from .domain_matcher import DomainMatcher
from .guard import CrisisSuppressionGuard

__all__ = [
    "BUNDLED_ALLOWLIST",
    "AllowlistDataset",
    "AllowlistPayloadError",
    "AllowlistUnavailableError",
    "CrisisAllowlistEntry",
    "AllowlistCache",
    "AllowlistSource",
    "LocalAllowlistCache",
    "RemoteAllowlistSource",
    "SyncResult",
    "AllowlistSyncConfig",
    "DomainMatcher",
    "CrisisSuppressionGuard",
]
