"""Crisis guard configuration: fuzzy-match bounds and sync settings."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Optional

# Fuzzy matching bounds. Short names produce too many accidental
# near-matches, so they only ever match exactly.
MAX_LEVENSHTEIN_DISTANCE: int = 2
MIN_DOMAIN_LENGTH: int = 5
MIN_LENGTH_RATIO: float = 0.7

# Well-known safe domains that never fuzzy-match, nor do their subdomains.
# Each remote dataset may extend this set with its own safe_domains.
FUZZY_BLOCKLIST: FrozenSet[str] = frozenset({
    # Search
    "google.com",
    "bing.com",
    "yahoo.com",
    "duckduckgo.com",
    # Social and messaging
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "tiktok.com",
    "reddit.com",
    "snapchat.com",
    "discord.com",
    "whatsapp.com",
    "pinterest.com",
    "linkedin.com",
    "tumblr.com",
    # Video and games
    "youtube.com",
    "twitch.tv",
    "netflix.com",
    "roblox.com",
    "minecraft.net",
    # Reference and shopping
    "wikipedia.org",
    "amazon.com",
    "ebay.com",
    "apple.com",
    "microsoft.com",
})


@dataclass(frozen=True)
class AllowlistSyncConfig:
    """Allowlist sync behavior.

    The remote tier must fail fast: a slow endpoint is treated as down and
    the cache or bundled tier is used instead.
    """
    endpoint: Optional[str] = None
    ttl_seconds: int = 24 * 60 * 60
    emergency_ttl_seconds: int = 60 * 60
    network_timeout_seconds: float = 5.0
    max_retry_attempts: int = 2
    retry_delay_seconds: float = 1.0
    cache_path: Path = Path("/tmp/hearthguard/crisis_allowlist.json")

    @classmethod
    def from_env(cls) -> "AllowlistSyncConfig":
        """Create config from environment variables.

        Environment variables:
            ALLOWLIST_ENDPOINT: Remote dataset URL (unset disables the remote tier)
            ALLOWLIST_TTL_SECONDS: Normal refresh interval (default 24h)
            ALLOWLIST_EMERGENCY_TTL_SECONDS: Refresh interval after an emergency push (default 1h)
            ALLOWLIST_TIMEOUT_SECONDS: Remote fetch timeout (default 5)
            ALLOWLIST_MAX_RETRIES: Retries on 5xx/network errors (default 2)
            ALLOWLIST_CACHE_PATH: Local cache file
        """
        return cls(
            endpoint=os.getenv("ALLOWLIST_ENDPOINT") or None,
            ttl_seconds=int(os.getenv("ALLOWLIST_TTL_SECONDS", str(24 * 60 * 60))),
            emergency_ttl_seconds=int(os.getenv("ALLOWLIST_EMERGENCY_TTL_SECONDS", str(60 * 60))),
            network_timeout_seconds=float(os.getenv("ALLOWLIST_TIMEOUT_SECONDS", "5")),
            max_retry_attempts=int(os.getenv("ALLOWLIST_MAX_RETRIES", "2")),
            retry_delay_seconds=float(os.getenv("ALLOWLIST_RETRY_DELAY_SECONDS", "1")),
            cache_path=Path(os.getenv(
                "ALLOWLIST_CACHE_PATH", "/tmp/hearthguard/crisis_allowlist.json"
            )),
        )
