"""Process-wide crisis allowlist cache with a three-tier fallback chain.

Tiers, in order:
1. Remote: live fetch of the versioned dataset (fail-fast timeout, bounded retries)
2. Cache: last known good dataset on local disk
3. Bundled: snapshot compiled into the service

Lifecycle: ``load()`` at startup, ``refresh(force_emergency)`` on schedule or
on an emergency push, ``current()`` for readers. Every refresh swaps the
whole dataset reference; readers never see a partial update and never see
an empty allowlist.
"""
import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests

from hearthguard.shared.models import utcnow
from .allowlist import (
    BUNDLED_ALLOWLIST,
    AllowlistDataset,
    AllowlistPayloadError,
    AllowlistUnavailableError,
    is_emergency_version,
    should_resync,
)
from .config import AllowlistSyncConfig

logger = logging.getLogger(__name__)

_NON_RETRYABLE_STATUS = frozenset({401, 403, 404})


class AllowlistSource(Enum):
    NETWORK = "network"
    CACHE = "cache"
    BUNDLED = "bundled"


@dataclass(frozen=True)
class FetchResult:
    """Remote fetch result; ``dataset`` is None on 304 Not Modified."""
    dataset: Optional[AllowlistDataset]
    etag: Optional[str] = None

    @property
    def not_modified(self) -> bool:
        return self.dataset is None


@dataclass(frozen=True)
class CachedAllowlist:
    dataset: AllowlistDataset
    cached_at: datetime
    etag: Optional[str] = None


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a load or refresh."""
    dataset: AllowlistDataset
    source: AllowlistSource
    was_resync: bool = False
    fallback_reason: Optional[str] = None


@dataclass(frozen=True)
class _CacheState:
    """Snapshot swapped as a unit on every refresh."""
    dataset: AllowlistDataset
    source: AllowlistSource
    synced_at: Optional[datetime] = None
    etag: Optional[str] = None


class RemoteAllowlistSource:
    """Fetches the allowlist dataset over HTTP."""

    def __init__(
        self,
        endpoint: str,
        timeout_seconds: float = 5.0,
        max_retry_attempts: int = 2,
        retry_delay_seconds: float = 1.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.max_retry_attempts = max_retry_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self._session = session or requests.Session()
        self._sleep = sleep

    def fetch(self, etag: Optional[str] = None) -> FetchResult:
        """Fetch the dataset, retrying 5xx and network errors.

        Raises:
            AllowlistUnavailableError: On exhausted retries, non-retryable
                status, or an invalid/empty payload
        """
        headers = {"If-None-Match": etag} if etag else {}
        last_error = "no_attempt"

        for attempt in range(self.max_retry_attempts + 1):
            if attempt:
                self._sleep(self.retry_delay_seconds * attempt)
            try:
                response = self._session.get(
                    self.endpoint,
                    headers=headers,
                    timeout=self.timeout_seconds,
                )
            except requests.RequestException as e:
                last_error = type(e).__name__
                logger.warning(
                    "ALLOWLIST_FETCH_ERROR",
                    extra={"attempt": attempt, "error_type": last_error}
                )
                continue

            if response.status_code == 304:
                return FetchResult(dataset=None, etag=etag)
            if response.status_code in _NON_RETRYABLE_STATUS:
                raise AllowlistUnavailableError(f"http_{response.status_code}")
            if response.status_code >= 500:
                last_error = f"http_{response.status_code}"
                logger.warning(
                    "ALLOWLIST_FETCH_SERVER_ERROR",
                    extra={"attempt": attempt, "status_code": response.status_code}
                )
                continue
            if not response.ok:
                raise AllowlistUnavailableError(f"http_{response.status_code}")

            try:
                dataset = AllowlistDataset.from_payload(response.json())
            except (ValueError, AllowlistPayloadError) as e:
                # An empty or partial payload is a failure, never a success
                raise AllowlistUnavailableError(f"invalid_payload: {e}") from e
            return FetchResult(dataset=dataset, etag=response.headers.get("ETag"))

        raise AllowlistUnavailableError(last_error)


class LocalAllowlistCache:
    """Last known good dataset persisted as JSON on local disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> Optional[CachedAllowlist]:
        """Last written dataset, or None when the file is missing or unusable."""
        if not self.path.exists():
            return None
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(document, dict):
                raise ValueError("cache document must be an object")
            cached_at = datetime.fromisoformat(document["cached_at"])
            if cached_at.tzinfo is None:
                cached_at = cached_at.replace(tzinfo=timezone.utc)
            etag = document.get("etag")
            return CachedAllowlist(
                dataset=AllowlistDataset.from_payload(document["dataset"]),
                cached_at=cached_at,
                etag=etag if isinstance(etag, str) else None,
            )
        except (OSError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                "ALLOWLIST_CACHE_READ_FAILED",
                extra={"path": str(self.path), "error": str(e)}
            )
            return None

    def write(self, dataset: AllowlistDataset, cached_at: datetime, etag: Optional[str] = None) -> bool:
        document = {
            "dataset": dataset.to_payload(),
            "cached_at": cached_at.isoformat(),
            "etag": etag,
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(document), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            logger.warning(
                "ALLOWLIST_CACHE_WRITE_FAILED",
                extra={"path": str(self.path), "error": str(e)}
            )
            return False
        return True


class AllowlistCache:
    """Holds the current allowlist and resolves it through the fallback chain."""

    def __init__(
        self,
        remote: Optional[RemoteAllowlistSource] = None,
        local: Optional[LocalAllowlistCache] = None,
        bundled: AllowlistDataset = BUNDLED_ALLOWLIST,
        ttl_seconds: int = 24 * 60 * 60,
        emergency_ttl_seconds: int = 60 * 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._remote = remote
        self._local = local
        self._bundled = bundled
        self._ttl = timedelta(seconds=ttl_seconds)
        self._emergency_ttl = timedelta(seconds=emergency_ttl_seconds)
        self._clock = clock
        self._refresh_lock = threading.Lock()
        self._state = _CacheState(dataset=bundled, source=AllowlistSource.BUNDLED)

    @classmethod
    def from_config(cls, config: AllowlistSyncConfig) -> "AllowlistCache":
        remote = None
        if config.endpoint:
            remote = RemoteAllowlistSource(
                endpoint=config.endpoint,
                timeout_seconds=config.network_timeout_seconds,
                max_retry_attempts=config.max_retry_attempts,
                retry_delay_seconds=config.retry_delay_seconds,
            )
        return cls(
            remote=remote,
            local=LocalAllowlistCache(config.cache_path),
            ttl_seconds=config.ttl_seconds,
            emergency_ttl_seconds=config.emergency_ttl_seconds,
        )

    def current(self) -> AllowlistDataset:
        """The dataset readers should match against. Never empty."""
        return self._state.dataset

    @property
    def source(self) -> AllowlistSource:
        return self._state.source

    def load(self) -> SyncResult:
        """Initial resolution at startup.

        A fresh local cache is used directly; otherwise the full chain runs.
        """
        cached = self._local.read() if self._local else None
        if cached is not None and not self._expired(cached.dataset, cached.cached_at):
            self._swap(_CacheState(
                dataset=cached.dataset,
                source=AllowlistSource.CACHE,
                synced_at=cached.cached_at,
                etag=cached.etag,
            ))
            logger.info(
                "ALLOWLIST_LOADED",
                extra={"source": "cache", "version": cached.dataset.version}
            )
            return SyncResult(dataset=cached.dataset, source=AllowlistSource.CACHE)
        return self.refresh()

    def refresh(self, force_emergency: bool = False) -> SyncResult:
        """Re-resolve the allowlist through the fallback chain.

        Args:
            force_emergency: Skip the conditional request and accept whatever
                version the remote serves (emergency push)
        """
        with self._refresh_lock:
            state = self._state
            if self._remote is None:
                return self._fall_back("remote_disabled")

            try:
                result = self._remote.fetch(etag=None if force_emergency else state.etag)
            except AllowlistUnavailableError as e:
                return self._fall_back(str(e))

            now = self._clock()
            if result.not_modified:
                self._swap(_CacheState(
                    dataset=state.dataset,
                    source=state.source,
                    synced_at=now,
                    etag=state.etag,
                ))
                return SyncResult(dataset=state.dataset, source=state.source)

            dataset = result.dataset
            resync = force_emergency or state.source == AllowlistSource.BUNDLED or should_resync(
                state.dataset.version, dataset.version, dataset.emergency
            )
            if not resync:
                self._swap(_CacheState(
                    dataset=state.dataset,
                    source=state.source,
                    synced_at=now,
                    etag=result.etag,
                ))
                return SyncResult(dataset=state.dataset, source=state.source)

            self._swap(_CacheState(
                dataset=dataset,
                source=AllowlistSource.NETWORK,
                synced_at=now,
                etag=result.etag,
            ))
            if self._local is not None:
                self._local.write(dataset, now, result.etag)

            logger.info(
                "ALLOWLIST_SYNCED",
                extra={
                    "version": dataset.version,
                    "previous_version": state.dataset.version,
                    "emergency": dataset.is_emergency,
                    "entry_count": len(dataset.entries),
                }
            )
            return SyncResult(
                dataset=dataset,
                source=AllowlistSource.NETWORK,
                was_resync=state.dataset.version != dataset.version,
            )

    def sync_if_due(self, now: Optional[datetime] = None) -> Optional[SyncResult]:
        """Scheduled entry point: refresh once the current TTL has elapsed."""
        state = self._state
        now = now or self._clock()
        if state.synced_at is not None and not self._expired(state.dataset, state.synced_at, now):
            return None
        return self.refresh()

    def handle_version_notice(self, version: str, emergency: bool = False) -> Optional[SyncResult]:
        """Out-of-cycle trigger when the server announces a new version."""
        current_version = self._state.dataset.version
        if not should_resync(current_version, version, emergency):
            return None
        force = emergency or is_emergency_version(version)
        logger.warning(
            "ALLOWLIST_VERSION_NOTICE",
            extra={
                "current_version": current_version,
                "server_version": version,
                "emergency": force,
            }
        )
        return self.refresh(force_emergency=force)

    def status(self) -> Dict[str, Any]:
        state = self._state
        return {
            "version": state.dataset.version,
            "source": state.source.value,
            "synced_at": state.synced_at.isoformat() if state.synced_at else None,
            "is_emergency": state.dataset.is_emergency,
            "entry_count": len(state.dataset.entries),
        }

    def _fall_back(self, reason: str) -> SyncResult:
        state = self._state
        # The in-memory dataset from a previous network sync is at least as
        # fresh as the disk cache.
        if state.source == AllowlistSource.NETWORK:
            logger.warning(
                "ALLOWLIST_REFRESH_FAILED_KEEPING_CURRENT",
                extra={"reason": reason, "version": state.dataset.version}
            )
            return SyncResult(
                dataset=state.dataset,
                source=AllowlistSource.NETWORK,
                fallback_reason=reason,
            )

        cached = self._local.read() if self._local else None
        if cached is not None:
            self._swap(_CacheState(
                dataset=cached.dataset,
                source=AllowlistSource.CACHE,
                synced_at=state.synced_at,
                etag=cached.etag,
            ))
            logger.warning(
                "ALLOWLIST_FALLBACK_CACHE",
                extra={"reason": reason, "version": cached.dataset.version}
            )
            return SyncResult(
                dataset=cached.dataset,
                source=AllowlistSource.CACHE,
                fallback_reason=reason,
            )

        self._swap(_CacheState(
            dataset=self._bundled,
            source=AllowlistSource.BUNDLED,
            synced_at=state.synced_at,
        ))
        logger.critical(
            "ALLOWLIST_FALLBACK_BUNDLED",
            extra={"reason": reason, "version": self._bundled.version}
        )
        return SyncResult(
            dataset=self._bundled,
            source=AllowlistSource.BUNDLED,
            fallback_reason=reason,
        )

    def _expired(self, dataset: AllowlistDataset, since: datetime, now: Optional[datetime] = None) -> bool:
        ttl = self._emergency_ttl if dataset.is_emergency else self._ttl
        return (now or self._clock()) - since > ttl

    def _swap(self, state: _CacheState) -> None:
        # Single reference assignment; readers see the old or new snapshot whole.
        self._state = state
