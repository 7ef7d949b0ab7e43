"""Exact and fuzzy domain matching against the crisis allowlist.

Matching rules:
1. Input is normalized to a bare host (no scheme, credentials, port, path,
   query, fragment or leading ``www.``).
2. Safe domains and their subdomains never match.
3. A host equal to an allowlisted domain, or a subdomain of one, matches.
4. Otherwise the host (and its registrable domain, so that typo-squatted
   subdomains are caught) is compared by Levenshtein distance against every
   allowlisted domain with the same TLD, guarded by a minimum length and a
   minimum length ratio.

This is safety-critical code: a miss means a crisis-resource visit becomes a
guardian-visible flag.
"""
import logging
import re
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from .allowlist import AllowlistDataset
from .config import (
    FUZZY_BLOCKLIST,
    MAX_LEVENSHTEIN_DISTANCE,
    MIN_DOMAIN_LENGTH,
    MIN_LENGTH_RATIO,
)

logger = logging.getLogger(__name__)

_HOST_PATTERN = re.compile(r"^(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z0-9-]{2,}$")

# Domain-like tokens inside free text, with or without a scheme
_TEXT_DOMAIN_PATTERN = re.compile(
    r"(?:[a-z][a-z0-9+.-]*://)?(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,}(?::\d+)?(?:/\S*)?",
    re.IGNORECASE,
)


def normalize_domain(value: Optional[str]) -> Optional[str]:
    """Reduce a URL or domain to a lowercase bare host.

    Returns:
        The host, or None if the value does not contain a valid domain
    """
    if not value:
        return None
    raw = value.strip()
    if not raw:
        return None
    if "://" not in raw:
        raw = "//" + raw.lstrip("/")

    try:
        host = urlsplit(raw).hostname
    except ValueError:
        return None
    if not host:
        return None

    host = host.rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    if not _HOST_PATTERN.match(host):
        return None
    return host


def parse_domain(host: str) -> Optional[Tuple[str, str]]:
    """Split a host into (base, tld); subdomains stay part of the base."""
    if not host or "." not in host:
        return None
    base, tld = host.lower().rsplit(".", 1)
    if not base or not tld:
        return None
    return base, tld


def registrable_domain(host: str) -> str:
    """Last two labels of a host (``help.example.org`` -> ``example.org``)."""
    labels = host.split(".")
    return ".".join(labels[-2:])


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with insertions, deletions and substitutions."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def length_ratio(a: str, b: str) -> float:
    """Shorter length over longer length; 0 when either is empty."""
    if not a or not b:
        return 0.0
    return min(len(a), len(b)) / max(len(a), len(b))


def is_blocklisted(host: str, safe_domains: Iterable[str] = ()) -> bool:
    """True if host, or any parent domain of it, is a known safe domain."""
    host = host.lower()
    blocked = FUZZY_BLOCKLIST | frozenset(safe_domains)
    labels = host.split(".")
    return any(".".join(labels[i:]) in blocked for i in range(len(labels) - 1))


def extract_domains(text: Optional[str]) -> List[str]:
    """Find every domain-like token in free text, normalized."""
    if not text:
        return []
    hosts = []
    for token in _TEXT_DOMAIN_PATTERN.findall(text):
        host = normalize_domain(token.rstrip(".,;:!?)]}'\""))
        if host and host not in hosts:
            hosts.append(host)
    return hosts


@dataclass(frozen=True)
class DomainMatch:
    """Internal match detail, used by tests and never persisted."""
    matched_against: str
    distance: int


class DomainMatcher:
    """Matcher bound to one immutable allowlist dataset."""

    def __init__(self, dataset: AllowlistDataset):
        self.dataset = dataset
        self._safe_domains: FrozenSet[str] = dataset.safe_domains
        patterns = []
        for entry in dataset.entries:
            for pattern in entry.patterns:
                host = normalize_domain(pattern.lstrip("*."))
                if host and host not in patterns:
                    patterns.append(host)
        self._patterns: Tuple[str, ...] = tuple(patterns)
        self._parsed = tuple(
            (pattern, parsed)
            for pattern in self._patterns
            for parsed in [parse_domain(pattern)]
            if parsed is not None
        )

    @property
    def patterns(self) -> Tuple[str, ...]:
        return self._patterns

    def matches(self, value: Optional[str]) -> bool:
        """True if the value identifies an allowlisted crisis resource."""
        host = normalize_domain(value)
        if host is None or is_blocklisted(host, self._safe_domains):
            return False
        if self.exact_match(host):
            return True
        return self.fuzzy_match(host) is not None

    def exact_match(self, host: str) -> bool:
        return any(
            host == pattern or host.endswith("." + pattern)
            for pattern in self._patterns
        )

    def fuzzy_match(self, value: Optional[str]) -> Optional[DomainMatch]:
        """Closest allowlisted domain within the edit-distance bound."""
        host = normalize_domain(value)
        if host is None or is_blocklisted(host, self._safe_domains):
            return None

        best: Optional[DomainMatch] = None
        for candidate in dict.fromkeys((host, registrable_domain(host))):
            parsed = parse_domain(candidate)
            if parsed is None:
                continue
            base, tld = parsed
            if len(base) < MIN_DOMAIN_LENGTH:
                continue
            for pattern, (pattern_base, pattern_tld) in self._parsed:
                if tld != pattern_tld:
                    continue
                if length_ratio(base, pattern_base) < MIN_LENGTH_RATIO:
                    continue
                distance = levenshtein_distance(base, pattern_base)
                if distance > MAX_LEVENSHTEIN_DISTANCE:
                    continue
                if best is None or distance < best.distance:
                    best = DomainMatch(matched_against=pattern, distance=distance)
        return best
