"""Crisis allowlist dataset, version rules and the bundled snapshot.

The dataset is versioned as a whole. An ``emergency`` flag on a remote
dataset (or an ``-emergency-`` version suffix) forces an out-of-cycle
re-sync. A dataset with no entries cannot be constructed, so every tier of
the fallback chain yields a usable allowlist.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Tuple

CRISIS_CATEGORY = "crisis"

_SEMVER_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)")


class AllowlistPayloadError(ValueError):
    """Dataset payload is malformed or empty."""
    pass


class AllowlistUnavailableError(Exception):
    """A tier could not produce a dataset.

    Raised only inside the fallback chain; callers of the cache never see it.
    """
    pass


@dataclass(frozen=True)
class CrisisAllowlistEntry:
    """One crisis resource and the domains that identify it."""
    domain_pattern: str
    name: str = ""
    aliases: Tuple[str, ...] = ()
    category: str = CRISIS_CATEGORY

    def __post_init__(self):
        if not self.domain_pattern:
            raise AllowlistPayloadError("Allowlist entry needs a domain_pattern")
        if self.category != CRISIS_CATEGORY:
            raise AllowlistPayloadError(
                f"Allowlist entries must be category {CRISIS_CATEGORY!r}, got {self.category!r}"
            )

    @property
    def patterns(self) -> Tuple[str, ...]:
        return (self.domain_pattern,) + tuple(self.aliases)


@dataclass(frozen=True)
class AllowlistDataset:
    """Immutable, non-empty crisis allowlist plus its safe-domain blocklist."""
    version: str
    entries: Tuple[CrisisAllowlistEntry, ...]
    safe_domains: FrozenSet[str] = field(default_factory=frozenset)
    emergency: bool = False

    def __post_init__(self):
        if not self.version:
            raise AllowlistPayloadError("Allowlist dataset needs a version")
        if not self.entries:
            raise AllowlistPayloadError("Allowlist dataset cannot be empty")

    @property
    def is_emergency(self) -> bool:
        return self.emergency or is_emergency_version(self.version)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AllowlistDataset":
        """Validate and build a dataset from the sync protocol payload.

        Raises:
            AllowlistPayloadError: If any field is missing, mistyped, or the
                payload has no entries
        """
        if not isinstance(payload, dict):
            raise AllowlistPayloadError("Allowlist payload must be an object")
        raw_entries = payload.get("entries")
        if not isinstance(raw_entries, list):
            raise AllowlistPayloadError("Allowlist payload needs an entries list")

        try:
            version = payload.get("version", "")
            if not isinstance(version, str):
                raise AllowlistPayloadError("version must be a string")
            emergency = payload.get("emergency", False)
            if not isinstance(emergency, bool):
                raise AllowlistPayloadError("emergency must be a boolean")

            entries = tuple(_entry_from_item(item) for item in raw_entries)
            safe_domains = frozenset(
                _domain(d) for d in _string_list(payload.get("safe_domains", []), "safe_domains")
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise AllowlistPayloadError(f"Malformed allowlist payload: {e}") from e

        return cls(
            version=version,
            entries=entries,
            safe_domains=safe_domains,
            emergency=emergency,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "emergency": self.emergency,
            "entries": [
                {
                    "domain": entry.domain_pattern,
                    "name": entry.name,
                    "aliases": list(entry.aliases),
                    "category": entry.category,
                }
                for entry in self.entries
            ],
            "safe_domains": sorted(self.safe_domains),
        }


def _string_list(value: Any, field_name: str) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise AllowlistPayloadError(f"{field_name} must be a list of strings")
    return value


def _domain(value: str) -> str:
    return value.strip().lower()


def _entry_from_item(item: Any) -> CrisisAllowlistEntry:
    if not isinstance(item, dict):
        raise AllowlistPayloadError("Allowlist entry must be an object")
    domain = item["domain"]
    name = item.get("name", "")
    if not isinstance(domain, str) or not isinstance(name, str):
        raise AllowlistPayloadError("Allowlist entry domain and name must be strings")
    return CrisisAllowlistEntry(
        domain_pattern=_domain(domain),
        name=name,
        aliases=tuple(_domain(a) for a in _string_list(item.get("aliases", []), "aliases")),
        category=item.get("category", CRISIS_CATEGORY),
    )


def is_emergency_version(version: str) -> bool:
    """Emergency versions look like ``X.Y.Z-emergency-{pushId}``."""
    return "-emergency-" in version


def compare_versions(a: str, b: str) -> int:
    """Compare the semantic-version prefix of two versions.

    Returns:
        Positive if a > b, negative if a < b, 0 if equal
    """
    def parts(version: str) -> Tuple[int, int, int]:
        match = _SEMVER_PATTERN.match(version)
        if not match:
            return (0, 0, 0)
        return (int(match.group(1)), int(match.group(2)), int(match.group(3)))

    pa, pb = parts(a), parts(b)
    return (pa > pb) - (pa < pb)


def should_resync(current_version: str, server_version: str, emergency: bool = False) -> bool:
    """Decide whether a server version replaces the current one.

    Same version never re-syncs, emergency versions always do, otherwise
    only a semantically newer version does.
    """
    if current_version == server_version:
        return False
    if emergency or is_emergency_version(server_version):
        return True
    return compare_versions(server_version, current_version) > 0


def _entry(domain: str, name: str, *aliases: str) -> CrisisAllowlistEntry:
    return CrisisAllowlistEntry(domain_pattern=domain, name=name, aliases=aliases)


# Compiled into the service; the last tier of the fallback chain.
BUNDLED_ALLOWLIST = AllowlistDataset(
    version="1.0.0",
    entries=(
        _entry("988lifeline.org", "988 Suicide & Crisis Lifeline",
               "suicidepreventionlifeline.org"),
        _entry("crisistextline.org", "Crisis Text Line"),
        _entry("thetrevorproject.org", "The Trevor Project"),
        _entry("rainn.org", "RAINN"),
        _entry("childhelp.org", "Childhelp National Child Abuse Hotline",
               "childhelphotline.org"),
        _entry("thehotline.org", "National Domestic Violence Hotline"),
        _entry("loveisrespect.org", "love is respect"),
        _entry("samhsa.gov", "SAMHSA National Helpline", "findtreatment.gov"),
        _entry("translifeline.org", "Trans Lifeline"),
        _entry("nationaleatingdisorders.org", "National Eating Disorders Association"),
        _entry("stopbullying.gov", "StopBullying.gov"),
        _entry("missingkids.org", "National Center for Missing & Exploited Children",
               "takeitdown.ncmec.org"),
        _entry("nami.org", "NAMI"),
        _entry("afsp.org", "American Foundation for Suicide Prevention"),
        _entry("teenline.org", "Teen Line"),
        _entry("befrienders.org", "Befrienders Worldwide"),
        _entry("kidshelpphone.ca", "Kids Help Phone"),
        _entry("childline.org.uk", "Childline"),
        _entry("samaritans.org", "Samaritans"),
    ),
)
