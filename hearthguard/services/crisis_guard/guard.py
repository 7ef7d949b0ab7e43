"""Crisis suppression gate.

Runs before any other decision logic. A candidate whose context points at a
crisis resource is dropped without a trace: no flag, no log record, no
reason. The only side effect is a content-free counter that operators can
read for capacity monitoring.
"""
import threading
from typing import Optional, Tuple

from .allowlist import AllowlistDataset
from .allowlist_cache import AllowlistCache
from .domain_matcher import DomainMatcher, extract_domains


class CrisisSuppressionGuard:
    """Decides whether a candidate touches a crisis resource.

    Example:
        guard = CrisisSuppressionGuard(AllowlistCache())
        if guard.check(domain="https://988lifeline.org/chat"):
            return FlagDecision.suppressed()
    """

    def __init__(self, allowlist: Optional[AllowlistCache] = None):
        self._allowlist = allowlist or AllowlistCache()
        self._matcher_lock = threading.Lock()
        self._matcher: Optional[Tuple[AllowlistDataset, DomainMatcher]] = None
        self._counter_lock = threading.Lock()
        self._suppressed_count = 0

    @property
    def allowlist(self) -> AllowlistCache:
        return self._allowlist

    @property
    def suppressed_count(self) -> int:
        """Number of suppressed candidates since startup. Carries no content."""
        return self._suppressed_count

    def check(self, domain: Optional[str] = None, text: Optional[str] = None) -> bool:
        """True if the candidate must be suppressed.

        The domain is checked first, then every domain-like token in the text.
        Returns a bare boolean so no reason can leak to callers.
        """
        matcher = self._current_matcher()

        suppressed = matcher.matches(domain) if domain else False
        if not suppressed and text:
            suppressed = any(matcher.matches(host) for host in extract_domains(text))

        if suppressed:
            with self._counter_lock:
                self._suppressed_count += 1
        return suppressed

    def _current_matcher(self) -> DomainMatcher:
        dataset = self._allowlist.current()
        cached = self._matcher
        if cached is not None and cached[0] is dataset:
            return cached[1]
        with self._matcher_lock:
            cached = self._matcher
            if cached is None or cached[0] is not dataset:
                cached = (dataset, DomainMatcher(dataset))
                self._matcher = cached
        return cached[1]
