"""Tests for crisis domain matching.

A miss here turns a crisis-resource visit into a guardian-visible flag, so
both directions (typos caught, safe domains ignored) are covered.
"""
import pytest

from hearthguard.services.crisis_guard.allowlist import (
    BUNDLED_ALLOWLIST,
    AllowlistDataset,
    CrisisAllowlistEntry,
)
from hearthguard.services.crisis_guard.domain_matcher import (
    DomainMatcher,
    extract_domains,
    is_blocklisted,
    levenshtein_distance,
    normalize_domain,
    registrable_domain,
)


@pytest.fixture
def matcher():
    return DomainMatcher(BUNDLED_ALLOWLIST)


class TestNormalizeDomain:
    """Tests for URL-to-host normalization."""

    @pytest.mark.parametrize("value,expected", [
        ("988lifeline.org", "988lifeline.org"),
        ("https://988lifeline.org/chat?x=1#top", "988lifeline.org"),
        ("HTTPS://WWW.988Lifeline.ORG/", "988lifeline.org"),
        ("http://user:pw@988lifeline.org:8443/path", "988lifeline.org"),
        ("988lifeline.org.", "988lifeline.org"),
        ("  help.988lifeline.org  ", "help.988lifeline.org"),
    ])
    def test_strips_everything_but_host(self, value, expected):
        assert normalize_domain(value) == expected

    @pytest.mark.parametrize("value", [None, "", "   ", "localhost", "not a domain"])
    def test_invalid_values_return_none(self, value):
        assert normalize_domain(value) is None


class TestHelpers:
    """Tests for distance and domain helpers."""

    def test_levenshtein_distance(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("988lifeline", "988lifline") == 1
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_registrable_domain(self):
        assert registrable_domain("help.chat.988lifeline.org") == "988lifeline.org"
        assert registrable_domain("988lifeline.org") == "988lifeline.org"

    def test_blocklist_covers_subdomains(self):
        assert is_blocklisted("google.com")
        assert is_blocklisted("mail.google.com")
        assert not is_blocklisted("googlehelp.org")

    def test_dataset_safe_domains_extend_blocklist(self):
        assert is_blocklisted("docs.example.org", safe_domains={"example.org"})

    def test_extract_domains_from_text(self):
        text = "Call or visit https://988lifeline.org/chat, or crisistextline.org."
        assert extract_domains(text) == ["988lifeline.org", "crisistextline.org"]

    def test_extract_domains_without_domains(self):
        assert extract_domains("nothing to see here") == []
        assert extract_domains(None) == []


class TestExactMatching:
    """Tests for exact and subdomain matches."""

    @pytest.mark.parametrize("value", [
        "988lifeline.org",
        "https://988lifeline.org/chat",
        "help.988lifeline.org",
        "suicidepreventionlifeline.org",
        "www.thetrevorproject.org",
        "rainn.org",
    ])
    def test_allowlisted_domains_match(self, matcher, value):
        assert matcher.matches(value) is True

    def test_patterns_include_aliases(self, matcher):
        assert "suicidepreventionlifeline.org" in matcher.patterns


class TestFuzzyMatching:
    """Tests for typo-tolerant matching."""

    @pytest.mark.parametrize("value", [
        "988lifecline.org",
        "988lifline.org",
        "988liflin.org",
        "www.988lifline.org",
        "help.988lifline.org",
        "crisistextlin.org",
    ])
    def test_typos_within_distance_match(self, matcher, value):
        assert matcher.matches(value) is True

    def test_fuzzy_match_reports_closest_domain(self, matcher):
        match = matcher.fuzzy_match("988lifline.org")
        assert match is not None
        assert match.matched_against == "988lifeline.org"
        assert match.distance == 1

    def test_distance_three_does_not_match(self, matcher):
        assert matcher.matches("988lifln.org") is False

    def test_tld_must_match(self, matcher):
        assert matcher.matches("thetrevoproject.com") is False

    def test_short_names_only_match_exactly(self, matcher):
        assert matcher.matches("rainn.org") is True
        assert matcher.matches("rann.org") is False
        assert matcher.matches("988.org") is False

    @pytest.mark.parametrize("value", [
        "google.com",
        "mail.google.com",
        "youtube.com",
        "randomwebsite.org",
        "abcdef.org",
    ])
    def test_unrelated_and_safe_domains_do_not_match(self, matcher, value):
        assert matcher.matches(value) is False

    def test_dataset_safe_domain_blocks_fuzzy_match(self):
        dataset = AllowlistDataset(
            version="2.0.0",
            entries=(CrisisAllowlistEntry(domain_pattern="helpline.org"),),
            safe_domains=frozenset({"helpkine.org"}),
        )
        matcher = DomainMatcher(dataset)

        assert matcher.matches("helplime.org") is True
        assert matcher.matches("helpkine.org") is False
