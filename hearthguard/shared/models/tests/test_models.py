"""Tests for shared domain models."""
import pytest

from hearthguard.shared.models import (
    ConcernCandidate,
    DecisionOutcome,
    DeliveryOutcome,
    DeliveryStatus,
    DigestQueueItem,
    DigestType,
    FamilyBiasProfile,
    FamilySensitivityConfig,
    Flag,
    FlagDecision,
    GuardianNotificationPreference,
    MediumMode,
    SensitivityLevel,
    Severity,
)
from hearthguard.shared.models.notification import parse_clock_time


def _candidate(**overrides):
    values = {
        "category": "violence",
        "raw_confidence": 80,
        "severity": Severity.MEDIUM,
        "family_id": "fam_1",
        "subject_id": "child_1",
    }
    values.update(overrides)
    return ConcernCandidate(**values)


class TestSeverity:

    def test_rank_order(self):
        assert Severity.LOW.rank < Severity.MEDIUM.rank < Severity.CRITICAL.rank


class TestConcernCandidate:

    @pytest.mark.parametrize("confidence", [-1, 101])
    def test_confidence_out_of_range(self, confidence):
        with pytest.raises(ValueError):
            _candidate(raw_confidence=confidence)

    def test_requires_identifiers(self):
        with pytest.raises(ValueError):
            _candidate(subject_id="")

    def test_from_dict(self):
        candidate = ConcernCandidate.from_dict({
            "category": "bullying",
            "raw_confidence": "70",
            "severity": "low",
            "family_id": "fam_1",
            "subject_id": "child_1",
            "context_domain": "example.org",
        })
        assert candidate.raw_confidence == 70
        assert candidate.severity == Severity.LOW
        assert candidate.context_domain == "example.org"

    def test_from_dict_missing_confidence(self):
        with pytest.raises(ValueError):
            ConcernCandidate.from_dict({
                "category": "bullying",
                "severity": "low",
                "family_id": "fam_1",
                "subject_id": "child_1",
            })

    @pytest.mark.parametrize("value", [94.9, "94.9", True, None, [80]])
    def test_from_dict_rejects_non_whole_confidence(self, value):
        with pytest.raises(ValueError):
            ConcernCandidate.from_dict({
                "category": "bullying",
                "raw_confidence": value,
                "severity": "low",
                "family_id": "fam_1",
                "subject_id": "child_1",
            })

    def test_from_dict_accepts_whole_float(self):
        candidate = ConcernCandidate.from_dict({
            "category": "bullying",
            "raw_confidence": 80.0,
            "severity": "low",
            "family_id": "fam_1",
            "subject_id": "child_1",
        })
        assert candidate.raw_confidence == 80
        assert isinstance(candidate.raw_confidence, int)

    def test_boolean_confidence_rejected(self):
        with pytest.raises(ValueError):
            _candidate(raw_confidence=True)


class TestFlag:

    def test_from_candidate_drops_context(self):
        flag = Flag.from_candidate(
            _candidate(context_domain="secret.example.org", context_text="private", content_event_id="cap_1"),
            confidence=82,
        )

        assert flag.id.startswith("flag_")
        assert flag.confidence == 82
        assert flag.content_event_id == "cap_1"
        assert "secret.example.org" not in str(flag.to_dict())
        assert "private" not in str(flag.to_dict())

    def test_is_immutable(self):
        flag = Flag.from_candidate(_candidate(), confidence=80)
        with pytest.raises(AttributeError):
            flag.confidence = 10


class TestFlagDecision:

    def test_only_created_carries_flag(self):
        flag = Flag.from_candidate(_candidate(), confidence=80)
        with pytest.raises(ValueError):
            FlagDecision(outcome=DecisionOutcome.SUPPRESSED, flag=flag)
        with pytest.raises(ValueError):
            FlagDecision(outcome=DecisionOutcome.CREATED)

    def test_suppressed_and_discarded_have_same_shape(self):
        assert vars(FlagDecision.suppressed()).keys() == vars(FlagDecision.discarded()).keys()


class TestCalibration:

    def test_sensitivity_from_dict(self):
        config = FamilySensitivityConfig.from_dict("fam_1", {
            "level": "sensitive",
            "category_overrides": {"violence": "70"},
        })
        assert config.level == SensitivityLevel.SENSITIVE
        assert config.category_overrides == {"violence": 70}

    def test_bias_adjustment_bounds(self):
        with pytest.raises(ValueError):
            FamilyBiasProfile(family_id="fam_1", category="violence", adjustment=25)
        with pytest.raises(ValueError):
            FamilyBiasProfile(family_id="fam_1", category="violence", adjustment=-51)


class TestGuardianPreference:

    @pytest.mark.parametrize("value,minutes", [("00:00", 0), ("07:30", 450), ("23:59", 1439)])
    def test_parse_clock_time(self, value, minutes):
        assert parse_clock_time(value) == minutes

    @pytest.mark.parametrize("value", ["24:00", "7:30", "07:60", "", "noon"])
    def test_parse_clock_time_invalid(self, value):
        with pytest.raises(ValueError):
            parse_clock_time(value)

    def test_quiet_hours_need_both_ends(self):
        with pytest.raises(ValueError):
            GuardianNotificationPreference(guardian_id="g1", quiet_hours_start="22:00")

    def test_notify_nothing(self):
        pref = GuardianNotificationPreference.notify_nothing("g1")
        assert not pref.critical_enabled
        assert pref.medium_mode == MediumMode.OFF
        assert not pref.low_enabled

    def test_from_dict_defaults(self):
        pref = GuardianNotificationPreference.from_dict({"guardian_id": "g1", "timezone": None})
        assert pref.critical_enabled
        assert pref.medium_mode == MediumMode.DIGEST
        assert pref.timezone == "UTC"


class TestQueueModels:

    def test_dedup_key_prefers_content_event(self):
        item = DigestQueueItem(
            guardian_id="g1",
            subject_id="child_1",
            flag_id="flag_1",
            severity=Severity.LOW,
            digest_type=DigestType.DAILY,
            content_event_id="cap_1",
        )
        assert item.dedup_key == "cap_1"

    def test_dedup_key_falls_back_to_flag(self):
        item = DigestQueueItem(
            guardian_id="g1",
            subject_id="child_1",
            flag_id="flag_1",
            severity=Severity.LOW,
            digest_type=DigestType.DAILY,
        )
        assert item.dedup_key == "flag_1"

    def test_delivery_outcomes(self):
        assert DeliveryOutcome.sent().ok
        failed = DeliveryOutcome.failed("EndpointDisabled")
        assert not failed.ok
        assert failed.status == DeliveryStatus.FAILED
