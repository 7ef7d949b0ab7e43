"""Flag creation gate.

Order of evaluation for every candidate:
1. Crisis suppression guard. A match ends evaluation immediately, with no
   log record and nothing persisted.
2. Bias adjustment (family bias profile, then app approval).
3. Always-flag floor: adjusted >= 95 creates a flag without consulting
   family thresholds.
4. Family threshold: adjusted >= threshold creates a flag, otherwise the
   candidate is discarded.

Any failure in the gate fails closed to DISCARDED. A broken dependency can
cost a flag but can never create one, and never lets a crisis visit through.
"""
import logging
from typing import Optional

from hearthguard.shared.models import ConcernCandidate, Flag, FlagDecision
from hearthguard.shared.utils import hash_pii
from hearthguard.services.crisis_guard import CrisisSuppressionGuard
from .bias_adjustment import BiasAdjustmentEngine
from .config import ALWAYS_FLAG_THRESHOLD, DecisionConfig
from .threshold_resolver import ThresholdResolver

logger = logging.getLogger(__name__)


class FlagDecisionEngine:
    """Decides whether a ConcernCandidate becomes a Flag.

    Example:
        engine = FlagDecisionEngine(guard, bias_engine, resolver)
        decision = engine.decide(candidate)
        if decision.is_created:
            repository.save(decision.flag)
    """

    def __init__(
        self,
        guard: CrisisSuppressionGuard,
        bias_engine: BiasAdjustmentEngine,
        resolver: ThresholdResolver,
        config: Optional[DecisionConfig] = None,
    ):
        self.guard = guard
        self.bias_engine = bias_engine
        self.resolver = resolver
        self.config = config or DecisionConfig()

    def decide(self, candidate: ConcernCandidate) -> FlagDecision:
        """Gate a single candidate.

        Never raises. Context domain and text are read only by the guard and
        never reach a log record or a returned value.
        """
        try:
            if self.guard.check(candidate.context_domain, candidate.context_text):
                return FlagDecision.suppressed()
        except Exception as e:
            logger.error(
                "CRISIS_GUARD_FAILED",
                extra={"error_type": type(e).__name__, "action": "DISCARDING"}
            )
            return FlagDecision.discarded()

        try:
            adjusted = self.bias_engine.adjust(
                raw_confidence=candidate.raw_confidence,
                family_id=candidate.family_id,
                subject_id=candidate.subject_id,
                app_identifier=candidate.app_identifier,
                category=candidate.category,
            )
        except Exception as e:
            logger.error(
                "BIAS_ADJUSTMENT_FAILED",
                extra={
                    "family_id_hash": hash_pii(candidate.family_id),
                    "error_type": type(e).__name__,
                    "action": "DISCARDING",
                }
            )
            return FlagDecision.discarded()

        if adjusted >= ALWAYS_FLAG_THRESHOLD:
            return self._create(candidate, adjusted, threshold=ALWAYS_FLAG_THRESHOLD)

        try:
            threshold = self.resolver.effective_threshold(candidate.family_id, candidate.category)
        except Exception as e:
            logger.error(
                "THRESHOLD_RESOLUTION_FAILED",
                extra={
                    "family_id_hash": hash_pii(candidate.family_id),
                    "error_type": type(e).__name__,
                    "action": "DISCARDING",
                }
            )
            return FlagDecision.discarded()

        if adjusted >= threshold:
            return self._create(candidate, adjusted, threshold=threshold)

        self._log_discard(candidate, adjusted, threshold)
        return FlagDecision.discarded()

    def _create(self, candidate: ConcernCandidate, adjusted: int, threshold: int) -> FlagDecision:
        flag = Flag.from_candidate(candidate, confidence=adjusted)
        logger.info(
            "FLAG_CREATED",
            extra={
                "flag_id": flag.id,
                "family_id_hash": hash_pii(candidate.family_id),
                "subject_id_hash": hash_pii(candidate.subject_id),
                "category": candidate.category,
                "severity": candidate.severity.value,
                "confidence": adjusted,
                "threshold": threshold,
            }
        )
        return FlagDecision.created(flag)

    def _log_discard(self, candidate: ConcernCandidate, adjusted: int, threshold: int) -> None:
        if not self.config.log_discard_details:
            return
        if candidate.category in self.config.sensitive_categories:
            logger.info("CANDIDATE_DISCARDED")
            return
        logger.info(
            "CANDIDATE_DISCARDED",
            extra={
                "family_id_hash": hash_pii(candidate.family_id),
                "category": candidate.category,
                "confidence": adjusted,
                "threshold": threshold,
            }
        )
