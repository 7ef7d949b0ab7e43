"""Candidate-to-notification pipeline.

decide -> persist -> throttle -> route. Everything up to persistence fails
closed; routing is best-effort and can never undo or block a stored flag.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from hearthguard.shared.database import RepositoryError
from hearthguard.shared.models import ConcernCandidate, FlagDecision
from hearthguard.shared.utils import hash_pii
from hearthguard.services.notification_service.router import (
    NotificationRoutingOrchestrator,
    RoutingResult,
)
from .decision_engine import FlagDecisionEngine
from .flag_repository import FlagRepository
from .flag_throttle import FlagThrottle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    decision: FlagDecision
    throttled: bool = False
    routing: Dict[str, RoutingResult] = field(default_factory=dict)

    @property
    def flag_created(self) -> bool:
        return self.decision.is_created


class FlagPipeline:
    """Runs one candidate through decision, persistence and routing."""

    def __init__(
        self,
        engine: FlagDecisionEngine,
        flag_repository: FlagRepository,
        router: Optional[NotificationRoutingOrchestrator] = None,
        throttle: Optional[FlagThrottle] = None,
    ):
        self.engine = engine
        self.flag_repository = flag_repository
        self.router = router
        self.throttle = throttle

    def process(self, candidate: ConcernCandidate) -> PipelineResult:
        decision = self.engine.decide(candidate)
        if not decision.is_created:
            return PipelineResult(decision=decision)

        flag = decision.flag
        try:
            self.flag_repository.save(flag)
        except RepositoryError as e:
            logger.error(
                "FLAG_PERSIST_FAILED",
                extra={
                    "flag_id": flag.id,
                    "family_id_hash": hash_pii(flag.family_id),
                    "error_type": type(e).__name__,
                    "action": "DISCARDING",
                }
            )
            return PipelineResult(decision=FlagDecision.discarded())

        if self.router is None:
            return PipelineResult(decision=decision)

        if self.throttle is not None:
            try:
                allowed = self.throttle.admit(flag)
            except Exception as e:
                logger.error(
                    "FLAG_THROTTLE_FAILED",
                    extra={"flag_id": flag.id, "error_type": type(e).__name__}
                )
                allowed = True
            if not allowed:
                return PipelineResult(decision=decision, throttled=True)

        try:
            routing = self.router.route_for_family(flag)
        except Exception as e:
            logger.error(
                "FLAG_ROUTING_FAILED",
                extra={"flag_id": flag.id, "error_type": type(e).__name__}
            )
            routing = {}
        return PipelineResult(decision=decision, routing=routing)
