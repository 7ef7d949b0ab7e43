"""Decision Service: turns concern candidates into flags.

Every candidate passes the crisis suppression guard first; nothing about a
suppressed candidate is logged, stored or returned.

Components:
- decision_engine.py: FlagDecisionEngine (guard -> bias -> floor -> threshold)
- threshold_resolver.py: Per-family threshold resolution
- bias_adjustment.py: Family bias profile and app approval adjustment
- flag_throttle.py: Daily alert caps per monitored subject
- pipeline.py: FlagPipeline (decide, persist, throttle, route)
- config.py: Floor, level thresholds and DecisionConfig
- handler.py: Flask HTTP endpoints (/health, /ready, /evaluate)

Usage:
    # As HTTP service
    POST /evaluate {"category": "...", "raw_confidence": 80, "severity": "medium", ...}
"""

from .bias_adjustment import BiasAdjustmentEngine
from .config import ALWAYS_FLAG_THRESHOLD, DEFAULT_THRESHOLD, DecisionConfig, ThrottleLevel
from .config_repository import CalibrationRepository
from .decision_engine import FlagDecisionEngine
from .flag_repository import FlagRepository
from .flag_throttle import FlagThrottle
from .pipeline import FlagPipeline, PipelineResult
from .threshold_resolver import ThresholdResolver

__all__ = [
    "BiasAdjustmentEngine",
    "ALWAYS_FLAG_THRESHOLD",
    "DEFAULT_THRESHOLD",
    "DecisionConfig",
    "ThrottleLevel",
    "CalibrationRepository",
    "FlagDecisionEngine",
    "FlagRepository",
    "FlagThrottle",
    "FlagPipeline",
    "PipelineResult",
    "ThresholdResolver",
]
