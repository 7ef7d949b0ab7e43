"""Read access to family calibration settings.

Sensitivity, bias profiles, app approvals and throttle levels are owned by
the account settings service. The decision engine only reads them; the
``save_*`` methods exist for that service and for seeding local stores.
"""
import json
import logging
from typing import Any, Dict, Optional, Sequence, Tuple

from hearthguard.shared.database import BaseRepository, ConnectionManager
from hearthguard.shared.models import (
    ApprovalStatus,
    AppApprovalRecord,
    FamilyBiasProfile,
    FamilySensitivityConfig,
    SensitivityLevel,
)
from .config import ThrottleLevel

logger = logging.getLogger(__name__)


class CalibrationRepository(BaseRepository[FamilySensitivityConfig]):
    """Family calibration store.

    The primary table is ``family_sensitivity``; bias profiles, app
    approvals and throttle levels live in their own tables and are mapped
    with dedicated row converters.
    """

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__("family_sensitivity", connection_manager)
        self._sensitivity: Dict[str, FamilySensitivityConfig] = {}
        self._bias: Dict[Tuple[str, str], FamilyBiasProfile] = {}
        self._approvals: Dict[Tuple[str, str, str], AppApprovalRecord] = {}
        self._throttle: Dict[str, ThrottleLevel] = {}

    # -- reads ---------------------------------------------------------------

    def get_sensitivity(self, family_id: str) -> Optional[FamilySensitivityConfig]:
        if self.uses_memory:
            return self._sensitivity.get(family_id)
        rows = self._fetch(
            "SELECT family_id, level, category_overrides "
            "FROM family_sensitivity WHERE family_id = %s",
            (family_id,),
        )
        return rows[0] if rows else None

    def get_bias_profile(self, family_id: str, category: str) -> Optional[FamilyBiasProfile]:
        if self.uses_memory:
            return self._bias.get((family_id, category))
        rows = self._fetch(
            "SELECT family_id, category, adjustment, correction_count "
            "FROM family_bias_profiles WHERE family_id = %s AND category = %s",
            (family_id, category),
            mapper=_row_to_bias_profile,
        )
        return rows[0] if rows else None

    def get_app_approval(
        self,
        subject_id: str,
        app_identifier: str,
        category: str,
    ) -> Optional[AppApprovalRecord]:
        if self.uses_memory:
            return self._approvals.get((subject_id, app_identifier, category))
        rows = self._fetch(
            "SELECT subject_id, app_identifier, category, status "
            "FROM app_approvals "
            "WHERE subject_id = %s AND app_identifier = %s AND category = %s",
            (subject_id, app_identifier, category),
            mapper=_row_to_app_approval,
        )
        return rows[0] if rows else None

    def get_throttle_level(self, family_id: str) -> Optional[ThrottleLevel]:
        if self.uses_memory:
            return self._throttle.get(family_id)
        rows = self._fetch(
            "SELECT level FROM family_throttle WHERE family_id = %s",
            (family_id,),
            mapper=lambda row: ThrottleLevel(row[0]),
        )
        return rows[0] if rows else None

    # -- writes --------------------------------------------------------------

    def save_sensitivity(self, config: FamilySensitivityConfig) -> None:
        if self.uses_memory:
            with self._lock:
                self._sensitivity[config.family_id] = config
            return
        params = self._entity_to_params(config)
        self._execute(
            "INSERT INTO family_sensitivity (family_id, level, category_overrides) "
            "VALUES (%s, %s, %s) ON CONFLICT (family_id) DO UPDATE SET "
            "level = EXCLUDED.level, category_overrides = EXCLUDED.category_overrides",
            list(params.values()),
        )

    def save_bias_profile(self, profile: FamilyBiasProfile) -> None:
        if self.uses_memory:
            with self._lock:
                self._bias[(profile.family_id, profile.category)] = profile
            return
        self._execute(
            "INSERT INTO family_bias_profiles "
            "(family_id, category, adjustment, correction_count) "
            "VALUES (%s, %s, %s, %s) ON CONFLICT (family_id, category) DO UPDATE SET "
            "adjustment = EXCLUDED.adjustment, "
            "correction_count = EXCLUDED.correction_count",
            (profile.family_id, profile.category, profile.adjustment, profile.correction_count),
        )

    def save_app_approval(self, record: AppApprovalRecord) -> None:
        if self.uses_memory:
            key = (record.subject_id, record.app_identifier, record.category)
            with self._lock:
                self._approvals[key] = record
            return
        self._execute(
            "INSERT INTO app_approvals (subject_id, app_identifier, category, status) "
            "VALUES (%s, %s, %s, %s) "
            "ON CONFLICT (subject_id, app_identifier, category) DO UPDATE SET "
            "status = EXCLUDED.status",
            (record.subject_id, record.app_identifier, record.category, record.status.value),
        )

    def save_throttle_level(self, family_id: str, level: ThrottleLevel) -> None:
        if self.uses_memory:
            with self._lock:
                self._throttle[family_id] = level
            return
        self._execute(
            "INSERT INTO family_throttle (family_id, level) VALUES (%s, %s) "
            "ON CONFLICT (family_id) DO UPDATE SET level = EXCLUDED.level",
            (family_id, level.value),
        )

    # -- row mapping ---------------------------------------------------------

    def _row_to_entity(self, row: Sequence[Any]) -> FamilySensitivityConfig:
        family_id, level, overrides = row
        if isinstance(overrides, str):
            overrides = json.loads(overrides)
        return FamilySensitivityConfig(
            family_id=family_id,
            level=SensitivityLevel(level),
            category_overrides={k: int(v) for k, v in (overrides or {}).items()},
        )

    def _entity_to_params(self, entity: FamilySensitivityConfig) -> Dict[str, Any]:
        return {
            "family_id": entity.family_id,
            "level": entity.level.value,
            "category_overrides": json.dumps(entity.category_overrides),
        }


def _row_to_bias_profile(row: Sequence[Any]) -> FamilyBiasProfile:
    family_id, category, adjustment, correction_count = row
    return FamilyBiasProfile(
        family_id=family_id,
        category=category,
        adjustment=int(adjustment),
        correction_count=int(correction_count),
    )


def _row_to_app_approval(row: Sequence[Any]) -> AppApprovalRecord:
    subject_id, app_identifier, category, status = row
    return AppApprovalRecord(
        subject_id=subject_id,
        app_identifier=app_identifier,
        category=category,
        status=ApprovalStatus(status),
    )
