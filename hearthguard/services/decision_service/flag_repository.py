"""Flag persistence.

Flags are immutable: the table is insert-only and a second insert with the
same id is a DuplicateError, never an update.
"""
import logging
from typing import Any, Dict, Optional, Sequence

from hearthguard.shared.database import BaseRepository, ConnectionManager, DuplicateError
from hearthguard.shared.models import Flag, Severity
from hearthguard.shared.utils import hash_pii

logger = logging.getLogger(__name__)

COLUMNS = (
    "id",
    "family_id",
    "subject_id",
    "category",
    "severity",
    "confidence",
    "created_at",
    "content_event_id",
)


class FlagRepository(BaseRepository[Flag]):
    """Insert-only store of created flags."""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__("flags", connection_manager)
        self._memory_store: Dict[str, Flag] = {}

    def save(self, flag: Flag) -> Flag:
        """Persist a newly created flag.

        Raises:
            DuplicateError: If a flag with the same id already exists
            RepositoryError: If storage fails
        """
        if self.uses_memory:
            with self._lock:
                if flag.id in self._memory_store:
                    raise DuplicateError(f"Flag {flag.id} already exists")
                self._memory_store[flag.id] = flag
        else:
            self._insert(flag)

        logger.info(
            "FLAG_STORED",
            extra={
                "flag_id": flag.id,
                "family_id_hash": hash_pii(flag.family_id),
                "severity": flag.severity.value,
            }
        )
        return flag

    def get(self, flag_id: str) -> Optional[Flag]:
        if self.uses_memory:
            return self._memory_store.get(flag_id)
        rows = self._fetch(
            f"SELECT {', '.join(COLUMNS)} FROM flags WHERE id = %s",
            (flag_id,),
        )
        return rows[0] if rows else None

    def _row_to_entity(self, row: Sequence[Any]) -> Flag:
        values = dict(zip(COLUMNS, row))
        values["severity"] = Severity(values["severity"])
        values["confidence"] = int(values["confidence"])
        return Flag(**values)

    def _entity_to_params(self, entity: Flag) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "family_id": entity.family_id,
            "subject_id": entity.subject_id,
            "category": entity.category,
            "severity": entity.severity.value,
            "confidence": entity.confidence,
            "created_at": entity.created_at,
            "content_event_id": entity.content_event_id,
        }
