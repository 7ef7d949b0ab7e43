"""Base repository for HearthGuard tables.

Every repository runs on one of two backends:
- PostgreSQL, when constructed with a ConnectionManager
- An in-process memory store otherwise (development and tests)

Subclasses implement both paths; this base supplies the PostgreSQL plumbing
and the shared error taxonomy.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')

# SQLSTATE for unique_violation
_UNIQUE_VIOLATION = "23505"


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class DuplicateError(RepositoryError):
    """Duplicate entity already exists."""
    pass


class BaseRepository(ABC, Generic[T]):
    """Abstract repository with PostgreSQL helpers and a memory lock."""

    def __init__(
        self,
        table_name: str,
        connection_manager: Optional[ConnectionManager] = None,
    ):
        """Initialize repository.

        Args:
            table_name: Name of the database table
            connection_manager: PostgreSQL connection manager; None selects
                the in-memory backend
        """
        self.table_name = table_name
        self.connection_manager = connection_manager
        self._lock = threading.Lock()

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={
                "table_name": table_name,
                "backend": "memory" if connection_manager is None else "postgresql",
            }
        )

    @property
    def uses_memory(self) -> bool:
        return self.connection_manager is None

    @abstractmethod
    def _row_to_entity(self, row: Sequence[Any]) -> T:
        """Convert a database row (columns in ``COLUMNS`` order) to an entity."""
        pass

    @abstractmethod
    def _entity_to_params(self, entity: T) -> Dict[str, Any]:
        """Convert an entity to column values."""
        pass

    def _insert(self, entity: T) -> None:
        """Insert a row; immutable tables never upsert."""
        params = self._entity_to_params(entity)
        columns = list(params.keys())
        query = (
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))})"
        )
        try:
            self._execute(query, list(params.values()))
        except RepositoryError as e:
            if getattr(e.__cause__, "pgcode", None) == _UNIQUE_VIOLATION:
                raise DuplicateError(f"Duplicate row in {self.table_name}") from e.__cause__
            raise

    def _execute(self, query: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement and commit.

        Returns:
            Affected row count
        """
        try:
            with self.connection_manager.get_connection() as conn:
                try:
                    with conn.cursor() as cur:
                        cur.execute(query, params)
                        rowcount = cur.rowcount
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except Exception as e:
            logger.error(
                "REPOSITORY_WRITE_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Write to {self.table_name} failed: {e}") from e
        return rowcount

    def _fetch(
        self,
        query: str,
        params: Sequence[Any] = (),
        mapper: Optional[Callable[[Sequence[Any]], Any]] = None,
    ) -> List[Any]:
        """Run a read query and map every row to an entity.

        Args:
            mapper: Row converter for queries against secondary tables;
                defaults to ``_row_to_entity``
        """
        mapper = mapper or self._row_to_entity
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    rows = cur.fetchall()
        except Exception as e:
            logger.error(
                "REPOSITORY_READ_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Read from {self.table_name} failed: {e}") from e
        return [mapper(row) for row in rows]
