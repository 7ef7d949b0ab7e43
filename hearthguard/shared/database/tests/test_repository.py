"""Tests for base repository pattern."""
import pytest
from unittest.mock import MagicMock
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from hearthguard.shared.utils import configure_pii_salt
from hearthguard.shared.database.repository import (
    BaseRepository,
    RepositoryError,
    NotFoundError,
    DuplicateError,
)
from hearthguard.shared.models import Flag, Severity
from hearthguard.services.decision_service.flag_repository import FlagRepository


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@dataclass
class Widget:
    id: str
    name: str
    value: int


class WidgetRepository(BaseRepository[Widget]):
    """Concrete repository for testing."""

    def _row_to_entity(self, row: tuple) -> Widget:
        return Widget(id=row[0], name=row[1], value=row[2])

    def _entity_to_params(self, entity: Widget) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "name": entity.name,
            "value": entity.value,
        }


class UniqueViolation(Exception):
    pgcode = "23505"


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def connection(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn


@pytest.fixture
def connection_manager(connection):
    """Connection manager whose pool hands out the mock connection."""
    manager = MagicMock()
    manager.get_connection.return_value.__enter__.return_value = connection
    return manager


class TestRepositoryExceptions:
    """Tests for repository exception classes."""

    def test_repository_error(self):
        error = RepositoryError("Test error")
        assert str(error) == "Test error"

    def test_not_found_error(self):
        assert isinstance(NotFoundError("missing"), RepositoryError)

    def test_duplicate_error(self):
        assert isinstance(DuplicateError("dup"), RepositoryError)


class TestBackendSelection:

    def test_no_connection_manager_uses_memory(self):
        assert WidgetRepository("widgets").uses_memory

    def test_connection_manager_uses_postgres(self, connection_manager):
        assert not WidgetRepository("widgets", connection_manager).uses_memory


class TestPostgresHelpers:
    """Tests for the SQL plumbing against a mocked pool."""

    @pytest.fixture
    def repository(self, connection_manager):
        return WidgetRepository("widgets", connection_manager)

    def test_insert_builds_parameterized_query(self, repository, cursor, connection):
        repository._insert(Widget(id="w1", name="gear", value=3))

        query, params = cursor.execute.call_args[0]
        assert query == "INSERT INTO widgets (id, name, value) VALUES (%s, %s, %s)"
        assert params == ["w1", "gear", 3]
        connection.commit.assert_called_once()

    def test_unique_violation_becomes_duplicate_error(self, repository, cursor, connection):
        cursor.execute.side_effect = UniqueViolation("duplicate key")

        with pytest.raises(DuplicateError):
            repository._insert(Widget(id="w1", name="gear", value=3))
        connection.rollback.assert_called_once()

    def test_other_write_errors_become_repository_error(self, repository, cursor):
        cursor.execute.side_effect = Exception("connection reset")

        with pytest.raises(RepositoryError) as exc_info:
            repository._execute("UPDATE widgets SET value = 1")
        assert not isinstance(exc_info.value, DuplicateError)

    def test_execute_returns_rowcount(self, repository, cursor):
        cursor.rowcount = 4
        assert repository._execute("UPDATE widgets SET value = 1") == 4

    def test_fetch_maps_rows(self, repository, cursor):
        cursor.fetchall.return_value = [("w1", "gear", 3), ("w2", "cog", 5)]

        widgets = repository._fetch("SELECT id, name, value FROM widgets")

        assert widgets == [Widget("w1", "gear", 3), Widget("w2", "cog", 5)]

    def test_fetch_with_custom_mapper(self, repository, cursor):
        cursor.fetchall.return_value = [("w1",), ("w2",)]
        assert repository._fetch("SELECT id FROM widgets", mapper=lambda row: row[0]) == ["w1", "w2"]

    def test_fetch_error_becomes_repository_error(self, repository, cursor):
        cursor.execute.side_effect = Exception("timeout")
        with pytest.raises(RepositoryError):
            repository._fetch("SELECT 1")


class TestFlagRepository:
    """Flags are insert-only on both backends."""

    @pytest.fixture
    def flag(self):
        return Flag(
            id="flag_1",
            family_id="fam_1",
            subject_id="child_1",
            category="violence",
            severity=Severity.MEDIUM,
            confidence=80,
            created_at=datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc),
        )

    def test_memory_duplicate_rejected(self, flag):
        repository = FlagRepository()
        repository.save(flag)

        with pytest.raises(DuplicateError):
            repository.save(flag)

    def test_postgres_duplicate_rejected(self, flag, connection_manager, cursor):
        cursor.execute.side_effect = UniqueViolation("duplicate key")

        with pytest.raises(DuplicateError):
            FlagRepository(connection_manager).save(flag)

    def test_postgres_round_trip_row(self, flag, connection_manager, cursor):
        cursor.fetchall.return_value = [(
            "flag_1", "fam_1", "child_1", "violence", "medium", 80,
            datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc), None,
        )]

        assert FlagRepository(connection_manager).get("flag_1") == flag
