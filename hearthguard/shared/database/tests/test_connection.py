"""Tests for database connection manager."""
import pytest
from unittest.mock import MagicMock, patch

from hearthguard.shared.database import connection as connection_module
from hearthguard.shared.database.connection import (
    DatabaseConfig,
    ConnectionManager,
    get_connection_manager,
)


class TestDatabaseConfig:
    """Tests for DatabaseConfig dataclass."""

    def test_default_values(self):
        config = DatabaseConfig(host="localhost")

        assert config.host == "localhost"
        assert config.port == 5432
        assert config.database == "hearthguard"
        assert config.min_connections == 2
        assert config.max_connections == 10
        assert config.ssl_mode == "require"

    def test_from_env(self):
        with patch.dict("os.environ", {
            "DB_HOST": "db.example.com",
            "DB_PORT": "5433",
            "DB_NAME": "guardian",
            "DB_USER": "svc",
            "DB_PASSWORD": "secret",
            "DB_SSL_MODE": "disable",
        }):
            config = DatabaseConfig.from_env()

        assert config.host == "db.example.com"
        assert config.port == 5433
        assert config.database == "guardian"
        assert config.username == "svc"
        assert config.ssl_mode == "disable"

    def test_from_secrets_manager(self):
        with patch("boto3.client") as mock_boto:
            mock_boto.return_value.get_secret_value.return_value = {
                "SecretString": '{"host": "rds.internal", "username": "app", "password": "pw"}'
            }
            config = DatabaseConfig.from_secrets_manager("arn:aws:secretsmanager:secret")

        assert config.host == "rds.internal"
        assert config.username == "app"
        mock_boto.assert_called_once_with("secretsmanager", region_name="us-east-1")

    def test_from_secrets_manager_error_propagates(self):
        with patch("boto3.client") as mock_boto:
            mock_boto.return_value.get_secret_value.side_effect = Exception("AccessDenied")
            with pytest.raises(Exception, match="AccessDenied"):
                DatabaseConfig.from_secrets_manager("arn:aws:secretsmanager:secret")


class TestConnectionManager:

    def test_not_initialized_health(self):
        manager = ConnectionManager(DatabaseConfig(host="localhost"))

        assert not manager.initialized
        assert manager.health_check() == {"status": "not_initialized", "healthy": False}

    def test_initialize_creates_pool(self):
        manager = ConnectionManager(DatabaseConfig(host="localhost"))

        with patch("psycopg2.pool.ThreadedConnectionPool") as mock_pool:
            manager.initialize()

        assert manager.initialized
        assert mock_pool.call_args[1]["host"] == "localhost"
        assert mock_pool.call_args[1]["sslmode"] == "require"

    def test_connection_returned_to_pool(self):
        manager = ConnectionManager(DatabaseConfig(host="localhost"))
        manager._pool = MagicMock()

        with manager.get_connection() as conn:
            assert conn is manager._pool.getconn.return_value

        manager._pool.putconn.assert_called_once_with(conn)

    def test_health_check_failure(self):
        manager = ConnectionManager(DatabaseConfig(host="localhost"))
        manager._pool = MagicMock()
        manager._pool.getconn.side_effect = Exception("connection refused")

        result = manager.health_check()

        assert result["healthy"] is False
        assert result["status"] == "error"

    def test_close(self):
        manager = ConnectionManager(DatabaseConfig(host="localhost"))
        pool = MagicMock()
        manager._pool = pool

        manager.close()

        pool.closeall.assert_called_once()
        assert not manager.initialized


class TestGetConnectionManager:

    @pytest.fixture(autouse=True)
    def reset_singleton(self):
        with patch.object(connection_module, "_connection_manager", None):
            yield

    def test_none_without_db_host(self):
        with patch.dict("os.environ", {}, clear=True):
            assert get_connection_manager() is None

    def test_created_with_db_host(self):
        with patch.dict("os.environ", {"DB_HOST": "db.example.com"}, clear=True):
            manager = get_connection_manager()
            assert manager is get_connection_manager()

        assert manager.config.host == "db.example.com"

    def test_secret_arn_takes_precedence(self):
        env = {"DB_SECRET_ARN": "arn:aws:secretsmanager:db", "DB_HOST": "ignored.example.com"}
        with patch.dict("os.environ", env, clear=True), patch("boto3.client") as mock_boto:
            mock_boto.return_value.get_secret_value.return_value = {
                "SecretString": '{"host": "rds.internal", "username": "app", "password": "pw"}'
            }
            manager = get_connection_manager()

        assert manager.config.host == "rds.internal"
        mock_boto.return_value.get_secret_value.assert_called_once_with(
            SecretId="arn:aws:secretsmanager:db"
        )


class TestConnectKwargs:

    def test_statement_timeout_and_application_name(self):
        config = DatabaseConfig(host="localhost", application_name="hearthguard-notify",
                                statement_timeout_ms=2000)

        kwargs = config.connect_kwargs()

        assert kwargs["application_name"] == "hearthguard-notify"
        assert kwargs["options"] == "-c statement_timeout=2000"
        assert kwargs["user"] == ""
