"""DatabaseManager facade tests.

Tests backend selection, connection checks, refresh and cleanup.
"""
import pytest

from config.settings import settings
from database import DatabaseManager
from database.errors import ConfigurationError, ConnectivityError
from database.rest_gateway import RestTableGateway
from database.sql_gateway import SqlTableGateway
from database.store import ConnectionStatus
from tests.fakes import InMemoryGateway


class TestManagerProperties:
    """Test DatabaseManager property accessors."""

    def test_database_url_property(self, temp_db):
        assert temp_db.database_url.startswith("sqlite:///")

    def test_sql_backend_components(self, temp_db):
        assert isinstance(temp_db.gateway, SqlTableGateway)
        assert temp_db.store.gateway is temp_db.gateway
        assert temp_db.conn is not None


class TestManagerBackendSelection:
    """Test gateway construction from settings."""

    def test_injected_gateway(self):
        gateway = InMemoryGateway()
        db = DatabaseManager(gateway=gateway)
        assert db.gateway is gateway
        assert db.conn is None
        assert db.database_url is None
        with pytest.raises(ConfigurationError):
            db.create_tables()

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            DatabaseManager(backend="mongo")

    def test_rest_backend_requires_valid_config(self, monkeypatch):
        monkeypatch.setattr(settings, "backend_url", "https://your-project-id.supabase.co")
        monkeypatch.setattr(settings, "backend_api_key", "your-anon-key")
        with pytest.raises(ConfigurationError):
            DatabaseManager(backend="rest")

    def test_rest_backend_built(self, monkeypatch):
        monkeypatch.setattr(settings, "backend_url", "https://lab.example.co/")
        monkeypatch.setattr(settings, "backend_api_key", "k" * 120)
        db = DatabaseManager(backend="rest")
        try:
            assert isinstance(db.gateway, RestTableGateway)
            assert db.gateway.base_url == "https://lab.example.co"
        finally:
            db.close()


class TestManagerConnection:
    """Test check_connection / refresh / close."""

    def test_check_connection_loads_snapshot(self, temp_db):
        temp_db.store.add_clinic(name="阳光口腔")
        counts = temp_db.check_connection()
        assert counts["clinics"] == 1
        assert temp_db.store.status == ConnectionStatus.CONNECTED

    def test_check_connection_failure(self):
        gateway = InMemoryGateway()
        gateway.probe_error = ConnectivityError(ConnectivityError.UNREACHABLE, "down")
        db = DatabaseManager(gateway=gateway)
        with pytest.raises(ConnectivityError):
            db.check_connection()
        assert db.store.status == ConnectionStatus.ERROR
        assert "down" in db.store.last_error

    def test_close_closes_gateway(self):
        gateway = InMemoryGateway()
        DatabaseManager(gateway=gateway).close()
        assert gateway.closed is True
