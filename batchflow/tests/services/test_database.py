"""Tests for engine setup and database maintenance helpers."""

import pytest
from sqlalchemy import inspect

from batchflow.services import database
from batchflow.services.database import session_scope
from batchflow.utils.config import reset_config


@pytest.fixture
def configured_file_db(clean_config, monkeypatch, tmp_path):
    """Point the global engine at a throwaway SQLite file."""
    monkeypatch.setenv("BATCHFLOW_DATABASE_URL", f"sqlite:///{tmp_path / 'maintenance.db'}")
    reset_config()
    database.close_connections()
    yield tmp_path / "maintenance.db"
    database.close_connections()


class TestInitialization:
    def test_initialize_creates_tables(self, configured_file_db):
        database.initialize_app_database()
        assert configured_file_db.exists()
        assert database.verify_database()

        tables = set(inspect(database.get_engine()).get_table_names())
        assert {"notification_outbox", "fg_dispatch_items", "users"} <= tables
        assert len(tables) == 16

    def test_init_is_idempotent(self, configured_file_db):
        database.initialize_app_database()
        database.init_database()
        assert database.verify_database()


class TestResetDatabase:
    def test_requires_confirmation(self, configured_file_db):
        with pytest.raises(ValueError):
            database.reset_database()

    def test_reset_drops_data(self, configured_file_db):
        from batchflow.models import PackingAreaLocation

        database.initialize_app_database()
        with session_scope() as session:
            session.add(PackingAreaLocation(code="PACK-A1", name="Rack A1"))

        database.reset_database(confirm=True)

        with session_scope() as session:
            assert session.query(PackingAreaLocation).count() == 0


class TestCloseConnections:
    def test_engine_recreated_after_close(self, configured_file_db):
        first = database.get_engine()
        database.close_connections()
        assert database.get_engine() is not first

    def test_in_memory_url_uses_static_pool(self):
        engine = database.create_database_engine("sqlite:///:memory:")
        try:
            assert type(engine.pool).__name__ == "StaticPool"
        finally:
            engine.dispose()
