"""Pytest configuration and fixtures for service layer tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

import batchflow.models  # noqa: F401  (registers every table with Base)
from batchflow.models.base import Base
from batchflow.services.identity import Principal
from batchflow.utils.config import reset_config
from batchflow.utils.constants import (
    ROLE_FG_STORE_MANAGER,
    ROLE_PACKING_AREA_MANAGER,
    ROLE_PRODUCTION_MANAGER,
)


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    # Create in-memory SQLite database for testing
    engine = create_engine("sqlite:///:memory:", echo=False)

    # Create all tables
    Base.metadata.create_all(engine)

    # Create session factory
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import batchflow.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    # Provide database to test
    yield Session

    # Cleanup
    Session.remove()
    Base.metadata.drop_all(engine)

    # Restore original session factory
    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def file_db(tmp_path):
    """File-backed database where every session is independent.

    Used by tests that need two sessions looking at the same rows (lost
    update detection). Returns the sessionmaker.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'batchflow-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    import batchflow.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: session_factory

    yield session_factory

    db_module.get_session_factory = original_get_session
    engine.dispose()


@pytest.fixture
def clean_config(monkeypatch):
    """Reset the Config singleton around a test that sets BATCHFLOW_* variables."""
    for name in (
        "BATCHFLOW_ENV",
        "BATCHFLOW_DATABASE_URL",
        "BATCHFLOW_DB_TIMEOUT",
        "BATCHFLOW_NOTIFY_MAX_ATTEMPTS",
        "BATCHFLOW_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


# =============================================================================
# Principals
# =============================================================================


@pytest.fixture
def production_manager():
    return Principal(
        id="u-prod",
        display_name="Pat Production",
        email="pat@example.com",
        role=ROLE_PRODUCTION_MANAGER,
    )


@pytest.fixture
def qc_officer():
    return Principal(id="u-qc", email="quinn@example.com")


@pytest.fixture
def packing_manager():
    return Principal(
        id="u-pack",
        display_name="Kim Packing",
        role=ROLE_PACKING_AREA_MANAGER,
    )


@pytest.fixture
def fg_manager():
    return Principal(
        id="u-fg",
        display_name="Robin Store",
        role=ROLE_FG_STORE_MANAGER,
    )


@pytest.fixture
def role_users(test_db):
    """Two packing managers and one FG store manager in the users collection."""
    from batchflow.services import identity

    return [
        identity.create_user("u-pack", "Kim Packing", role=ROLE_PACKING_AREA_MANAGER),
        identity.create_user("u-pack-2", "Lee Packing", role=ROLE_PACKING_AREA_MANAGER),
        identity.create_user("u-fg", "Robin Store", role=ROLE_FG_STORE_MANAGER),
    ]


# =============================================================================
# Workflow data
# =============================================================================


@pytest.fixture
def sample_batch(test_db, production_manager):
    """An active 100 kg batch."""
    from batchflow.services import production_service

    return production_service.create_batch(
        {
            "product_id": "PRD-001",
            "product_name": "Tomato Sauce",
            "target_quantity": 100,
            "unit": "kg",
        },
        principal=production_manager,
    )


@pytest.fixture
def completed_batch(sample_batch, production_manager):
    """sample_batch run through to completed with 100 kg output."""
    from batchflow.services import production_service

    return production_service.update_batch_stage(
        sample_batch["id"],
        "completed",
        {"output_quantity": 100},
        principal=production_manager,
    )


@pytest.fixture
def sample_stock(test_db, packing_manager):
    """80 kg of grade A stock at PACK-A1."""
    from batchflow.services import packing_stock_service

    return packing_stock_service.add_to_packing_stock(
        {
            "batch_number": "BATCH-PROD-2025-0001",
            "product_id": "PRD-001",
            "product_name": "Tomato Sauce",
            "quantity": 80,
            "unit": "kg",
            "quality_grade": "A",
            "expiry_date": "2030-01-31",
        },
        principal=packing_manager,
    )


@pytest.fixture
def half_kilo_variant(test_db):
    """A 0.5 kg jar variant of PRD-001."""
    from batchflow.services import product_variant_service

    return product_variant_service.create_product_variant(
        {
            "product_id": "PRD-001",
            "product_name": "Tomato Sauce",
            "name": "500 g Jar",
            "size": "0.5",
            "unit": "kg",
            "packaging_type": "jar",
        }
    )
