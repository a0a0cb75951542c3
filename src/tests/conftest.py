"""Pytest configuration and fixtures for service layer tests."""

import pytest
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models.base import Base
from src.services.database import create_database_engine


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    # Same engine setup as production SQLite (foreign keys, explicit BEGIN)
    engine = create_database_engine("sqlite:///:memory:")

    # Register every model before create_all
    import src.models  # noqa: F401

    Base.metadata.create_all(engine)

    # Create session factory
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    # Provide database to test
    yield Session

    # Cleanup
    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    # Restore original session factory
    db_module.get_session_factory = original_get_session


@pytest.fixture(scope="function")
def directories(test_db):
    """Seed the default units and produced goods tags."""
    from src.services import directory_service

    directory_service.seed_default_directories()


@pytest.fixture(scope="function")
def tag_id(directories):
    """Id of the 'finished_liquid' produced goods tag."""
    from src.models import ProducedGoodsTag
    from src.services.database import session_scope

    with session_scope() as session:
        return session.query(ProducedGoodsTag).filter_by(tag_key="finished_liquid").one().id


@pytest.fixture(scope="function")
def operator(test_db):
    """Provide an active operator."""
    from src.services import directory_service

    return directory_service.create_operator("Asha Patel", email="asha@example.com")


@pytest.fixture(scope="function")
def raw_lot(directories):
    """Raw material lot with 100 Kg. available."""
    from src.services import lot_service

    return lot_service.receive_lot(
        lot_type="raw_material",
        name="Banana Extract",
        lot_code="RM-001",
        quantity=100,
        unit="Kg.",
        received_date="2026-03-01",
        supplier_name="Green Farms",
    )


@pytest.fixture(scope="function")
def packaging_lot(directories):
    """Packaging lot with 500 pieces available."""
    from src.services import lot_service

    return lot_service.receive_lot(
        lot_type="packaging",
        name="250ml Bottle",
        lot_code="PK-001",
        quantity=500,
        unit="pieces",
        received_date="2026-03-01",
    )


@pytest.fixture(scope="function")
def draft_batch(operator, directories):
    """Draft batch with QA status pending."""
    from src.services import batch_service

    return batch_service.create_batch(operator.id, notes="Morning run", batch_date="2026-03-02")


@pytest.fixture(scope="function")
def output_data(tag_id):
    """Valid output definition (100 bottles of 250 ml)."""
    return {
        "output_name": "Banana Alkyl Liquid",
        "output_size": 250,
        "output_size_unit": "ml",
        "produced_quantity": 100,
        "produced_unit": "bottles",
        "produced_goods_tag_id": tag_id,
    }


@pytest.fixture(scope="function")
def approval_data():
    """Completion data that passes every finalize gate."""
    return {
        "qa_status": "approved",
        "production_start_date": "2026-03-02",
        "production_end_date": "2026-03-03",
        "custom_fields": [{"key": "pH", "value": "6.8"}],
        "additional_information": "Stored in bay 4",
    }
