"""
Tests for the transactional helpers in services.database.

Covers:
- translate_store_errors mapping driver errors onto the service taxonomy
- run_in_transaction retries on transient failures
- The Lot version column refusing a lost update from a second session
- Two sessions racing to claim the same batch for materialization
"""

import logging
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

import src.services.database as db_module
from src.models import BatchMaterialization, Lot, MaterializedGood, ProductionBatch
from src.models.base import Base
from src.services import (
    batch_output_service,
    batch_service,
    directory_service,
    lot_service,
    materialization_service,
)
from src.services.database import (
    DEFAULT_TRANSIENT_RETRIES,
    create_database_engine,
    run_in_transaction,
    session_scope,
    translate_store_errors,
)
from src.services.exceptions import (
    IntegrityViolation,
    InsufficientQuantity,
    TransientStoreError,
)


@pytest.fixture
def file_db(tmp_path, monkeypatch):
    """SQLite file database where every session gets its own connection."""
    engine = create_database_engine(f"sqlite:///{tmp_path / 'tracker.db'}")

    import src.models  # noqa: F401

    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    monkeypatch.setattr(db_module, "get_session_factory", lambda: factory)

    directory_service.seed_default_directories()
    yield factory

    engine.dispose()


@pytest.fixture
def file_lot(file_db):
    """A 100 Kg. lot and a draft batch stored in the file database."""
    operator = directory_service.create_operator("Asha Patel")
    batch = batch_service.create_batch(operator.id)
    lot = lot_service.receive_lot("raw_material", "Banana Extract", "RM-001", 100, "Kg.")
    return {"lot": lot, "batch": batch}


class TestTranslateStoreErrors:
    """Driver exceptions become service exceptions."""

    def test_integrity_error(self, caplog):
        """IntegrityError becomes IntegrityViolation and is logged at CRITICAL."""
        orig = Exception("UNIQUE constraint failed: lots.lot_code")

        with caplog.at_level(logging.CRITICAL, logger="src.services.database"):
            with pytest.raises(IntegrityViolation) as exc_info:
                with translate_store_errors("receive_lot"):
                    raise IntegrityError("INSERT INTO lots", {}, orig)

        assert "lots.lot_code" in str(exc_info.value)
        assert isinstance(exc_info.value.original_error, IntegrityError)
        record = caplog.records[-1]
        assert record.levelno == logging.CRITICAL
        assert record.outcome == "integrity_violation"
        assert record.operation == "receive_lot"

    def test_integrity_error_from_store(self, test_db, directories):
        """A real constraint failure from the store is translated too."""
        lot_service.receive_lot("raw_material", "Banana Extract", "RM-001", 100, "Kg.")

        with pytest.raises(IntegrityViolation):
            with session_scope() as session:
                with translate_store_errors("insert lot"):
                    session.add(
                        Lot(
                            lot_type="raw_material",
                            name="Duplicate",
                            lot_code="RM-001",
                            unit="Kg.",
                            quantity_received=Decimal("1"),
                            quantity_available=Decimal("1"),
                        )
                    )
                    session.flush()

    def test_stale_data_error(self):
        """StaleDataError is a retryable TransientStoreError."""
        with pytest.raises(TransientStoreError) as exc_info:
            with translate_store_errors("reserve"):
                raise StaleDataError("UPDATE statement on table 'lots' expected to update 1 row(s)")

        assert exc_info.value.retryable is True
        assert "concurrent update during reserve" in str(exc_info.value)
        assert isinstance(exc_info.value.original_error, StaleDataError)

    def test_operational_error(self):
        """Lock timeouts are transient as well."""
        with pytest.raises(TransientStoreError):
            with translate_store_errors():
                raise OperationalError("UPDATE lots", {}, Exception("database is locked"))

    def test_service_errors_pass_through(self):
        """Errors that are already service errors are not rewrapped."""
        with pytest.raises(InsufficientQuantity):
            with translate_store_errors():
                raise InsufficientQuantity("RM-001", Decimal("150"), Decimal("100"), "Kg.")


class TestRunInTransactionRetries:
    """run_in_transaction re-runs work after transient failures."""

    def test_gives_up_after_retries(self, test_db, caplog):
        """Work that always fails transiently runs 1 + DEFAULT_TRANSIENT_RETRIES times."""
        calls = []

        def work(session):
            calls.append(session)
            raise TransientStoreError("database is locked")

        with caplog.at_level(logging.WARNING, logger="src.services.database"):
            with pytest.raises(TransientStoreError):
                run_in_transaction(work, operation="reserve")

        assert len(calls) == DEFAULT_TRANSIENT_RETRIES + 1
        retries = [r for r in caplog.records if getattr(r, "outcome", None) == "retry"]
        assert [r.attempt for r in retries] == list(range(1, DEFAULT_TRANSIENT_RETRIES + 1))

    def test_explicit_retry_count(self, test_db):
        """retries=0 means a single attempt."""
        calls = []

        def work(session):
            calls.append(session)
            raise StaleDataError("lots row changed")

        with pytest.raises(TransientStoreError):
            run_in_transaction(work, retries=0)
        assert len(calls) == 1

    def test_no_retry_for_integrity_violation(self, test_db):
        """Constraint failures are bugs and are not retried."""
        calls = []

        def work(session):
            calls.append(session)
            raise IntegrityError("INSERT", {}, Exception("CHECK constraint failed"))

        with pytest.raises(IntegrityViolation):
            run_in_transaction(work)
        assert len(calls) == 1

    def test_no_retry_in_caller_session(self, test_db):
        """Inside a caller's transaction the failure goes straight back."""
        calls = []

        def work(session):
            calls.append(session)
            raise StaleDataError("lots row changed")

        with pytest.raises(TransientStoreError):
            with session_scope() as session:
                run_in_transaction(work, session)
        assert len(calls) == 1

    def test_reserve_succeeds_on_retry(self, draft_batch, raw_lot, monkeypatch):
        """A stale first attempt is rolled back and the second one commits."""
        original = lot_service._reserve_in_session
        calls = []

        def flaky(session, *args):
            calls.append(args)
            if len(calls) == 1:
                raise StaleDataError("UPDATE statement on table 'lots' expected to update 1 row(s)")
            return original(session, *args)

        monkeypatch.setattr(lot_service, "_reserve_in_session", flaky)

        record = lot_service.reserve(draft_batch["id"], raw_lot["id"], 30)

        assert len(calls) == 2
        assert Decimal(record["quantity_consumed"]) == Decimal("30")
        assert Decimal(lot_service.get_lot(raw_lot["id"])["quantity_available"]) == Decimal("70")
        assert len(lot_service.get_lot_movements(raw_lot["id"])) == 2

    def test_reserve_exhausts_retries(self, draft_batch, raw_lot, monkeypatch):
        """When every attempt is stale the lot is left untouched."""
        calls = []

        def always_stale(session, *args):
            calls.append(args)
            raise StaleDataError("lots row changed")

        monkeypatch.setattr(lot_service, "_reserve_in_session", always_stale)

        with pytest.raises(TransientStoreError):
            lot_service.reserve(draft_batch["id"], raw_lot["id"], 30)

        assert len(calls) == DEFAULT_TRANSIENT_RETRIES + 1
        assert Decimal(lot_service.get_lot(raw_lot["id"])["quantity_available"]) == Decimal("100")


class TestLotVersionGuard:
    """A write based on a stale read of a lot is refused."""

    def test_stale_session_write_refused(self, file_db, file_lot):
        """Session A read version 1; session B commits version 2; A's flush fails."""
        lot_id = file_lot["lot"]["id"]

        stale = file_db()
        try:
            lot = stale.get(Lot, lot_id)
            stale.commit()
            assert lot.version == 1

            lot_service.reserve(file_lot["batch"]["id"], lot_id, 30)

            lot.quantity_available = Decimal("100")
            with pytest.raises(TransientStoreError):
                with translate_store_errors("recount"):
                    stale.flush()
            stale.rollback()
        finally:
            stale.close()

        current = lot_service.get_lot(lot_id)
        assert current["version"] == 2
        assert Decimal(current["quantity_available"]) == Decimal("70")

    def test_lost_update_is_retried(self, file_db, file_lot):
        """A concurrent bump between read and write costs one retry, not the write."""
        lot_id = file_lot["lot"]["id"]
        lots = Lot.__table__
        attempts = []

        def work(session):
            attempts.append(len(attempts) + 1)
            lot = session.get(Lot, lot_id)
            if len(attempts) == 1:
                # Another writer moves the row on after our read
                session.execute(
                    update(lots).where(lots.c.id == lot_id).values(version=lots.c.version + 1)
                )
            lot.notes = "Recounted"
            session.flush()
            return lot.version

        version = run_in_transaction(work, operation="recount")

        assert attempts == [1, 2]
        assert version == 2
        assert lot_service.get_lot(lot_id)["notes"] == "Recounted"


class TestMaterializationClaim:
    """Only one session can claim a batch."""

    @pytest.fixture
    def locked_batch(self, file_db, file_lot):
        """A locked, approved batch with one output and no claim yet."""
        tag_id = directory_service.list_tags()[0].id
        batch_id = file_lot["batch"]["id"]
        batch_output_service.add_output(
            batch_id,
            {
                "output_name": "Banana Alkyl Liquid",
                "produced_quantity": 35,
                "produced_unit": "Kg.",
                "produced_goods_tag_id": tag_id,
            },
        )
        with session_scope() as session:
            session.execute(
                update(ProductionBatch.__table__)
                .where(ProductionBatch.__table__.c.id == batch_id)
                .values(is_locked=True, qa_status="approved")
            )
        return batch_id

    def _count(self, model, batch_id):
        with session_scope() as session:
            return session.execute(
                select(func.count()).select_from(model).where(model.batch_id == batch_id)
            ).scalar_one()

    def test_second_claim_is_refused(self, file_db, locked_batch):
        """The first claim commits; the second gets None."""
        first = file_db()
        second = file_db()
        try:
            claim = materialization_service._claim(first, first.get(ProductionBatch, locked_batch))
            assert claim is not None
            first.commit()

            assert materialization_service._claim(second, second.get(ProductionBatch, locked_batch)) is None
            second.commit()
        finally:
            first.close()
            second.close()

        assert self._count(BatchMaterialization, locked_batch) == 1

    def test_two_sessions_materialize_once(self, file_db, locked_batch):
        """materialize from two sessions creates goods once."""
        results = []
        for _ in range(2):
            session = file_db()
            try:
                results.append(materialization_service.materialize(locked_batch, session))
                session.commit()
            finally:
                session.close()

        assert [r["created"] for r in results] == [True, False]
        assert self._count(BatchMaterialization, locked_batch) == 1
        assert self._count(MaterializedGood, locked_batch) == 1
