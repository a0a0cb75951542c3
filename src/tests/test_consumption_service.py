"""Tests for the consumption record store."""

from decimal import Decimal

import pytest

from src.models import BatchConsumption, Lot, ProductionBatch
from src.services import batch_output_service, batch_service, consumption_service, lot_service
from src.services.database import session_scope
from src.services.exceptions import BatchLocked, BatchNotFound, ConsumptionNotFound


class TestConsumptionQueries:
    """Tests for the read side."""

    def test_get_batch_consumptions_in_order(self, draft_batch, raw_lot, packaging_lot):
        """Records are listed in creation order with their snapshots."""
        lot_service.reserve(draft_batch["id"], raw_lot["id"], 30)
        lot_service.reserve(draft_batch["id"], packaging_lot["id"], 100)

        records = consumption_service.get_batch_consumptions(draft_batch["id"])

        assert [record["lot_code"] for record in records] == ["RM-001", "PK-001"]
        assert records[1]["lot_type"] == "packaging"
        assert Decimal(records[1]["quantity_consumed"]) == Decimal("100")

    def test_get_batch_consumptions_unknown_batch(self, test_db):
        """Unknown batches raise BatchNotFound."""
        with pytest.raises(BatchNotFound):
            consumption_service.get_batch_consumptions(9999)

    def test_get_consumption(self, draft_batch, raw_lot):
        """A single record can be fetched by id."""
        created = lot_service.reserve(draft_batch["id"], raw_lot["id"], 30)
        fetched = consumption_service.get_consumption(created["id"])
        assert fetched["batch_id"] == draft_batch["id"]
        with pytest.raises(ConsumptionNotFound):
            consumption_service.get_consumption(9999)

    def test_is_batch_locked(self, draft_batch, raw_lot, output_data, approval_data):
        """The lock flag is reported before and after finalize."""
        assert consumption_service.is_batch_locked(draft_batch["id"]) is False

        batch_output_service.add_output(draft_batch["id"], output_data)
        batch_service.finalize_batch(draft_batch["id"], approval_data)

        assert consumption_service.is_batch_locked(draft_batch["id"]) is True
        with pytest.raises(BatchNotFound):
            consumption_service.is_batch_locked(9999)


class TestSessionGuards:
    """The session-level helpers refuse locked batches."""

    def test_require_unlocked_batch_sees_lock(self, draft_batch):
        """A lock written by another session is picked up."""
        with session_scope() as session:
            batch = consumption_service.require_unlocked_batch(session, draft_batch["id"])
            assert batch.batch_code == draft_batch["batch_code"]

        with session_scope() as session:
            batch = session.get(ProductionBatch, draft_batch["id"])
            batch.qa_status = "approved"
            batch.is_locked = True

        with session_scope() as session:
            with pytest.raises(BatchLocked):
                consumption_service.require_unlocked_batch(session, draft_batch["id"])

    def test_insert_consumption_into_locked_batch(self, draft_batch, raw_lot):
        """insert_consumption checks the batch it is given."""
        with session_scope() as session:
            batch = session.get(ProductionBatch, draft_batch["id"])
            lot = session.get(Lot, raw_lot["id"])
            batch.qa_status = "rejected"
            batch.qa_reason = "Contaminated"
            batch.is_locked = True
            session.flush()

            with pytest.raises(BatchLocked):
                consumption_service.insert_consumption(session, batch, lot, Decimal("5"))
            session.rollback()

    def test_delete_consumption_from_locked_batch(self, draft_batch, raw_lot):
        """delete_consumption re-reads the batch and refuses when locked."""
        created = lot_service.reserve(draft_batch["id"], raw_lot["id"], 30)

        with session_scope() as session:
            session.get(ProductionBatch, draft_batch["id"]).qa_status = "approved"
            session.get(ProductionBatch, draft_batch["id"]).is_locked = True

        with session_scope() as session:
            record = session.get(BatchConsumption, created["id"])
            with pytest.raises(BatchLocked):
                consumption_service.delete_consumption(session, record)

        with session_scope() as session:
            assert session.get(BatchConsumption, created["id"]) is not None
