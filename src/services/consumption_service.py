"""
Consumption Record Store - persistence and queries for BatchConsumption.

Records are created and deleted only by the lot pool ledger
(lot_service.reserve / release), which keeps the lot counters in step. The
session-level helpers here take the caller's session and never commit; every
insert or delete first re-reads the owning batch and refuses locked batches.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.models import BatchConsumption, Lot, ProductionBatch
from src.services.batch_state import require_draft
from src.services.database import session_scope
from src.services.exceptions import BatchNotFound, ConsumptionNotFound


def require_unlocked_batch(session: Session, batch_id: int) -> ProductionBatch:
    """
    Load a batch for modification.

    The row is selected FOR UPDATE (a no-op on SQLite, which serializes
    writers) and refreshed from the database so a lock taken by another
    session is seen.

    Raises:
        BatchNotFound: If the batch does not exist
        BatchLocked: If the batch is locked
    """
    batch = session.execute(
        select(ProductionBatch)
        .where(ProductionBatch.id == batch_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if batch is None:
        raise BatchNotFound(batch_id)
    require_draft(batch)
    return batch


def insert_consumption(
    session: Session, batch: ProductionBatch, lot: Lot, quantity: Decimal
) -> BatchConsumption:
    """Create a consumption record for ``lot`` on a draft ``batch`` and flush it."""
    require_draft(batch)
    consumption = BatchConsumption(
        batch_id=batch.id,
        lot_id=lot.id,
        lot_code=lot.lot_code,
        item_name=lot.name,
        lot_type=lot.lot_type,
        quantity_consumed=quantity,
        unit=lot.unit,
    )
    session.add(consumption)
    session.flush()
    return consumption


def delete_consumption(session: Session, consumption: BatchConsumption) -> None:
    """Delete a consumption record of a draft batch and flush."""
    require_unlocked_batch(session, consumption.batch_id)
    session.delete(consumption)
    session.flush()


def get_consumption(consumption_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get a consumption record by id.

    Raises:
        ConsumptionNotFound: If the record does not exist
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        consumption = sess.get(BatchConsumption, consumption_id)
        if consumption is None:
            raise ConsumptionNotFound(consumption_id)
        return consumption.to_dict()

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_batch_consumptions(batch_id: int, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """
    Get the consumption records of a batch in creation order.

    Raises:
        BatchNotFound: If the batch does not exist
    """

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        if sess.get(ProductionBatch, batch_id) is None:
            raise BatchNotFound(batch_id)
        rows = (
            sess.query(BatchConsumption)
            .filter(BatchConsumption.batch_id == batch_id)
            .order_by(BatchConsumption.id)
            .all()
        )
        return [row.to_dict() for row in rows]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def is_batch_locked(batch_id: int, session: Optional[Session] = None) -> bool:
    """
    Check whether a batch is locked.

    Raises:
        BatchNotFound: If the batch does not exist
    """

    def _impl(sess: Session) -> bool:
        locked = sess.execute(
            select(ProductionBatch.is_locked).where(ProductionBatch.id == batch_id)
        ).scalar_one_or_none()
        if locked is None:
            raise BatchNotFound(batch_id)
        return bool(locked)

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
