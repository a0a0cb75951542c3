"""
Downstream Materializer - turns the outputs of an approved, locked batch into
finished-goods inventory.

Materialization happens at most once per batch. The pass first claims the
batch by inserting its BatchMaterialization row inside a SAVEPOINT; the
unique batch_id makes a second claim fail, and a failed claim is a no-op.
(materialized_goods is additionally unique on (batch_id, batch_output_id).)
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models import BatchMaterialization, BatchOutput, MaterializedGood, ProductionBatch
from src.utils.datetime_utils import today
from src.services.batch_state import Locked, state_of
from src.services.database import session_scope
from src.services.exceptions import BatchNotFound, PreconditionError
from src.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


def _claim(session: Session, batch: ProductionBatch) -> Optional[BatchMaterialization]:
    """Insert the claim row; None when the batch was already materialized."""
    savepoint = session.begin_nested()
    try:
        claim = BatchMaterialization(batch_id=batch.id, batch_code=batch.batch_code, goods_created=0)
        session.add(claim)
        session.flush()
        savepoint.commit()
        return claim
    except IntegrityError:
        savepoint.rollback()
        return None


def materialize(batch_id: int, session: Session) -> Dict[str, Any]:
    """
    Create one MaterializedGood per output of a locked, approved batch.

    Must run in the caller's transaction (finalize_batch calls it right after
    the lock flip). Re-running it for the same batch creates nothing.

    Args:
        batch_id: Locked batch with QA status "approved"
        session: Caller's database session

    Returns:
        Dict with batch_id, batch_code, ``created`` (False when the batch was
        already materialized) and the created goods

    Raises:
        BatchNotFound: If the batch does not exist
        PreconditionError: If the batch is not locked or not approved
    """
    batch = session.get(ProductionBatch, batch_id, populate_existing=True)
    if batch is None:
        raise BatchNotFound(batch_id)

    state = state_of(batch)
    if not isinstance(state, Locked) or not state.materializes:
        raise PreconditionError(
            f"Batch {batch.batch_code} must be locked with QA status 'approved' to be materialized"
        )

    claim = _claim(session, batch)
    if claim is None:
        log_operation(
            logger,
            operation="materialize",
            outcome="already_materialized",
            batch_id=batch.id,
            batch_code=batch.batch_code,
        )
        return {"batch_id": batch.id, "batch_code": batch.batch_code, "created": False, "goods": []}

    outputs = session.execute(
        select(BatchOutput).where(BatchOutput.batch_id == batch.id).order_by(BatchOutput.id)
    ).scalars().all()
    production_date = batch.production_end_date or today()

    goods = []
    for output in outputs:
        quantity = Decimal(output.produced_quantity)
        good = MaterializedGood(
            materialization_id=claim.id,
            batch_id=batch.id,
            batch_output_id=output.id,
            batch_reference=batch.batch_code,
            product_name=output.output_name,
            quantity_created=quantity,
            quantity_available=quantity,
            unit=output.produced_unit,
            output_size=output.output_size,
            output_size_unit=output.output_size_unit,
            produced_goods_tag_id=output.produced_goods_tag_id,
            production_date=production_date,
            qa_status=batch.qa_status,
            custom_fields=list(batch.custom_fields or []),
            additional_information=batch.additional_information,
        )
        session.add(good)
        goods.append(good)

    claim.goods_created = len(goods)
    session.flush()

    log_operation(
        logger,
        operation="materialize",
        outcome="success",
        batch_id=batch.id,
        batch_code=batch.batch_code,
        goods_created=len(goods),
    )
    return {
        "batch_id": batch.id,
        "batch_code": batch.batch_code,
        "created": True,
        "goods": [good.to_dict() for good in goods],
    }


def has_materialized_goods(batch_id: int, session: Optional[Session] = None) -> bool:
    """True once the batch's outputs have been materialized."""

    def _impl(sess: Session) -> bool:
        claim_id = sess.execute(
            select(BatchMaterialization.id).where(BatchMaterialization.batch_id == batch_id)
        ).scalar_one_or_none()
        return claim_id is not None

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_materialized_goods(
    batch_id: Optional[int] = None,
    tag_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """
    List finished goods created from batches.

    Args:
        batch_id: Optional source batch filter
        tag_id: Optional produced goods tag filter

    Returns:
        List of materialized good dicts, newest production date first
    """

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        query = select(MaterializedGood)
        if batch_id is not None:
            query = query.where(MaterializedGood.batch_id == batch_id)
        if tag_id is not None:
            query = query.where(MaterializedGood.produced_goods_tag_id == tag_id)
        query = query.order_by(MaterializedGood.production_date.desc(), MaterializedGood.id)
        return [good.to_dict() for good in sess.execute(query).scalars().all()]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
