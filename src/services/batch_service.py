"""
Batch Lifecycle Controller - create, edit, save, finalize and delete
production batches.

A batch is a Draft until finalize_batch locks it; see batch_state for the QA
transition table. Draft mutations are written with a single conditional
UPDATE (``WHERE is_locked = false AND qa_status = <read value>``), so a batch
locked or re-decided by another caller between our read and our write is
detected by the row count instead of being overwritten.

Finalize runs its gates, the lock flip and materialization in one
transaction. Gates are checked in this order:

1. NoOutputsDefined - the batch has no outputs
2. InvalidDateRange - production dates missing or end before start
3. QaNotResolved - QA status is pending or hold
4. MissingReason - rejected without a reason

Example Usage:
    >>> from src.services import batch_service
    >>> batch = batch_service.create_batch(operator_id, "Morning run")
    >>> batch["batch_code"]
    'BATCH-0001'
    >>> batch_service.finalize_batch(batch["id"], {
    ...     "qa_status": "approved",
    ...     "production_start_date": "2026-03-01",
    ...     "production_end_date": "2026-03-02",
    ... })["is_locked"]
    True
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from src.models import BatchConsumption, BatchOutput, ProductionBatch, QaStatus
from src.utils.config import get_config
from src.utils.constants import (
    BATCH_CODE_DIGITS,
    BATCH_CODE_MAX_ATTEMPTS,
    COMPLETION_FIELDS,
    EDITABLE_BATCH_FIELDS,
    MAX_REASON_LENGTH,
)
from src.utils.datetime_utils import parse_date, today, utc_now
from src.utils.validators import sanitize_string, validate_string_length
from src.services import directory_service, lot_service, materialization_service
from src.services.batch_state import coerce_qa_status, require_draft, state_of
from src.services.consumption_service import require_unlocked_batch
from src.services.database import run_in_transaction, session_scope
from src.services.exceptions import (
    BatchLocked,
    BatchNotFound,
    InvalidDateRange,
    MissingReason,
    NoOutputsDefined,
    PreconditionError,
    TransientStoreError,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


# =============================================================================
# Internal helpers
# =============================================================================


def _next_batch_code(session: Session, prefix: str) -> str:
    """Next sequential code for ``prefix``: max existing suffix + 1."""
    codes = session.execute(
        select(ProductionBatch.batch_code).where(ProductionBatch.batch_code.like(f"{prefix}%"))
    ).scalars()
    highest = 0
    for code in codes:
        suffix = code[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:0{BATCH_CODE_DIGITS}d}"


def _normalize_custom_fields(value: Any) -> List[Dict[str, Any]]:
    """Accept a list of {"key", "value"} pairs or a plain mapping."""
    if value is None:
        return []
    if isinstance(value, dict):
        value = [{"key": key, "value": item} for key, item in value.items()]
    if not isinstance(value, (list, tuple)):
        raise ValidationError(["Custom fields: must be a list of key/value pairs"])

    fields = []
    for entry in value:
        if not isinstance(entry, dict) or "key" not in entry:
            raise ValidationError(["Custom fields: each entry needs a 'key'"])
        key = sanitize_string(entry.get("key"))
        if key is None:
            raise ValidationError(["Custom fields: key cannot be empty"])
        item = entry.get("value")
        if item is not None and not isinstance(item, (str, int, float)):
            raise ValidationError([f"Custom fields: value of '{key}' must be text or a number"])
        fields.append({"key": key, "value": item})
    return fields


def _prepare_changes(
    session: Session, batch: ProductionBatch, data: Dict[str, Any], allowed: Iterable[str]
) -> Dict[str, Any]:
    """
    Validate requested changes against a draft batch.

    Returns:
        Column values to write; qa_reason is cleared whenever the resulting
        QA status does not carry a reason
    """
    unknown = set(data) - set(allowed)
    if unknown:
        raise ValidationError([f"Unknown or read-only batch field(s): {', '.join(sorted(unknown))}"])

    state = require_draft(batch)
    values: Dict[str, Any] = {}
    errors = []

    if "notes" in data:
        values["notes"] = sanitize_string(data["notes"])

    if "batch_date" in data:
        try:
            batch_date = parse_date(data["batch_date"])
        except ValueError as e:
            errors.append(f"Batch date: {e}")
        else:
            if batch_date is None:
                errors.append("Batch date: This field is required")
            else:
                values["batch_date"] = batch_date

    for field, label in (
        ("production_start_date", "Production start date"),
        ("production_end_date", "Production end date"),
    ):
        if field in data:
            try:
                values[field] = parse_date(data[field])
            except ValueError as e:
                errors.append(f"{label}: {e}")

    if "qa_reason" in data:
        reason = sanitize_string(data["qa_reason"])
        valid, error = validate_string_length(reason, MAX_REASON_LENGTH, "QA reason")
        if not valid:
            errors.append(error)
        values["qa_reason"] = reason

    if "additional_information" in data:
        values["additional_information"] = sanitize_string(data["additional_information"])

    if errors:
        raise ValidationError(errors)

    if "custom_fields" in data:
        values["custom_fields"] = _normalize_custom_fields(data["custom_fields"])

    if "responsible_operator_id" in data:
        if data["responsible_operator_id"] is None:
            raise ValidationError(["Responsible operator: This field is required"])
        operator = directory_service.require_active_operator(session, data["responsible_operator_id"])
        values["responsible_operator_id"] = operator.id

    target = state
    if "qa_status" in data:
        target = state.with_qa(data["qa_status"])
        if target.qa.value != batch.qa_status:
            values["qa_status"] = target.qa.value

    if not target.qa.requires_reason and ("qa_reason" in values or batch.qa_reason is not None):
        values["qa_reason"] = None

    return values


def _reload(session: Session, batch_id: int) -> ProductionBatch:
    return session.execute(
        select(ProductionBatch)
        .where(ProductionBatch.id == batch_id)
        .execution_options(populate_existing=True)
    ).scalar_one()


def _raise_write_conflict(session: Session, batch_id: int, operation: str) -> None:
    """Explain why a conditional batch UPDATE matched no row."""
    locked = session.execute(
        select(ProductionBatch.is_locked).where(ProductionBatch.id == batch_id)
    ).scalar_one_or_none()
    if locked is None:
        raise BatchNotFound(batch_id)
    if locked:
        log_operation(
            logger, operation=operation, outcome="batch_locked", level=logging.WARNING, batch_id=batch_id
        )
        raise BatchLocked(batch_id)
    raise TransientStoreError(f"batch {batch_id} changed during {operation}")


def _apply_changes(
    session: Session, batch: ProductionBatch, values: Dict[str, Any], operation: str
) -> ProductionBatch:
    """Write ``values`` with one UPDATE guarded by the lock flag and the read QA status."""
    if not values:
        return batch
    result = session.execute(
        update(ProductionBatch)
        .where(
            ProductionBatch.id == batch.id,
            ProductionBatch.is_locked.is_(False),
            ProductionBatch.qa_status == batch.qa_status,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        _raise_write_conflict(session, batch.id, operation)
    return _reload(session, batch.id)


def _batch_dict(batch: ProductionBatch, include_relationships: bool = False) -> Dict[str, Any]:
    result = batch.to_dict(include_relationships=include_relationships)
    result["state"] = "locked" if batch.is_locked else "draft"
    return result


def _refuse(batch: ProductionBatch, error: PreconditionError, outcome: str) -> None:
    log_operation(
        logger,
        operation="finalize_batch",
        outcome=outcome,
        level=logging.WARNING,
        batch_id=batch.id,
        batch_code=batch.batch_code,
        qa_status=batch.qa_status,
    )
    raise error


def _check_finalize_gates(session: Session, batch: ProductionBatch) -> None:
    output_count = session.execute(
        select(func.count(BatchOutput.id)).where(BatchOutput.batch_id == batch.id)
    ).scalar_one()
    if output_count == 0:
        _refuse(batch, NoOutputsDefined(batch.id), "no_outputs_defined")

    start, end = batch.production_start_date, batch.production_end_date
    if start is None or end is None or end < start:
        _refuse(batch, InvalidDateRange(start, end), "invalid_date_range")

    try:
        locked_state = require_draft(batch).lock()
    except PreconditionError as e:
        _refuse(batch, e, "qa_not_resolved")

    if locked_state.qa == QaStatus.REJECTED and not batch.qa_reason:
        _refuse(batch, MissingReason(locked_state.qa.value), "missing_reason")


# =============================================================================
# Commands
# =============================================================================


def create_batch(
    responsible_operator_id: int,
    notes: Optional[str] = None,
    batch_date: Optional[date] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Create a draft batch with QA status "pending".

    The sequential batch code is generated inside the transaction. Two callers
    racing for the same code are separated by the unique constraint; the loser
    retries with the next code.

    Args:
        responsible_operator_id: Active operator responsible for the batch
        notes: Optional notes
        batch_date: Business date (date or ISO string); defaults to today
        session: Optional database session

    Returns:
        The created batch as a dict

    Raises:
        ValidationError: If the batch date is invalid or no operator is given
        OperatorNotFound: If the operator does not exist or is inactive
    """
    if responsible_operator_id is None:
        raise ValidationError(["Responsible operator: This field is required"])
    try:
        business_date = parse_date(batch_date) or today()
    except ValueError as e:
        raise ValidationError([f"Batch date: {e}"]) from e
    prefix = get_config().batch_code_prefix

    def _impl(sess: Session) -> Dict[str, Any]:
        operator = directory_service.require_active_operator(sess, responsible_operator_id)

        for attempt in range(1, BATCH_CODE_MAX_ATTEMPTS + 1):
            batch = ProductionBatch(
                batch_code=_next_batch_code(sess, prefix),
                batch_date=business_date,
                responsible_operator_id=operator.id,
                notes=sanitize_string(notes),
                is_locked=False,
                qa_status=QaStatus.PENDING.value,
            )
            savepoint = sess.begin_nested()
            try:
                sess.add(batch)
                sess.flush()
                savepoint.commit()
                break
            except IntegrityError:
                savepoint.rollback()
                log_operation(
                    logger,
                    operation="create_batch",
                    outcome="batch_code_collision",
                    level=logging.WARNING,
                    batch_code=batch.batch_code,
                    attempt=attempt,
                )
        else:
            raise TransientStoreError(
                f"could not allocate a batch code after {BATCH_CODE_MAX_ATTEMPTS} attempts"
            )

        log_operation(
            logger,
            operation="create_batch",
            outcome="success",
            batch_id=batch.id,
            batch_code=batch.batch_code,
            responsible_operator_id=operator.id,
        )
        return _batch_dict(batch)

    return run_in_transaction(_impl, session, operation="create_batch")


def edit_batch(
    batch_id: int, fields: Dict[str, Any], session: Optional[Session] = None
) -> Dict[str, Any]:
    """
    Change any editable field of a draft batch.

    Editable: notes, batch_date, responsible_operator_id, qa_status,
    qa_reason, production_start_date, production_end_date,
    additional_information, custom_fields.

    Raises:
        BatchLocked: If the batch is locked
        ValidationError: For unknown fields or invalid values
        InvalidQaTransition: If the QA change is not allowed
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        batch = require_unlocked_batch(sess, batch_id)
        values = _prepare_changes(sess, batch, dict(fields), EDITABLE_BATCH_FIELDS)
        batch = _apply_changes(sess, batch, values, "edit_batch")
        log_operation(
            logger,
            operation="edit_batch",
            outcome="success",
            batch_id=batch.id,
            fields=sorted(values),
        )
        return _batch_dict(batch)

    return run_in_transaction(_impl, session, operation="edit_batch")


def save_batch(
    batch_id: int, completion_data: Dict[str, Any], session: Optional[Session] = None
) -> Dict[str, Any]:
    """
    Persist completion data (QA decision, reason, production dates, custom
    fields, additional information) without locking.

    Repeatable: saving the same data twice leaves the batch unchanged.
    Dates and reasons are not enforced here; finalize_batch checks them.

    Raises:
        BatchLocked: If the batch is locked
        ValidationError: For unknown fields or invalid values
        InvalidQaTransition: If the QA change is not allowed
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        batch = require_unlocked_batch(sess, batch_id)
        values = _prepare_changes(sess, batch, dict(completion_data), COMPLETION_FIELDS)
        batch = _apply_changes(sess, batch, values, "save_batch")
        log_operation(
            logger,
            operation="save_batch",
            outcome="success",
            batch_id=batch.id,
            qa_status=batch.qa_status,
        )
        return _batch_dict(batch)

    return run_in_transaction(_impl, session, operation="save_batch")


def finalize_batch(
    batch_id: int,
    completion_data: Optional[Dict[str, Any]] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Lock a batch, materializing its outputs when approved.

    Optional completion data is applied first, in the same transaction, so a
    refused finalize leaves the batch exactly as it was.

    Returns:
        The locked batch as a dict, with a ``materialization`` entry (None for
        rejected batches)

    Raises:
        BatchLocked: If the batch is already locked (including by a concurrent
            finalize that won the race)
        NoOutputsDefined / InvalidDateRange / QaNotResolved / MissingReason:
            If a finalize gate fails
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        try:
            batch = require_unlocked_batch(sess, batch_id)
        except BatchLocked:
            log_operation(
                logger,
                operation="finalize_batch",
                outcome="batch_locked",
                level=logging.WARNING,
                batch_id=batch_id,
            )
            raise

        if completion_data:
            values = _prepare_changes(sess, batch, dict(completion_data), COMPLETION_FIELDS)
            batch = _apply_changes(sess, batch, values, "finalize_batch")

        _check_finalize_gates(sess, batch)

        result = sess.execute(
            update(ProductionBatch)
            .where(
                ProductionBatch.id == batch.id,
                ProductionBatch.is_locked.is_(False),
                ProductionBatch.qa_status == batch.qa_status,
            )
            .values(is_locked=True, locked_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            _raise_write_conflict(sess, batch.id, "finalize_batch")
        batch = _reload(sess, batch.id)

        materialization = None
        if state_of(batch).materializes:
            materialization = materialization_service.materialize(batch.id, sess)

        log_operation(
            logger,
            operation="finalize_batch",
            outcome="success",
            batch_id=batch.id,
            batch_code=batch.batch_code,
            qa_status=batch.qa_status,
            goods_created=len(materialization["goods"]) if materialization else 0,
        )
        payload = _batch_dict(batch)
        payload["materialization"] = materialization
        return payload

    return run_in_transaction(_impl, session, operation="finalize_batch")


def delete_batch(batch_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Delete a draft batch, returning every consumed quantity to its lot.

    Each consumption record is released through the lot ledger (RELEASE
    movements included) before the outputs and the batch are removed, all in
    one transaction.

    Returns:
        Dict with batch_id, batch_code, consumptions_released, outputs_deleted

    Raises:
        BatchNotFound: If the batch does not exist
        BatchLocked: If the batch is locked
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        batch = require_unlocked_batch(sess, batch_id)
        batch_code = batch.batch_code

        consumptions = (
            sess.query(BatchConsumption)
            .filter(BatchConsumption.batch_id == batch.id)
            .order_by(BatchConsumption.id)
            .all()
        )
        for consumption in consumptions:
            lot_service.release_in_session(sess, consumption)

        output_count = sess.execute(
            select(func.count(BatchOutput.id)).where(BatchOutput.batch_id == batch.id)
        ).scalar_one()

        sess.delete(batch)
        sess.flush()

        log_operation(
            logger,
            operation="delete_batch",
            outcome="success",
            batch_id=batch_id,
            batch_code=batch_code,
            consumptions_released=len(consumptions),
            outputs_deleted=output_count,
        )
        return {
            "batch_id": batch_id,
            "batch_code": batch_code,
            "consumptions_released": len(consumptions),
            "outputs_deleted": output_count,
        }

    return run_in_transaction(_impl, session, operation="delete_batch")


# =============================================================================
# Queries
# =============================================================================


def _detail_query(session: Session):
    return session.query(ProductionBatch).options(
        joinedload(ProductionBatch.responsible_operator),
        selectinload(ProductionBatch.consumptions),
        selectinload(ProductionBatch.outputs).joinedload(BatchOutput.tag),
    )


def get_batch(batch_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get a batch with its consumption records and outputs.

    Returns:
        Batch dict with ``consumptions``, ``outputs``, ``state`` and
        ``materialized``

    Raises:
        BatchNotFound: If the batch does not exist
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        batch = (
            _detail_query(sess)
            .filter(ProductionBatch.id == batch_id)
            .populate_existing()
            .one_or_none()
        )
        if batch is None:
            raise BatchNotFound(batch_id)
        result = _batch_dict(batch, include_relationships=True)
        result["materialized"] = materialization_service.has_materialized_goods(batch.id, session=sess)
        return result

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_batch_by_code(batch_code: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get a batch by its code.

    Raises:
        BatchNotFound: If no batch has the code
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        batch_id = sess.execute(
            select(ProductionBatch.id).where(ProductionBatch.batch_code == batch_code)
        ).scalar_one_or_none()
        if batch_id is None:
            raise BatchNotFound(batch_code)
        return get_batch(batch_id, session=sess)

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def list_batches(
    qa_status: Optional[str] = None,
    is_locked: Optional[bool] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    responsible_operator_id: Optional[int] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """
    List batches, newest batch date first.

    Args:
        qa_status: Optional QA status filter
        is_locked: Optional lock-state filter
        start_date: Optional inclusive lower bound on batch_date
        end_date: Optional inclusive upper bound on batch_date
        responsible_operator_id: Optional operator filter
        limit: Optional maximum number of rows
        offset: Rows to skip (for pagination)

    Returns:
        List of batch dicts (without child records)
    """
    status = coerce_qa_status(qa_status).value if qa_status is not None else None
    try:
        lower, upper = parse_date(start_date), parse_date(end_date)
    except ValueError as e:
        raise ValidationError([f"Date filter: {e}"]) from e

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        query = sess.query(ProductionBatch).options(joinedload(ProductionBatch.responsible_operator))
        if status is not None:
            query = query.filter(ProductionBatch.qa_status == status)
        if is_locked is not None:
            query = query.filter(ProductionBatch.is_locked.is_(bool(is_locked)))
        if lower is not None:
            query = query.filter(ProductionBatch.batch_date >= lower)
        if upper is not None:
            query = query.filter(ProductionBatch.batch_date <= upper)
        if responsible_operator_id is not None:
            query = query.filter(ProductionBatch.responsible_operator_id == responsible_operator_id)

        query = query.order_by(ProductionBatch.batch_date.desc(), ProductionBatch.id.desc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return [_batch_dict(batch) for batch in query.all()]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
