"""
Lot Pool Ledger - the single authority over lot quantity.

Every change to ``Lot.quantity_available`` goes through this module, and each
one is written in the same transaction as its counterpart:

- receive_lot: new lot + INTAKE movement
- reserve: decrement + consumption record + CONSUMPTION movement
- release: increment + record deletion + RELEASE movement
- replace_consumption: release followed by reserve, all-or-nothing

That keeps the closed-ledger identity

    quantity_available + sum(live consumption quantities) == quantity_received

true after every committed transaction. Lots are re-read FOR UPDATE and
written back through the lot's version column; a concurrent writer turns the
write into a StaleDataError, which run_in_transaction retries as a
TransientStoreError.

All public functions accept an optional session parameter so they can join a
caller's transaction (batch deletion releases every consumption this way).
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from src.models import BatchConsumption, Lot, LotMovement, MovementType, ProductionBatch
from src.utils.constants import LOT_TYPES, MAX_CODE_LENGTH, MAX_NAME_LENGTH
from src.utils.datetime_utils import parse_date
from src.utils.validators import (
    is_whole_number,
    normalize_quantity,
    sanitize_string,
    validate_positive_quantity,
    validate_required_string,
    validate_string_length,
)
from src.services import consumption_service, directory_service
from src.services.database import run_in_transaction, session_scope
from src.services.exceptions import (
    AlreadyReleased,
    ConsumptionNotFound,
    FractionalNotAllowed,
    InsufficientQuantity,
    LotNotFound,
    LotUnusable,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


# =============================================================================
# Internal helpers
# =============================================================================


def _validated_quantity(quantity: Any, field_name: str = "Quantity") -> Decimal:
    valid, error = validate_positive_quantity(quantity, field_name)
    if not valid:
        raise ValidationError([error])
    return normalize_quantity(quantity)


def _lock_lot(session: Session, lot_id: int) -> Lot:
    """Re-read a lot FOR UPDATE, replacing any stale identity-map copy."""
    lot = session.execute(
        select(Lot)
        .where(Lot.id == lot_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if lot is None:
        raise LotNotFound(lot_id)
    return lot


def _check_whole_quantity(session: Session, lot: Lot, quantity: Decimal) -> None:
    unit = directory_service.get_unit(lot.lot_type, lot.unit, session=session)
    if unit is not None and not unit.allows_decimal and not is_whole_number(quantity):
        raise FractionalNotAllowed(lot.unit, quantity)


def _record_movement(
    session: Session,
    lot: Lot,
    movement_type: MovementType,
    quantity: Decimal,
    batch: Optional[ProductionBatch] = None,
    consumption_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> LotMovement:
    movement = LotMovement(
        lot_id=lot.id,
        movement_type=movement_type.value,
        quantity=quantity,
        unit=lot.unit,
        batch_id=batch.id if batch is not None else None,
        batch_code=batch.batch_code if batch is not None else None,
        consumption_id=consumption_id,
        notes=notes,
    )
    session.add(movement)
    return movement


def _reserve_in_session(
    session: Session, batch_id: int, lot_id: int, quantity: Decimal
) -> BatchConsumption:
    batch = consumption_service.require_unlocked_batch(session, batch_id)
    lot = _lock_lot(session, lot_id)

    if not lot.is_usable:
        log_operation(
            logger,
            operation="reserve",
            outcome="lot_unusable",
            level=logging.WARNING,
            batch_id=batch_id,
            lot_id=lot_id,
            lot_code=lot.lot_code,
        )
        raise LotUnusable(lot.lot_code)

    _check_whole_quantity(session, lot, quantity)

    available = Decimal(lot.quantity_available)
    if quantity > available:
        log_operation(
            logger,
            operation="reserve",
            outcome="insufficient_quantity",
            level=logging.WARNING,
            batch_id=batch_id,
            lot_id=lot_id,
            lot_code=lot.lot_code,
            requested=str(quantity),
            available=str(available),
        )
        raise InsufficientQuantity(lot.lot_code, quantity, available, lot.unit)

    lot.quantity_available = available - quantity
    consumption = consumption_service.insert_consumption(session, batch, lot, quantity)
    _record_movement(
        session,
        lot,
        MovementType.CONSUMPTION,
        quantity,
        batch=batch,
        consumption_id=consumption.id,
    )
    session.flush()

    log_operation(
        logger,
        operation="reserve",
        outcome="success",
        batch_id=batch_id,
        lot_id=lot_id,
        consumption_id=consumption.id,
        quantity=str(quantity),
        remaining=str(lot.quantity_available),
    )
    return consumption


def _find_consumption(session: Session, consumption_id: int) -> BatchConsumption:
    consumption = session.get(BatchConsumption, consumption_id, populate_existing=True)
    if consumption is not None:
        return consumption

    released = session.execute(
        select(LotMovement.id).where(
            LotMovement.consumption_id == consumption_id,
            LotMovement.movement_type == MovementType.RELEASE.value,
        )
    ).first()
    if released is not None:
        raise AlreadyReleased(consumption_id)
    raise ConsumptionNotFound(consumption_id)


def release_in_session(session: Session, consumption: BatchConsumption) -> Dict[str, Any]:
    """
    Return a consumption record's quantity to its lot and delete the record.

    Runs in the caller's transaction; used by release() and by batch deletion.

    Returns:
        Dict with consumption_id, lot_id, quantity_released and the lot's new
        quantity_available
    """
    batch = consumption_service.require_unlocked_batch(session, consumption.batch_id)
    lot = _lock_lot(session, consumption.lot_id)

    quantity = Decimal(consumption.quantity_consumed)
    lot.quantity_available = Decimal(lot.quantity_available) + quantity
    consumption_id = consumption.id
    _record_movement(
        session,
        lot,
        MovementType.RELEASE,
        quantity,
        batch=batch,
        consumption_id=consumption_id,
    )
    consumption_service.delete_consumption(session, consumption)

    log_operation(
        logger,
        operation="release",
        outcome="success",
        batch_id=batch.id,
        lot_id=lot.id,
        consumption_id=consumption_id,
        quantity=str(quantity),
        available=str(lot.quantity_available),
    )
    return {
        "consumption_id": consumption_id,
        "batch_id": batch.id,
        "lot_id": lot.id,
        "quantity_released": str(quantity),
        "quantity_available": str(lot.quantity_available),
    }


# =============================================================================
# Ledger operations
# =============================================================================


def reserve(
    batch_id: int,
    lot_id: int,
    quantity: Any,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Reserve quantity from a lot into a draft batch.

    Args:
        batch_id: Consuming batch (must be unlocked)
        lot_id: Lot to draw from
        quantity: Amount to consume (> 0, in the lot's unit)
        session: Optional database session

    Returns:
        The created consumption record as a dict

    Raises:
        ValidationError: If quantity is not a positive number
        FractionalNotAllowed: If the lot's unit only allows whole numbers
        BatchNotFound / LotNotFound: If a reference does not exist
        BatchLocked: If the batch is locked
        LotUnusable: If the lot is flagged not usable
        InsufficientQuantity: If quantity exceeds quantity_available
    """
    amount = _validated_quantity(quantity)

    def _impl(sess: Session) -> Dict[str, Any]:
        return _reserve_in_session(sess, batch_id, lot_id, amount).to_dict()

    return run_in_transaction(_impl, session, operation="reserve")


def release(consumption_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Release a consumption record, restoring its quantity to the lot.

    Raises:
        AlreadyReleased: If the record was released before
        ConsumptionNotFound: If the record never existed
        BatchLocked: If the record's batch is locked
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        consumption = _find_consumption(sess, consumption_id)
        return release_in_session(sess, consumption)

    return run_in_transaction(_impl, session, operation="release")


def replace_consumption(
    consumption_id: int,
    new_quantity: Any,
    lot_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Change a consumption amount (or its lot) as release + reserve.

    Both steps run in one transaction: if the new reservation fails, the
    release is rolled back with it and the original record stays in place.
    When a caller passes its own session, rolling back on error is the
    caller's responsibility.

    Args:
        consumption_id: Record to replace
        new_quantity: Quantity of the replacement record
        lot_id: Optional different lot; defaults to the record's lot

    Returns:
        The replacement consumption record as a dict
    """
    amount = _validated_quantity(new_quantity)

    def _impl(sess: Session) -> Dict[str, Any]:
        consumption = _find_consumption(sess, consumption_id)
        batch_id = consumption.batch_id
        target_lot_id = lot_id if lot_id is not None else consumption.lot_id
        release_in_session(sess, consumption)
        replacement = _reserve_in_session(sess, batch_id, target_lot_id, amount)
        log_operation(
            logger,
            operation="replace_consumption",
            outcome="success",
            batch_id=batch_id,
            replaced_id=consumption_id,
            consumption_id=replacement.id,
        )
        return replacement.to_dict()

    return run_in_transaction(_impl, session, operation="replace_consumption")


# =============================================================================
# Lot intake and maintenance
# =============================================================================


def receive_lot(
    lot_type: str,
    name: str,
    lot_code: str,
    quantity: Any,
    unit: str,
    received_date: Optional[date] = None,
    supplier_name: Optional[str] = None,
    notes: Optional[str] = None,
    usable: Optional[bool] = None,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """
    Record intake of a new lot.

    Args:
        lot_type: "raw_material" or "packaging"
        name: Item name
        lot_code: Unique lot code
        quantity: Received quantity (> 0); becomes both received and available
        unit: Active unit of the matching unit type
        received_date: Intake date (date or ISO string)
        supplier_name: Optional supplier
        notes: Optional notes
        usable: Optional usability flag

    Returns:
        The created lot as a dict

    Raises:
        ValidationError: On invalid input or a duplicate lot code
        UnknownUnit: If the unit is not an active unit for the lot type
        FractionalNotAllowed: If the unit only allows whole numbers
    """
    errors = []
    if lot_type not in LOT_TYPES:
        errors.append(f"Lot type: must be one of {', '.join(LOT_TYPES)}")
    for value, label, limit in (
        (name, "Name", MAX_NAME_LENGTH),
        (lot_code, "Lot code", MAX_CODE_LENGTH),
    ):
        valid, error = validate_required_string(value, label)
        if valid:
            valid, error = validate_string_length(value.strip(), limit, label)
        if not valid:
            errors.append(error)
    valid, error = validate_positive_quantity(quantity, "Quantity received")
    if not valid:
        errors.append(error)
    try:
        intake_date = parse_date(received_date)
    except ValueError as e:
        errors.append(f"Received date: {e}")
    if errors:
        raise ValidationError(errors)

    amount = normalize_quantity(quantity)
    code = lot_code.strip()

    def _impl(sess: Session) -> Dict[str, Any]:
        unit_row = directory_service.require_active_unit(sess, lot_type, unit)
        if not unit_row.allows_decimal and not is_whole_number(amount):
            raise FractionalNotAllowed(unit_row.code, amount)
        if sess.query(Lot.id).filter(Lot.lot_code == code).first() is not None:
            raise ValidationError([f"Lot code '{code}' already exists"])

        lot = Lot(
            lot_type=lot_type,
            name=name.strip(),
            lot_code=code,
            unit=unit_row.code,
            quantity_received=amount,
            quantity_available=amount,
            usable=usable,
            received_date=intake_date,
            supplier_name=sanitize_string(supplier_name),
            notes=sanitize_string(notes),
        )
        sess.add(lot)
        sess.flush()
        _record_movement(sess, lot, MovementType.INTAKE, amount, notes="Lot received")
        sess.flush()

        log_operation(
            logger,
            operation="receive_lot",
            outcome="success",
            lot_id=lot.id,
            lot_code=code,
            quantity=str(amount),
            unit=lot.unit,
        )
        return lot.to_dict()

    return run_in_transaction(_impl, session, operation="receive_lot")


def set_lot_usable(
    lot_id: int, usable: Optional[bool], session: Optional[Session] = None
) -> Dict[str, Any]:
    """
    Set or clear the lot's usability flag.

    ``None`` clears the flag (usable by default); only ``False`` blocks
    consumption. Existing consumption records are unaffected.
    """
    if usable is not None and not isinstance(usable, bool):
        raise ValidationError(["Usable: must be true, false or empty"])

    def _impl(sess: Session) -> Dict[str, Any]:
        lot = _lock_lot(sess, lot_id)
        lot.usable = usable
        sess.flush()
        log_operation(
            logger,
            operation="set_lot_usable",
            outcome="success",
            lot_id=lot_id,
            usable=usable,
        )
        return lot.to_dict()

    return run_in_transaction(_impl, session, operation="set_lot_usable")


# =============================================================================
# Queries
# =============================================================================


def get_lot(lot_id: int, include_movements: bool = False, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get a lot by id.

    Raises:
        LotNotFound: If the lot does not exist
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        lot = sess.get(Lot, lot_id, populate_existing=True)
        if lot is None:
            raise LotNotFound(lot_id)
        return lot.to_dict(include_relationships=include_movements)

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_lot_by_code(lot_code: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get a lot by its lot code.

    Raises:
        LotNotFound: If no lot has the code
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        lot = sess.query(Lot).filter(Lot.lot_code == lot_code).first()
        if lot is None:
            raise LotNotFound(lot_code)
        return lot.to_dict()

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def list_lots(
    lot_type: Optional[str] = None,
    include_depleted: bool = True,
    usable_only: bool = False,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """
    List lots, oldest intake first.

    Args:
        lot_type: Optional filter ("raw_material" or "packaging")
        include_depleted: If False, omit lots with nothing available
        usable_only: If True, omit lots flagged not usable

    Returns:
        List of lot dicts
    """
    if lot_type is not None and lot_type not in LOT_TYPES:
        raise ValidationError([f"Lot type: must be one of {', '.join(LOT_TYPES)}"])

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        query = sess.query(Lot)
        if lot_type is not None:
            query = query.filter(Lot.lot_type == lot_type)
        if not include_depleted:
            query = query.filter(Lot.quantity_available > 0)
        if usable_only:
            query = query.filter((Lot.usable.is_(None)) | (Lot.usable.is_(True)))
        lots = query.order_by(Lot.received_date, Lot.id).all()
        return [lot.to_dict() for lot in lots]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_lot_movements(lot_id: int, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """
    Get the movement log of a lot, oldest first.

    Raises:
        LotNotFound: If the lot does not exist
    """

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        if sess.get(Lot, lot_id) is None:
            raise LotNotFound(lot_id)
        movements = (
            sess.query(LotMovement)
            .filter(LotMovement.lot_id == lot_id)
            .order_by(LotMovement.id)
            .all()
        )
        return [movement.to_dict() for movement in movements]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_lot_usage(lot_id: int, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """
    List the batches currently consuming a lot.

    Returns:
        One dict per live consumption record with the batch code, batch date,
        lock state and QA status, newest batch first

    Raises:
        LotNotFound: If the lot does not exist
    """

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        if sess.get(Lot, lot_id) is None:
            raise LotNotFound(lot_id)
        rows = sess.execute(
            select(BatchConsumption, ProductionBatch)
            .join(ProductionBatch, BatchConsumption.batch_id == ProductionBatch.id)
            .where(BatchConsumption.lot_id == lot_id)
            .order_by(ProductionBatch.batch_date.desc(), BatchConsumption.id.desc())
        ).all()
        return [
            {
                "consumption_id": consumption.id,
                "batch_id": batch.id,
                "batch_code": batch.batch_code,
                "batch_date": batch.batch_date.isoformat() if batch.batch_date else None,
                "is_locked": batch.is_locked,
                "qa_status": batch.qa_status,
                "quantity_consumed": str(consumption.quantity_consumed),
                "unit": consumption.unit,
            }
            for consumption, batch in rows
        ]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def check_lot_in_locked_batches(lot_id: int, session: Optional[Session] = None) -> bool:
    """True if any locked batch has consumed from the lot."""

    def _impl(sess: Session) -> bool:
        if sess.get(Lot, lot_id) is None:
            raise LotNotFound(lot_id)
        count = sess.execute(
            select(func.count(BatchConsumption.id))
            .join(ProductionBatch, BatchConsumption.batch_id == ProductionBatch.id)
            .where(BatchConsumption.lot_id == lot_id, ProductionBatch.is_locked.is_(True))
        ).scalar_one()
        return count > 0

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def verify_lot_ledger(lot_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Check the closed-ledger identity of one lot.

    Two independent checks:
    - quantity_available + live consumption quantities == quantity_received
    - the movement log replays to quantity_available

    Returns:
        Report dict with the figures and ``is_balanced``
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        lot = sess.get(Lot, lot_id, populate_existing=True)
        if lot is None:
            raise LotNotFound(lot_id)

        consumed = sum(
            (
                Decimal(row.quantity_consumed)
                for row in sess.query(BatchConsumption).filter(BatchConsumption.lot_id == lot_id)
            ),
            Decimal("0"),
        )
        replayed = sum(
            (
                Decimal(movement.signed_quantity)
                for movement in sess.query(LotMovement).filter(LotMovement.lot_id == lot_id)
            ),
            Decimal("0"),
        )

        received = Decimal(lot.quantity_received)
        available = Decimal(lot.quantity_available)
        consumption_balanced = available + consumed == received
        movements_balanced = replayed == available

        report = {
            "lot_id": lot.id,
            "lot_code": lot.lot_code,
            "quantity_received": str(received),
            "quantity_available": str(available),
            "quantity_consumed": str(consumed),
            "movement_balance": str(replayed),
            "consumption_balanced": consumption_balanced,
            "movements_balanced": movements_balanced,
            "is_balanced": consumption_balanced and movements_balanced,
        }
        if not report["is_balanced"]:
            log_operation(
                logger,
                operation="verify_lot_ledger",
                outcome="imbalance",
                level=logging.ERROR,
                **report,
            )
        return report

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
