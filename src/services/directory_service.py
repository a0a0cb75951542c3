"""Directory Service - operators, units and produced goods tags.

The batch workflow reads three upstream directories:
- Operators: who can be responsible for a batch
- Units: recognized units per inventory kind, with the allows_decimal rule
- Produced goods tags: mandatory classification for batch outputs

Lookups return ORM objects; the create/update helpers exist for seeding and
administration.

All functions accept an optional session parameter to support being called from
other service functions that need to maintain transactional atomicity.

Example Usage:
    >>> from src.services import directory_service
    >>> directory_service.seed_default_directories()
    {'units': 13, 'tags': 3}
    >>> unit = directory_service.get_unit("produced_goods", "bottles")
    >>> unit.allows_decimal
    False
"""

from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import Operator, ProducedGoodsTag, Unit
from src.utils.constants import (
    DEFAULT_PRODUCED_GOODS_TAGS,
    DEFAULT_UNITS,
    DIRECTORY_STATUS_ACTIVE,
    DIRECTORY_STATUS_INACTIVE,
    UNIT_TYPES,
)
from src.utils.validators import sanitize_string, validate_required_string
from src.services.database import run_in_transaction, session_scope
from src.services.exceptions import OperatorNotFound, UnknownTag, UnknownUnit, ValidationError
from src.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


# =============================================================================
# Operators
# =============================================================================


def create_operator(
    full_name: str,
    email: Optional[str] = None,
    external_id: Optional[str] = None,
    session: Optional[Session] = None,
) -> Operator:
    """Register an operator from the identity provider.

    Args:
        full_name: Display name (required)
        email: Optional email
        external_id: Optional identity-provider identifier
        session: Optional database session

    Returns:
        The created Operator

    Raises:
        ValidationError: If full_name is empty
    """
    valid, error = validate_required_string(full_name, "Full name")
    if not valid:
        raise ValidationError([error])

    def _impl(sess: Session) -> Operator:
        operator = Operator(
            full_name=full_name.strip(),
            email=sanitize_string(email),
            external_id=sanitize_string(external_id),
            is_active=True,
        )
        sess.add(operator)
        sess.flush()
        log_operation(logger, operation="create_operator", outcome="success", operator_id=operator.id)
        return operator

    return run_in_transaction(_impl, session, operation="create_operator")


def get_operator(operator_id: int, session: Optional[Session] = None) -> Operator:
    """Get an operator by id.

    Raises:
        OperatorNotFound: If no such operator exists
    """

    def _impl(sess: Session) -> Operator:
        operator = sess.get(Operator, operator_id)
        if operator is None:
            raise OperatorNotFound(operator_id)
        return operator

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def require_active_operator(session: Session, operator_id: int) -> Operator:
    """Return the operator if it exists and is active, else raise OperatorNotFound."""
    operator = session.get(Operator, operator_id)
    if operator is None or not operator.is_active:
        raise OperatorNotFound(operator_id)
    return operator


def list_operators(include_inactive: bool = False, session: Optional[Session] = None) -> List[Operator]:
    """List operators ordered by name."""

    def _impl(sess: Session) -> List[Operator]:
        query = sess.query(Operator)
        if not include_inactive:
            query = query.filter(Operator.is_active.is_(True))
        return query.order_by(Operator.full_name).all()

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def deactivate_operator(operator_id: int, session: Optional[Session] = None) -> Operator:
    """Mark an operator inactive; existing batches keep their reference."""

    def _impl(sess: Session) -> Operator:
        operator = sess.get(Operator, operator_id)
        if operator is None:
            raise OperatorNotFound(operator_id)
        operator.is_active = False
        sess.flush()
        log_operation(logger, operation="deactivate_operator", outcome="success", operator_id=operator.id)
        return operator

    return run_in_transaction(_impl, session, operation="deactivate_operator")


# =============================================================================
# Units
# =============================================================================


def _check_unit_type(unit_type: str) -> None:
    if unit_type not in UNIT_TYPES:
        raise ValidationError([f"Unknown unit type '{unit_type}'. Use one of: {', '.join(UNIT_TYPES)}"])


def create_unit(
    unit_type: str,
    code: str,
    display_name: str,
    allows_decimal: bool = False,
    status: str = DIRECTORY_STATUS_ACTIVE,
    sort_order: int = 0,
    session: Optional[Session] = None,
) -> Unit:
    """Add a unit to the directory.

    Raises:
        ValidationError: If the unit type is unknown or a required field is empty
    """
    _check_unit_type(unit_type)
    errors = []
    for value, label in ((code, "Code"), (display_name, "Display name")):
        valid, error = validate_required_string(value, label)
        if not valid:
            errors.append(error)
    if status not in (DIRECTORY_STATUS_ACTIVE, DIRECTORY_STATUS_INACTIVE):
        errors.append(f"Status: must be '{DIRECTORY_STATUS_ACTIVE}' or '{DIRECTORY_STATUS_INACTIVE}'")
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> Unit:
        existing = sess.query(Unit).filter_by(unit_type=unit_type, code=code.strip()).first()
        if existing is not None:
            raise ValidationError([f"Unit '{code}' already exists for {unit_type}"])
        unit = Unit(
            unit_type=unit_type,
            code=code.strip(),
            display_name=display_name.strip(),
            allows_decimal=bool(allows_decimal),
            status=status,
            sort_order=sort_order,
        )
        sess.add(unit)
        sess.flush()
        log_operation(
            logger,
            operation="create_unit",
            outcome="success",
            unit_type=unit.unit_type,
            unit_code=unit.code,
            allows_decimal=unit.allows_decimal,
        )
        return unit

    return run_in_transaction(_impl, session, operation="create_unit")


def get_unit(unit_type: str, code: str, session: Optional[Session] = None) -> Optional[Unit]:
    """Get a unit by type and code.

    Returns:
        Unit object if found, None otherwise.
    """

    def _impl(sess: Session) -> Optional[Unit]:
        return sess.query(Unit).filter(Unit.unit_type == unit_type, Unit.code == code).first()

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def require_active_unit(session: Session, unit_type: str, code: Optional[str]) -> Unit:
    """Return the active unit or raise UnknownUnit."""
    unit = get_unit(unit_type, code, session=session) if code else None
    if unit is None or not unit.is_active:
        raise UnknownUnit(code or "", unit_type)
    return unit


def list_units(
    unit_type: Optional[str] = None,
    include_inactive: bool = False,
    session: Optional[Session] = None,
) -> List[Unit]:
    """List units ordered by type and sort_order."""
    if unit_type is not None:
        _check_unit_type(unit_type)

    def _impl(sess: Session) -> List[Unit]:
        query = sess.query(Unit)
        if unit_type is not None:
            query = query.filter(Unit.unit_type == unit_type)
        if not include_inactive:
            query = query.filter(Unit.status == DIRECTORY_STATUS_ACTIVE)
        return query.order_by(Unit.unit_type, Unit.sort_order, Unit.code).all()

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def set_unit_status(unit_id: int, status: str, session: Optional[Session] = None) -> Unit:
    """Activate or deactivate a unit."""
    if status not in (DIRECTORY_STATUS_ACTIVE, DIRECTORY_STATUS_INACTIVE):
        raise ValidationError([f"Status: must be '{DIRECTORY_STATUS_ACTIVE}' or '{DIRECTORY_STATUS_INACTIVE}'"])

    def _impl(sess: Session) -> Unit:
        unit = sess.get(Unit, unit_id)
        if unit is None:
            raise ValidationError([f"Unit {unit_id} not found"])
        unit.status = status
        sess.flush()
        log_operation(
            logger, operation="set_unit_status", outcome="success", unit_id=unit.id, status=status
        )
        return unit

    return run_in_transaction(_impl, session, operation="set_unit_status")


# =============================================================================
# Produced Goods Tags
# =============================================================================


def create_tag(
    tag_key: str,
    display_name: str,
    description: Optional[str] = None,
    status: str = DIRECTORY_STATUS_ACTIVE,
    session: Optional[Session] = None,
) -> ProducedGoodsTag:
    """Add a produced goods tag.

    Raises:
        ValidationError: If a required field is empty or the key is taken
    """
    errors = []
    for value, label in ((tag_key, "Tag key"), (display_name, "Display name")):
        valid, error = validate_required_string(value, label)
        if not valid:
            errors.append(error)
    if errors:
        raise ValidationError(errors)

    def _impl(sess: Session) -> ProducedGoodsTag:
        if sess.query(ProducedGoodsTag).filter_by(tag_key=tag_key.strip()).first() is not None:
            raise ValidationError([f"Tag key '{tag_key}' already exists"])
        tag = ProducedGoodsTag(
            tag_key=tag_key.strip(),
            display_name=display_name.strip(),
            description=sanitize_string(description),
            status=status,
        )
        sess.add(tag)
        sess.flush()
        log_operation(logger, operation="create_tag", outcome="success", tag_id=tag.id, tag_key=tag.tag_key)
        return tag

    return run_in_transaction(_impl, session, operation="create_tag")


def get_tag(tag_id: int, session: Optional[Session] = None) -> Optional[ProducedGoodsTag]:
    """Get a tag by id, or None."""

    def _impl(sess: Session) -> Optional[ProducedGoodsTag]:
        return sess.get(ProducedGoodsTag, tag_id)

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def require_active_tag(session: Session, tag_id: int) -> ProducedGoodsTag:
    """Return the active tag or raise UnknownTag."""
    tag = session.get(ProducedGoodsTag, tag_id)
    if tag is None or not tag.is_active:
        raise UnknownTag(tag_id)
    return tag


def list_tags(include_inactive: bool = False, session: Optional[Session] = None) -> List[ProducedGoodsTag]:
    """List tags ordered by display name."""

    def _impl(sess: Session) -> List[ProducedGoodsTag]:
        query = sess.query(ProducedGoodsTag)
        if not include_inactive:
            query = query.filter(ProducedGoodsTag.status == DIRECTORY_STATUS_ACTIVE)
        return query.order_by(ProducedGoodsTag.display_name).all()

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def set_tag_status(tag_id: int, status: str, session: Optional[Session] = None) -> ProducedGoodsTag:
    """Activate or deactivate a tag; existing outputs keep their reference."""
    if status not in (DIRECTORY_STATUS_ACTIVE, DIRECTORY_STATUS_INACTIVE):
        raise ValidationError([f"Status: must be '{DIRECTORY_STATUS_ACTIVE}' or '{DIRECTORY_STATUS_INACTIVE}'"])

    def _impl(sess: Session) -> ProducedGoodsTag:
        tag = sess.get(ProducedGoodsTag, tag_id)
        if tag is None:
            raise UnknownTag(tag_id)
        tag.status = status
        sess.flush()
        log_operation(logger, operation="set_tag_status", outcome="success", tag_id=tag.id, status=status)
        return tag

    return run_in_transaction(_impl, session, operation="set_tag_status")


# =============================================================================
# Seeding
# =============================================================================


def seed_default_directories(session: Optional[Session] = None) -> Dict[str, int]:
    """Insert the default units and tags that are not present yet.

    Idempotent: running it twice creates nothing the second time.

    Returns:
        Dict with the number of units and tags created
    """

    def _impl(sess: Session) -> Dict[str, int]:
        created_units = 0
        for unit_type, units in DEFAULT_UNITS.items():
            for sort_order, (code, display_name, allows_decimal) in enumerate(units):
                exists = sess.query(Unit).filter_by(unit_type=unit_type, code=code).first()
                if exists is not None:
                    continue
                sess.add(
                    Unit(
                        unit_type=unit_type,
                        code=code,
                        display_name=display_name,
                        allows_decimal=allows_decimal,
                        status=DIRECTORY_STATUS_ACTIVE,
                        sort_order=sort_order,
                    )
                )
                created_units += 1

        created_tags = 0
        for tag_key, display_name in DEFAULT_PRODUCED_GOODS_TAGS:
            if sess.query(ProducedGoodsTag).filter_by(tag_key=tag_key).first() is not None:
                continue
            sess.add(ProducedGoodsTag(tag_key=tag_key, display_name=display_name))
            created_tags += 1

        sess.flush()
        log_operation(
            logger,
            operation="seed_default_directories",
            outcome="success",
            units_created=created_units,
            tags_created=created_tags,
        )
        return {"units": created_units, "tags": created_tags}

    return run_in_transaction(_impl, session, operation="seed_default_directories")
