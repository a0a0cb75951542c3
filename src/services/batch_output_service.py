"""
Output Registry - named finished products defined on a production batch.

Outputs can be added, changed and removed only while the batch is a draft.
Each output is validated against the unit and tag directories:

- produced_quantity > 0, in an active produced-goods unit
- whole numbers only when the unit does not allow decimals
- a produced goods tag is mandatory and must be active
- output_size, when given, is > 0 and carries output_size_unit
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from src.models import BatchOutput
from src.utils.constants import MAX_NAME_LENGTH, MAX_UNIT_LENGTH, UNIT_TYPE_PRODUCED_GOODS
from src.utils.validators import (
    is_whole_number,
    normalize_quantity,
    sanitize_string,
    to_decimal,
    validate_positive_quantity,
    validate_required_string,
    validate_string_length,
)
from src.services import directory_service
from src.services.consumption_service import require_unlocked_batch
from src.services.database import run_in_transaction, session_scope
from src.services.exceptions import (
    FractionalNotAllowed,
    MissingTag,
    OutputNotFound,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

OUTPUT_FIELDS = frozenset(
    {
        "output_name",
        "output_size",
        "output_size_unit",
        "produced_quantity",
        "produced_unit",
        "produced_goods_tag_id",
    }
)


def _validate_output(session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate output fields against the directories.

    Returns:
        Normalized column values ready to assign to a BatchOutput
    """
    unknown = set(data) - OUTPUT_FIELDS
    if unknown:
        raise ValidationError([f"Unknown output field(s): {', '.join(sorted(unknown))}"])

    errors = []
    name = data.get("output_name")
    valid, error = validate_required_string(name, "Output name")
    if valid:
        valid, error = validate_string_length(name.strip(), MAX_NAME_LENGTH, "Output name")
    if not valid:
        errors.append(error)

    valid, error = validate_positive_quantity(data.get("produced_quantity"), "Produced quantity")
    if not valid:
        errors.append(error)

    size = data.get("output_size")
    size_unit = sanitize_string(data.get("output_size_unit"))
    if size is not None and size != "":
        valid, error = validate_positive_quantity(size, "Output size")
        if not valid:
            errors.append(error)
        elif size_unit is None:
            errors.append("Output size unit: required when output size is given")
    else:
        size = None
    valid, error = validate_string_length(size_unit, MAX_UNIT_LENGTH, "Output size unit")
    if not valid:
        errors.append(error)

    if errors:
        raise ValidationError(errors)

    tag_id = data.get("produced_goods_tag_id")
    if tag_id is None or tag_id == "":
        raise MissingTag()

    quantity = normalize_quantity(data["produced_quantity"])
    unit = directory_service.require_active_unit(
        session, UNIT_TYPE_PRODUCED_GOODS, sanitize_string(data.get("produced_unit"))
    )
    if not unit.allows_decimal and not is_whole_number(to_decimal(data["produced_quantity"])):
        raise FractionalNotAllowed(unit.code, to_decimal(data["produced_quantity"]))

    tag = directory_service.require_active_tag(session, tag_id)

    return {
        "output_name": name.strip(),
        "output_size": normalize_quantity(size) if size is not None else None,
        "output_size_unit": size_unit if size is not None else None,
        "produced_quantity": quantity,
        "produced_unit": unit.code,
        "produced_goods_tag_id": tag.id,
    }


def _output_dict(output: BatchOutput) -> Dict[str, Any]:
    # Touch the tag so to_dict can include its name
    _ = output.tag
    return output.to_dict()


def add_output(
    batch_id: int, output_data: Dict[str, Any], session: Optional[Session] = None
) -> Dict[str, Any]:
    """
    Define an output on a draft batch.

    Args:
        batch_id: Owning batch
        output_data: Dictionary with output_name, produced_quantity,
            produced_unit, produced_goods_tag_id and optionally output_size
            and output_size_unit
        session: Optional database session

    Returns:
        The persisted output as a dict, including its id

    Raises:
        BatchNotFound: If the batch does not exist
        BatchLocked: If the batch is locked
        ValidationError: For missing or invalid fields (MissingTag,
            UnknownUnit, UnknownTag and FractionalNotAllowed are subclasses)

    Example:
        >>> add_output(batch_id, {
        ...     "output_name": "Banana Alkyl Liquid",
        ...     "output_size": 250, "output_size_unit": "ml",
        ...     "produced_quantity": 100, "produced_unit": "bottles",
        ...     "produced_goods_tag_id": tag_id,
        ... })["produced_quantity"]
        '100.000'
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        batch = require_unlocked_batch(sess, batch_id)
        values = _validate_output(sess, dict(output_data))
        output = BatchOutput(batch_id=batch.id, **values)
        sess.add(output)
        sess.flush()
        log_operation(
            logger,
            operation="add_output",
            outcome="success",
            batch_id=batch.id,
            output_id=output.id,
            produced_quantity=str(output.produced_quantity),
            produced_unit=output.produced_unit,
        )
        return _output_dict(output)

    return run_in_transaction(_impl, session, operation="add_output")


def update_output(output_id: int, session: Optional[Session] = None, **kwargs) -> Dict[str, Any]:
    """
    Change fields of an output on a draft batch.

    The merged record is validated as a whole, so a partial update can not
    leave an output that add_output would have refused.

    Raises:
        OutputNotFound: If the output does not exist
        BatchLocked: If the owning batch is locked
        ValidationError: For unknown or invalid fields

    Example:
        >>> update_output(output_id, produced_quantity=120)["produced_quantity"]
        '120.000'
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        output = sess.get(BatchOutput, output_id)
        if output is None:
            raise OutputNotFound(output_id)
        require_unlocked_batch(sess, output.batch_id)

        merged = {field: getattr(output, field) for field in OUTPUT_FIELDS}
        merged.update(kwargs)
        values = _validate_output(sess, merged)
        for field, value in values.items():
            setattr(output, field, value)
        sess.flush()

        log_operation(
            logger,
            operation="update_output",
            outcome="success",
            batch_id=output.batch_id,
            output_id=output.id,
            fields=sorted(kwargs),
        )
        return _output_dict(output)

    return run_in_transaction(_impl, session, operation="update_output")


def remove_output(output_id: int, session: Optional[Session] = None) -> bool:
    """
    Delete an output from a draft batch.

    Raises:
        OutputNotFound: If the output does not exist
        BatchLocked: If the owning batch is locked
    """

    def _impl(sess: Session) -> bool:
        output = sess.get(BatchOutput, output_id)
        if output is None:
            raise OutputNotFound(output_id)
        batch_id = output.batch_id
        require_unlocked_batch(sess, batch_id)
        sess.delete(output)
        sess.flush()
        log_operation(
            logger, operation="remove_output", outcome="success", batch_id=batch_id, output_id=output_id
        )
        return True

    return run_in_transaction(_impl, session, operation="remove_output")


def get_output(output_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """
    Get an output by id.

    Raises:
        OutputNotFound: If the output does not exist
    """

    def _impl(sess: Session) -> Dict[str, Any]:
        output = sess.get(BatchOutput, output_id)
        if output is None:
            raise OutputNotFound(output_id)
        return _output_dict(output)

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)


def get_batch_outputs(batch_id: int, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """Get the outputs of a batch in creation order."""

    def _impl(sess: Session) -> List[Dict[str, Any]]:
        outputs = (
            sess.query(BatchOutput)
            .options(joinedload(BatchOutput.tag))
            .filter(BatchOutput.batch_id == batch_id)
            .order_by(BatchOutput.id)
            .all()
        )
        return [output.to_dict() for output in outputs]

    if session is not None:
        return _impl(session)
    with session_scope() as sess:
        return _impl(sess)
