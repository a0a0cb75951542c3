"""Tests for the output registry (batch_output_service)."""

from decimal import Decimal

import pytest

from src.services import batch_output_service, batch_service, directory_service
from src.services.exceptions import (
    BatchLocked,
    BatchNotFound,
    FractionalNotAllowed,
    MissingTag,
    OutputNotFound,
    UnknownTag,
    UnknownUnit,
    ValidationError,
)


class TestAddOutput:
    """Tests for add_output()."""

    def test_add_output_returns_persisted_record(self, draft_batch, output_data):
        """The returned dict carries the id and normalized values."""
        output = batch_output_service.add_output(draft_batch["id"], output_data)

        assert output["id"] is not None
        assert output["batch_id"] == draft_batch["id"]
        assert Decimal(output["produced_quantity"]) == Decimal("100")
        assert Decimal(output["output_size"]) == Decimal("250")
        assert output["produced_goods_tag_name"] == "Finished Liquid"

    def test_decimal_quantity_in_decimal_unit(self, draft_batch, output_data):
        """Kg. allows fractional produced quantities."""
        output_data.update(produced_quantity="35.5", produced_unit="Kg.")
        output = batch_output_service.add_output(draft_batch["id"], output_data)
        assert Decimal(output["produced_quantity"]) == Decimal("35.5")

    def test_fractional_quantity_in_whole_unit(self, draft_batch, output_data):
        """Bottles only accept whole numbers."""
        output_data["produced_quantity"] = "12.5"
        with pytest.raises(FractionalNotAllowed) as exc_info:
            batch_output_service.add_output(draft_batch["id"], output_data)
        assert exc_info.value.unit == "bottles"

    def test_whole_value_written_with_decimals_is_accepted(self, draft_batch, output_data):
        """12.000 bottles is a whole number."""
        output_data["produced_quantity"] = "12.000"
        output = batch_output_service.add_output(draft_batch["id"], output_data)
        assert Decimal(output["produced_quantity"]) == Decimal("12")

    def test_missing_tag(self, draft_batch, output_data):
        """The classification tag is mandatory."""
        output_data["produced_goods_tag_id"] = None
        with pytest.raises(MissingTag):
            batch_output_service.add_output(draft_batch["id"], output_data)

    def test_unknown_tag(self, draft_batch, output_data):
        """The tag must exist."""
        output_data["produced_goods_tag_id"] = 9999
        with pytest.raises(UnknownTag):
            batch_output_service.add_output(draft_batch["id"], output_data)

    def test_inactive_tag(self, draft_batch, output_data, tag_id):
        """Inactive tags cannot be selected for new outputs."""
        directory_service.set_tag_status(tag_id, "inactive")
        with pytest.raises(UnknownTag):
            batch_output_service.add_output(draft_batch["id"], output_data)

    def test_unknown_unit(self, draft_batch, output_data):
        """The produced unit must be a produced-goods unit."""
        output_data["produced_unit"] = "rolls"
        with pytest.raises(UnknownUnit):
            batch_output_service.add_output(draft_batch["id"], output_data)

    @pytest.mark.parametrize("quantity", [0, -1, "", None])
    def test_non_positive_quantity(self, draft_batch, output_data, quantity):
        """Produced quantity must be greater than zero."""
        output_data["produced_quantity"] = quantity
        with pytest.raises(ValidationError):
            batch_output_service.add_output(draft_batch["id"], output_data)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("produced_quantity", "0.0004"),
            ("produced_quantity", "1e30"),
            ("output_size", "0.0001"),
            ("output_size", "1e30"),
        ],
    )
    def test_unstorable_quantities(self, draft_batch, output_data, field, value):
        """Values that round to zero or overflow the column are validation errors."""
        output_data[field] = value
        with pytest.raises(ValidationError):
            batch_output_service.add_output(draft_batch["id"], output_data)
        assert batch_output_service.get_batch_outputs(draft_batch["id"]) == []

    def test_size_requires_unit(self, draft_batch, output_data):
        """An output size needs its unit."""
        output_data["output_size_unit"] = None
        with pytest.raises(ValidationError) as exc_info:
            batch_output_service.add_output(draft_batch["id"], output_data)
        assert "Output size unit" in exc_info.value.errors[0]

    def test_size_is_optional(self, draft_batch, output_data):
        """Outputs may omit the size entirely."""
        output_data.update(output_size=None, output_size_unit=None)
        output = batch_output_service.add_output(draft_batch["id"], output_data)
        assert output["output_size"] is None
        assert output["output_size_unit"] is None

    def test_name_required(self, draft_batch, output_data):
        """Outputs need a name."""
        output_data["output_name"] = "   "
        with pytest.raises(ValidationError):
            batch_output_service.add_output(draft_batch["id"], output_data)

    def test_unknown_field(self, draft_batch, output_data):
        """Unexpected keys are refused."""
        output_data["colour"] = "yellow"
        with pytest.raises(ValidationError):
            batch_output_service.add_output(draft_batch["id"], output_data)

    def test_unknown_batch(self, output_data):
        """Outputs need an existing batch."""
        with pytest.raises(BatchNotFound):
            batch_output_service.add_output(9999, output_data)


class TestUpdateAndRemove:
    """Tests for update_output() and remove_output()."""

    def test_update_output_partial(self, draft_batch, output_data):
        """Only the given fields change."""
        created = batch_output_service.add_output(draft_batch["id"], output_data)
        updated = batch_output_service.update_output(created["id"], produced_quantity=120)

        assert Decimal(updated["produced_quantity"]) == Decimal("120")
        assert updated["output_name"] == "Banana Alkyl Liquid"

    def test_update_validates_merged_record(self, draft_batch, output_data):
        """Switching to a whole-number unit re-checks the existing quantity."""
        output_data.update(produced_quantity="35.5", produced_unit="Kg.")
        created = batch_output_service.add_output(draft_batch["id"], output_data)

        with pytest.raises(FractionalNotAllowed):
            batch_output_service.update_output(created["id"], produced_unit="jars")

        unchanged = batch_output_service.get_output(created["id"])
        assert unchanged["produced_unit"] == "Kg."

    def test_remove_output(self, draft_batch, output_data):
        """Removed outputs are gone."""
        created = batch_output_service.add_output(draft_batch["id"], output_data)
        assert batch_output_service.remove_output(created["id"]) is True

        assert batch_output_service.get_batch_outputs(draft_batch["id"]) == []
        with pytest.raises(OutputNotFound):
            batch_output_service.get_output(created["id"])

    def test_update_unknown_output(self, test_db):
        """Unknown ids raise OutputNotFound."""
        with pytest.raises(OutputNotFound):
            batch_output_service.update_output(9999, produced_quantity=1)
        with pytest.raises(OutputNotFound):
            batch_output_service.remove_output(9999)


class TestLockedBatchOutputs:
    """Outputs of a locked batch cannot change."""

    @pytest.fixture
    def locked(self, draft_batch, output_data, approval_data):
        output = batch_output_service.add_output(draft_batch["id"], output_data)
        batch_service.finalize_batch(draft_batch["id"], approval_data)
        return draft_batch, output

    def test_add_to_locked_batch(self, locked, output_data):
        """add_output raises BatchLocked."""
        batch, _ = locked
        with pytest.raises(BatchLocked):
            batch_output_service.add_output(batch["id"], output_data)

    def test_update_on_locked_batch(self, locked):
        """update_output raises BatchLocked."""
        _, output = locked
        with pytest.raises(BatchLocked):
            batch_output_service.update_output(output["id"], produced_quantity=5)

    def test_remove_from_locked_batch(self, locked):
        """remove_output raises BatchLocked and keeps the output."""
        batch, output = locked
        with pytest.raises(BatchLocked):
            batch_output_service.remove_output(output["id"])
        assert len(batch_output_service.get_batch_outputs(batch["id"])) == 1
