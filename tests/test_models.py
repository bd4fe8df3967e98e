"""Tests for data models."""

from datetime import date

import pytest
from pydantic import TypeAdapter, ValidationError

from smartcart.errors import ErrorCode
from smartcart.models import (
    CreateItem,
    ItemCreate,
    MutationAction,
    QueuedMutation,
    Result,
    Retailer,
    ShoppingTrip,
    TripItem,
    TripStatus,
    UpdateTripStatus,
    can_transition,
    compute_trip_totals,
)


class TestTripStatus:
    """Tests for trip status transitions."""

    def test_forward_path(self):
        assert can_transition(TripStatus.PLANNED, TripStatus.ACTIVE)
        assert can_transition(TripStatus.ACTIVE, TripStatus.COMPLETED)

    def test_archive_and_restore(self):
        assert can_transition(TripStatus.COMPLETED, TripStatus.ARCHIVED)
        assert can_transition(TripStatus.ARCHIVED, TripStatus.PLANNED)

    def test_active_cannot_be_archived(self):
        assert not can_transition(TripStatus.ACTIVE, TripStatus.ARCHIVED)
        assert not can_transition(TripStatus.PLANNED, TripStatus.COMPLETED)


class TestTripItem:
    """Tests for TripItem."""

    def test_defaults(self):
        item = TripItem(id="i1", trip_id="t1", item_name="Milk")
        assert item.quantity == 1
        assert item.is_completed is False
        assert item.actual_price is None

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            ItemCreate(item_name="Milk", quantity=0)

    def test_trip_totals(self):
        """Totals multiply price by quantity and skip missing prices."""
        items = [
            TripItem(id="1", trip_id="t", item_name="Milk", quantity=2, estimated_price=3.49),
            TripItem(id="2", trip_id="t", item_name="Eggs", estimated_price=4.0, actual_price=4.25),
            TripItem(id="3", trip_id="t", item_name="Salt"),
        ]
        assert compute_trip_totals(items) == (10.98, 4.25)


class TestMutationActions:
    """Tests for the tagged mutation payloads."""

    def test_discriminated_by_type(self):
        adapter = TypeAdapter(MutationAction)
        action = adapter.validate_python(
            {"type": "CREATE_ITEM", "trip_id": "t1", "data": {"item_name": "Milk"}}
        )
        assert isinstance(action, CreateItem)
        assert action.data.quantity == 1

    def test_unknown_tag_rejected(self):
        with pytest.raises(ValidationError):
            TypeAdapter(MutationAction).validate_python({"type": "FLY_TO_MOON", "id": "x"})

    def test_queued_mutation_json(self):
        """A queued mutation survives a JSON dump and reload."""
        mutation = QueuedMutation(action=UpdateTripStatus(id="t1", status=TripStatus.ACTIVE))
        restored = QueuedMutation.model_validate_json(mutation.model_dump_json())

        assert restored.id == mutation.id
        assert restored.action == mutation.action
        assert restored.retry_count == 0


class TestResult:
    """Tests for the Result envelope."""

    def test_ok(self):
        result = Result.ok(5)
        assert result.success is True
        assert result.data == 5
        assert result.error is None

    def test_fail(self):
        result = Result.fail("nope", ErrorCode.NOT_FOUND)
        assert result.success is False
        assert result.code == ErrorCode.NOT_FOUND

    def test_to_dict_dumps_models(self):
        retailer = Retailer(id="r1", user_id="u1", name="Target")
        data = Result.ok([retailer]).to_dict()
        assert data["success"] is True
        assert data["data"][0]["name"] == "Target"

    def test_to_dict_failure(self):
        data = Result.fail("gone", ErrorCode.NOT_FOUND).to_dict()
        assert data == {"success": False, "error": "gone", "error_code": "NOT_FOUND"}

    def test_model_dates_serialize(self):
        trip = ShoppingTrip(id="t1", user_id="u1", retailer_id="r1", name="Shop", date=date(2026, 1, 5))
        assert trip.model_dump(mode="json")["date"] == "2026-01-05"
