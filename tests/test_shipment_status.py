"""运单状态机测试。"""

import pytest

from shipquote.core.error_handler import ShipmentStateError
from shipquote.modules.shipment import ShipmentRecord, ShipmentStatus, VALID_TRANSITIONS, is_valid_transition


def test_final_and_active_flags() -> None:
    assert ShipmentStatus.DELIVERED.is_final is True
    assert ShipmentStatus.RETURNED.is_final is True
    assert ShipmentStatus.FAILED.is_final is False
    assert ShipmentStatus.IN_TRANSIT.is_active is True
    assert ShipmentStatus.PENDING.is_active is False


def test_final_states_have_no_outgoing_transitions() -> None:
    for status in ShipmentStatus:
        if status.is_final:
            assert VALID_TRANSITIONS[status] == set()


@pytest.mark.parametrize(
    ("current", "target", "expected"),
    [
        ("PENDING", "LABEL_CREATED", True),
        ("PENDING", "IN_TRANSIT", False),
        ("OUT_FOR_DELIVERY", "RETURNED", True),
        ("FAILED", "PICKED_UP", True),
        ("DELIVERED", "IN_TRANSIT", False),
        ("in_transit", "out_for_delivery", True),
        ("PENDING", "LOST", False),
        (None, "PENDING", False),
    ],
)
def test_is_valid_transition(current, target, expected) -> None:
    assert is_valid_transition(current, target) is expected


def test_record_transition_appends_tracking_event() -> None:
    record = ShipmentRecord(shipment_number="SHP-1")

    record.transition(ShipmentStatus.LABEL_CREATED)
    event = record.transition("PICKED_UP", location="Hanoi hub", description="Picked up by courier")

    assert record.status == ShipmentStatus.PICKED_UP
    assert [e.status for e in record.events] == [ShipmentStatus.LABEL_CREATED, ShipmentStatus.PICKED_UP]
    assert event.location == "Hanoi hub"
    assert record.to_dict()["is_active"] is True


def test_record_rejects_invalid_transition() -> None:
    record = ShipmentRecord(shipment_number="SHP-2")

    with pytest.raises(ShipmentStateError):
        record.transition(ShipmentStatus.DELIVERED)
    assert record.status == ShipmentStatus.PENDING
    assert record.events == []


def test_cancel_allowed_from_non_final_status() -> None:
    record = ShipmentRecord(shipment_number="SHP-3", status=ShipmentStatus.IN_TRANSIT)

    event = record.cancel("Customer request")

    assert record.status == ShipmentStatus.CANCELLED
    assert event.description == "Customer request"


def test_cancel_refused_in_final_status() -> None:
    record = ShipmentRecord(shipment_number="SHP-4", status=ShipmentStatus.DELIVERED)

    with pytest.raises(ShipmentStateError):
        record.cancel()


def test_unknown_status_rejected() -> None:
    with pytest.raises(ShipmentStateError):
        ShipmentStatus.parse("LOST")
