"""
运单状态机
Shipment status state machine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from shipquote.core.error_handler import ShipmentStateError
from shipquote.core.logger import get_logger


class ShipmentStatus(str, Enum):
    PENDING = "PENDING"
    LABEL_CREATED = "LABEL_CREATED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"

    @property
    def is_final(self) -> bool:
        return self in FINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    @classmethod
    def parse(cls, value: Any) -> ShipmentStatus:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().upper())
        except ValueError:
            raise ShipmentStateError(f"Unknown shipment status: {value}", details={"status": value})


FINAL_STATUSES = frozenset({ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED, ShipmentStatus.RETURNED})
ACTIVE_STATUSES = frozenset({ShipmentStatus.PICKED_UP, ShipmentStatus.IN_TRANSIT, ShipmentStatus.OUT_FOR_DELIVERY})

VALID_TRANSITIONS: dict[ShipmentStatus, set[ShipmentStatus]] = {
    ShipmentStatus.PENDING: {ShipmentStatus.LABEL_CREATED, ShipmentStatus.CANCELLED},
    ShipmentStatus.LABEL_CREATED: {ShipmentStatus.PICKED_UP, ShipmentStatus.CANCELLED},
    ShipmentStatus.PICKED_UP: {ShipmentStatus.IN_TRANSIT, ShipmentStatus.FAILED},
    ShipmentStatus.IN_TRANSIT: {ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.FAILED},
    ShipmentStatus.OUT_FOR_DELIVERY: {ShipmentStatus.DELIVERED, ShipmentStatus.FAILED, ShipmentStatus.RETURNED},
    ShipmentStatus.FAILED: {ShipmentStatus.PICKED_UP, ShipmentStatus.RETURNED, ShipmentStatus.CANCELLED},
    ShipmentStatus.DELIVERED: set(),
    ShipmentStatus.CANCELLED: set(),
    ShipmentStatus.RETURNED: set(),
}


def is_valid_transition(current: ShipmentStatus | str | None, target: ShipmentStatus | str | None) -> bool:
    if current is None or target is None:
        return False
    try:
        source = ShipmentStatus.parse(current)
        destination = ShipmentStatus.parse(target)
    except ShipmentStateError:
        return False
    return destination in VALID_TRANSITIONS.get(source, set())


@dataclass(slots=True)
class TrackingEvent:
    status: ShipmentStatus
    timestamp: datetime
    location: str = ""
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "location": self.location,
            "description": self.description,
        }


@dataclass(slots=True)
class ShipmentRecord:
    """内存中的运单记录，只负责状态迁移校验与轨迹追加。"""

    shipment_number: str
    status: ShipmentStatus = ShipmentStatus.PENDING
    tracking_number: str | None = None
    events: list[TrackingEvent] = field(default_factory=list)

    def can_transition(self, target: ShipmentStatus | str) -> bool:
        return is_valid_transition(self.status, target)

    def transition(
        self,
        target: ShipmentStatus | str,
        location: str = "",
        description: str = "",
    ) -> TrackingEvent:
        destination = ShipmentStatus.parse(target)
        if not is_valid_transition(self.status, destination):
            raise ShipmentStateError(
                f"Invalid transition {self.status.value} -> {destination.value}",
                details={"shipment_number": self.shipment_number, "from": self.status.value, "to": destination.value},
            )
        return self._apply(destination, location, description)

    def _apply(self, destination: ShipmentStatus, location: str, description: str) -> TrackingEvent:
        event = TrackingEvent(
            status=destination,
            timestamp=datetime.now(timezone.utc),
            location=location,
            description=description or f"Status changed to {destination.value}",
        )
        get_logger("shipment").info(f"Shipment {self.shipment_number}: {self.status.value} -> {destination.value}")
        self.status = destination
        self.events.append(event)
        return event

    def cancel(self, reason: str = "") -> TrackingEvent:
        if self.status.is_final:
            raise ShipmentStateError(
                f"Cannot cancel shipment in final status {self.status.value}",
                details={"shipment_number": self.shipment_number, "status": self.status.value},
            )
        # 非终态均可取消，不受迁移表限制
        return self._apply(ShipmentStatus.CANCELLED, "", reason or "Shipment cancelled")

    def to_dict(self) -> dict[str, Any]:
        return {
            "shipment_number": self.shipment_number,
            "status": self.status.value,
            "tracking_number": self.tracking_number,
            "is_final": self.status.is_final,
            "is_active": self.status.is_active,
            "events": [event.to_dict() for event in self.events],
        }
