"""运单生命周期模块。"""

from .status import VALID_TRANSITIONS, ShipmentRecord, ShipmentStatus, TrackingEvent, is_valid_transition

__all__ = [
    "ShipmentRecord",
    "ShipmentStatus",
    "TrackingEvent",
    "VALID_TRANSITIONS",
    "is_valid_transition",
]
