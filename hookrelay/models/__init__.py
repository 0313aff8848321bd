"""Models module."""

from hookrelay.models.delivery import (
    ALLOWED_TRANSITIONS,
    CONSUMED_STATUSES,
    Base,
    DeliveryRecord,
    DeliveryStatus,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "CONSUMED_STATUSES",
    "Base",
    "DeliveryRecord",
    "DeliveryStatus",
]
