from datetime import datetime
from enum import Enum
from typing import Any

import sqlalchemy
from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class DeliveryStatus(Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
    DUPLICATE = "duplicate"


# processed and duplicate are terminal; failed may be re-run by a redelivery
ALLOWED_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset(
        {DeliveryStatus.PROCESSED, DeliveryStatus.FAILED, DeliveryStatus.DUPLICATE}
    ),
    DeliveryStatus.FAILED: frozenset(
        {DeliveryStatus.PROCESSED, DeliveryStatus.FAILED, DeliveryStatus.DUPLICATE}
    ),
    DeliveryStatus.PROCESSED: frozenset(),
    DeliveryStatus.DUPLICATE: frozenset(),
}

CONSUMED_STATUSES = frozenset({DeliveryStatus.PROCESSED, DeliveryStatus.DUPLICATE})


class DeliveryRecord(Base):
    __tablename__ = "delivery"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    received_at: Mapped[datetime] = mapped_column(index=True)
    signature_valid: Mapped[bool] = mapped_column(Boolean, default=False)
    raw_payload_hash: Mapped[str] = mapped_column(String(64), index=True)
    event_type: Mapped[str] = mapped_column(String(64), default="")
    status: Mapped[DeliveryStatus] = mapped_column(
        index=True,
        default=DeliveryStatus.PENDING,
        type_=sqlalchemy.Enum(
            DeliveryStatus, values_callable=lambda x: [e.value for e in x]
        ),
    )
    in_progress: Mapped[bool] = mapped_column(Boolean, default=False)
    attempts: Mapped[int] = mapped_column(default=0)
    handler_results: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    duplicate_of: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self):
        return f"<DeliveryRecord(id='{self.id}', status='{self.status.name}')>"
