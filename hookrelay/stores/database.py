from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.database import get_db
from hookrelay.errors import StoreConflictError, StoreUnavailableError
from hookrelay.models import DeliveryRecord, DeliveryStatus
from hookrelay.schemas.deliveries import Delivery, HandlerResult
from hookrelay.stores.base import DeliveryStore, StoreType, check_transition

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class DatabaseDeliveryStore(DeliveryStore):
    """Delivery store backed by the ``delivery`` table through SQLAlchemy."""

    store_type = StoreType.DATABASE

    def __init__(self, session_factory: SessionFactory = get_db):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as db:
                yield db
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError) as e:
            logger.error("Delivery store unavailable", error=str(e))
            raise StoreUnavailableError(str(e)) from e

    async def record_received(
        self,
        delivery_id: str,
        *,
        signature_valid: bool,
        raw_payload_hash: str,
        event_type: str = "",
    ) -> Delivery:
        existing = await self.get(delivery_id)
        if existing is not None:
            return existing

        try:
            async with self._session() as db:
                record = DeliveryRecord(
                    id=delivery_id,
                    received_at=datetime.now(timezone.utc),
                    signature_valid=signature_valid,
                    raw_payload_hash=raw_payload_hash,
                    event_type=event_type,
                    status=DeliveryStatus.PENDING,
                    in_progress=False,
                    attempts=0,
                    handler_results=[],
                )
                db.add(record)
                await db.flush()
                return self._to_delivery(record)
        except IntegrityError:
            # a concurrent request inserted the same id first
            existing = await self.get(delivery_id)
            if existing is None:
                raise StoreConflictError(delivery_id, "insert conflicted")
            return existing

    async def get(self, delivery_id: str) -> Delivery | None:
        async with self._session() as db:
            record = await db.get(DeliveryRecord, delivery_id)
            return self._to_delivery(record) if record else None

    async def acquire(self, delivery_id: str) -> bool:
        async with self._session() as db:
            stmt = (
                update(DeliveryRecord)
                .where(DeliveryRecord.id == delivery_id)
                .where(DeliveryRecord.in_progress.is_(False))
                .where(
                    DeliveryRecord.status.in_(
                        [DeliveryStatus.PENDING, DeliveryStatus.FAILED]
                    )
                )
                .values(in_progress=True, attempts=DeliveryRecord.attempts + 1)
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(stmt)
            if result.rowcount == 1:
                return True

            if await db.get(DeliveryRecord, delivery_id) is None:
                raise StoreConflictError(delivery_id, "was never recorded")
            return False

    async def release(self, delivery_id: str) -> None:
        async with self._session() as db:
            await db.execute(
                update(DeliveryRecord)
                .where(DeliveryRecord.id == delivery_id)
                .values(in_progress=False)
                .execution_options(synchronize_session=False)
            )

    async def mark_processed(
        self, delivery_id: str, results: list[HandlerResult]
    ) -> Delivery:
        return await self._transition(
            delivery_id,
            DeliveryStatus.PROCESSED,
            handler_results=[r.model_dump(mode="json") for r in results],
        )

    async def mark_failed(
        self, delivery_id: str, results: list[HandlerResult]
    ) -> Delivery:
        return await self._transition(
            delivery_id,
            DeliveryStatus.FAILED,
            handler_results=[r.model_dump(mode="json") for r in results],
        )

    async def mark_duplicate(self, delivery_id: str, duplicate_of: str) -> Delivery:
        return await self._transition(
            delivery_id, DeliveryStatus.DUPLICATE, duplicate_of=duplicate_of
        )

    async def find_processed_by_hash(
        self, raw_payload_hash: str, exclude_id: str
    ) -> Delivery | None:
        async with self._session() as db:
            stmt = (
                select(DeliveryRecord)
                .where(DeliveryRecord.raw_payload_hash == raw_payload_hash)
                .where(DeliveryRecord.id != exclude_id)
                .where(DeliveryRecord.status == DeliveryStatus.PROCESSED)
                .order_by(DeliveryRecord.received_at)
                .limit(1)
            )
            result = await db.execute(stmt)
            record = result.scalars().first()
            return self._to_delivery(record) if record else None

    async def list_deliveries(
        self, status: DeliveryStatus | None = None, limit: int = 50
    ) -> list[Delivery]:
        async with self._session() as db:
            stmt = select(DeliveryRecord).order_by(DeliveryRecord.received_at.desc())
            if status is not None:
                stmt = stmt.where(DeliveryRecord.status == status)
            stmt = stmt.limit(limit)

            result = await db.execute(stmt)
            return [self._to_delivery(record) for record in result.scalars().all()]

    async def _transition(
        self, delivery_id: str, target: DeliveryStatus, **changes: Any
    ) -> Delivery:
        async with self._session() as db:
            stmt = (
                select(DeliveryRecord)
                .where(DeliveryRecord.id == delivery_id)
                .with_for_update()
            )
            result = await db.execute(stmt)
            record = result.scalars().first()
            if record is None:
                raise StoreConflictError(delivery_id, "was never recorded")

            check_transition(delivery_id, record.status, target)

            record.status = target
            record.completed_at = datetime.now(timezone.utc)
            for key, value in changes.items():
                setattr(record, key, value)
            await db.flush()

            return self._to_delivery(record)

    @staticmethod
    def _to_delivery(record: DeliveryRecord) -> Delivery:
        return Delivery.model_validate(record)
