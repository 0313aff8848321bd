import asyncio
from datetime import datetime, timezone

from hookrelay.errors import StoreConflictError
from hookrelay.models import DeliveryStatus
from hookrelay.schemas.deliveries import Delivery, HandlerResult
from hookrelay.stores.base import DeliveryStore, StoreType, check_transition


class MemoryDeliveryStore(DeliveryStore):
    """
    Process-local store for single-instance deployments and tests.

    Every read hands out a deep copy, so callers cannot alter stored records.
    """

    store_type = StoreType.MEMORY

    def __init__(self):
        self._lock = asyncio.Lock()
        self._deliveries: dict[str, Delivery] = {}
        self._in_progress: set[str] = set()

    async def record_received(
        self,
        delivery_id: str,
        *,
        signature_valid: bool,
        raw_payload_hash: str,
        event_type: str = "",
    ) -> Delivery:
        async with self._lock:
            existing = self._deliveries.get(delivery_id)
            if existing is not None:
                return existing.model_copy(deep=True)

            delivery = Delivery(
                id=delivery_id,
                received_at=datetime.now(timezone.utc),
                signature_valid=signature_valid,
                raw_payload_hash=raw_payload_hash,
                event_type=event_type,
            )
            self._deliveries[delivery_id] = delivery
            return delivery.model_copy(deep=True)

    async def get(self, delivery_id: str) -> Delivery | None:
        delivery = self._deliveries.get(delivery_id)
        return delivery.model_copy(deep=True) if delivery is not None else None

    async def acquire(self, delivery_id: str) -> bool:
        async with self._lock:
            delivery = self._require(delivery_id)
            if delivery.status not in (DeliveryStatus.PENDING, DeliveryStatus.FAILED):
                return False
            if delivery_id in self._in_progress:
                return False

            self._in_progress.add(delivery_id)
            self._deliveries[delivery_id] = delivery.model_copy(
                update={"attempts": delivery.attempts + 1}
            )
            return True

    async def release(self, delivery_id: str) -> None:
        async with self._lock:
            self._in_progress.discard(delivery_id)

    async def mark_processed(
        self, delivery_id: str, results: list[HandlerResult]
    ) -> Delivery:
        return await self._transition(
            delivery_id, DeliveryStatus.PROCESSED, handler_results=list(results)
        )

    async def mark_failed(
        self, delivery_id: str, results: list[HandlerResult]
    ) -> Delivery:
        return await self._transition(
            delivery_id, DeliveryStatus.FAILED, handler_results=list(results)
        )

    async def mark_duplicate(self, delivery_id: str, duplicate_of: str) -> Delivery:
        return await self._transition(
            delivery_id, DeliveryStatus.DUPLICATE, duplicate_of=duplicate_of
        )

    async def find_processed_by_hash(
        self, raw_payload_hash: str, exclude_id: str
    ) -> Delivery | None:
        for delivery in self._deliveries.values():
            if (
                delivery.id != exclude_id
                and delivery.raw_payload_hash == raw_payload_hash
                and delivery.status == DeliveryStatus.PROCESSED
            ):
                return delivery.model_copy(deep=True)
        return None

    async def list_deliveries(
        self, status: DeliveryStatus | None = None, limit: int = 50
    ) -> list[Delivery]:
        # newest inserted first, so equal timestamps keep arrival order
        deliveries = [
            delivery
            for delivery in reversed(self._deliveries.values())
            if status is None or delivery.status == status
        ]
        deliveries.sort(key=lambda d: d.received_at, reverse=True)
        return [delivery.model_copy(deep=True) for delivery in deliveries[:limit]]

    def _require(self, delivery_id: str) -> Delivery:
        delivery = self._deliveries.get(delivery_id)
        if delivery is None:
            raise StoreConflictError(delivery_id, "was never recorded")
        return delivery

    async def _transition(
        self, delivery_id: str, target: DeliveryStatus, **changes
    ) -> Delivery:
        async with self._lock:
            delivery = self._require(delivery_id)
            check_transition(delivery_id, delivery.status, target)

            updated = delivery.model_copy(
                update={
                    "status": target,
                    "completed_at": datetime.now(timezone.utc),
                    **changes,
                }
            )
            self._deliveries[delivery_id] = updated
            return updated.model_copy(deep=True)
