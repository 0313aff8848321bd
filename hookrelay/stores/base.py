from abc import ABC, abstractmethod
from enum import Enum

from hookrelay.models import ALLOWED_TRANSITIONS, DeliveryStatus
from hookrelay.errors import StoreConflictError
from hookrelay.schemas.deliveries import Delivery, HandlerResult


class StoreType(Enum):
    MEMORY = "memory"
    DATABASE = "database"


def check_transition(
    delivery_id: str, current: DeliveryStatus, target: DeliveryStatus
) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise StoreConflictError(
            delivery_id,
            f"cannot move from {current.value} to {target.value}",
        )


class DeliveryStore(ABC):
    store_type: StoreType

    @abstractmethod
    async def record_received(
        self,
        delivery_id: str,
        *,
        signature_valid: bool,
        raw_payload_hash: str,
        event_type: str = "",
    ) -> Delivery:
        """Create the delivery, or return the existing record unchanged."""

    @abstractmethod
    async def get(self, delivery_id: str) -> Delivery | None:
        pass

    async def get_status(self, delivery_id: str) -> DeliveryStatus | None:
        delivery = await self.get(delivery_id)
        return delivery.status if delivery else None

    @abstractmethod
    async def acquire(self, delivery_id: str) -> bool:
        """
        Take the processing gate for a pending or failed delivery.

        Returns False when the delivery is consumed or another caller holds it.
        """

    @abstractmethod
    async def release(self, delivery_id: str) -> None:
        pass

    @abstractmethod
    async def mark_processed(
        self, delivery_id: str, results: list[HandlerResult]
    ) -> Delivery:
        pass

    @abstractmethod
    async def mark_failed(
        self, delivery_id: str, results: list[HandlerResult]
    ) -> Delivery:
        pass

    @abstractmethod
    async def mark_duplicate(self, delivery_id: str, duplicate_of: str) -> Delivery:
        pass

    @abstractmethod
    async def find_processed_by_hash(
        self, raw_payload_hash: str, exclude_id: str
    ) -> Delivery | None:
        pass

    @abstractmethod
    async def list_deliveries(
        self, status: DeliveryStatus | None = None, limit: int = 50
    ) -> list[Delivery]:
        pass
