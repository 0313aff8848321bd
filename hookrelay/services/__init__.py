from hookrelay.config import settings
from hookrelay.stores import DeliveryStoreFactory

from .dispatcher import DispatchOutcome, DispatchResult, Dispatcher
from .registry import HandlerRegistration, HandlerRegistry

delivery_store = DeliveryStoreFactory.create_store(settings.delivery_store)
handler_registry = HandlerRegistry()
dispatcher = Dispatcher(
    store=delivery_store,
    registry=handler_registry,
    handler_timeout=settings.handler_timeout,
    retry_policy=settings.retry_policy,
    dedupe_by_payload_hash=settings.dedupe_by_payload_hash,
)

__all__ = [
    "delivery_store",
    "dispatcher",
    "handler_registry",
    "DispatchOutcome",
    "DispatchResult",
    "Dispatcher",
    "HandlerRegistration",
    "HandlerRegistry",
]
