from hookrelay.stores.base import DeliveryStore, StoreType
from hookrelay.stores.database import DatabaseDeliveryStore
from hookrelay.stores.factory import DeliveryStoreFactory
from hookrelay.stores.memory import MemoryDeliveryStore

__all__ = [
    "DatabaseDeliveryStore",
    "DeliveryStore",
    "DeliveryStoreFactory",
    "MemoryDeliveryStore",
    "StoreType",
]
