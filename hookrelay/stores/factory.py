from hookrelay.stores.base import DeliveryStore, StoreType
from hookrelay.stores.database import DatabaseDeliveryStore
from hookrelay.stores.memory import MemoryDeliveryStore


class DeliveryStoreFactory:
    _stores: dict[StoreType, type[DeliveryStore]] = {
        StoreType.MEMORY: MemoryDeliveryStore,
        StoreType.DATABASE: DatabaseDeliveryStore,
    }

    @classmethod
    def create_store(cls, store_type: StoreType | str) -> DeliveryStore:
        try:
            store_type = StoreType(store_type)
        except ValueError:
            raise ValueError(f"Unsupported delivery store: {store_type}")

        store_class = cls._stores.get(store_type)
        if not store_class:
            raise ValueError(f"Unsupported delivery store: {store_type}")

        return store_class()
