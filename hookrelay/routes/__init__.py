from hookrelay.routes.deliveries import deliveries_router
from hookrelay.routes.webhooks import webhooks_router

__all__ = [
    "deliveries_router",
    "webhooks_router",
]
