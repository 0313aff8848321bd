import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hookrelay.config import settings
from hookrelay.errors import StoreUnavailableError
from hookrelay.models import DeliveryStatus
from hookrelay.schemas.deliveries import Delivery
from hookrelay.services import delivery_store

logger = structlog.get_logger(__name__)
deliveries_router = APIRouter(prefix="/api", tags=["deliveries"])
api_security = HTTPBearer()


async def verify_token(
    credentials: HTTPAuthorizationCredentials = Depends(api_security),
):
    if credentials.credentials != settings.admin_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API token",
        )
    return credentials.credentials


def store_unavailable(e: StoreUnavailableError) -> HTTPException:
    logger.error("Delivery store unavailable", error=str(e))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Delivery store unavailable, retry later.",
    )


@deliveries_router.get(
    "/deliveries",
    response_model=list[Delivery],
    status_code=status.HTTP_200_OK,
)
async def list_deliveries(
    status_filter: DeliveryStatus | None = None,
    limit: int = Query(50, ge=1, le=500),
    token: str = Depends(verify_token),
):
    try:
        return await delivery_store.list_deliveries(status=status_filter, limit=limit)
    except StoreUnavailableError as e:
        raise store_unavailable(e)


@deliveries_router.get(
    "/deliveries/{delivery_id}",
    response_model=Delivery,
    status_code=status.HTTP_200_OK,
)
async def get_delivery(
    delivery_id: str,
    token: str = Depends(verify_token),
):
    try:
        delivery = await delivery_store.get(delivery_id)
    except StoreUnavailableError as e:
        raise store_unavailable(e)

    if delivery is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Delivery {delivery_id} not found",
        )
    return delivery
