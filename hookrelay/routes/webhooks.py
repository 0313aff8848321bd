import structlog
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Header,
    HTTPException,
    Request,
    Response,
    status,
)

from hookrelay.classifier import classify
from hookrelay.config import settings
from hookrelay.errors import (
    StoreConflictError,
    StoreError,
    StoreUnavailableError,
    VerificationError,
    VerificationFailure,
)
from hookrelay.events import Event
from hookrelay.models import CONSUMED_STATUSES
from hookrelay.schemas.deliveries import Delivery, WebhookAccepted
from hookrelay.services import dispatcher
from hookrelay.verifier import parse, verify

logger = structlog.get_logger(__name__)

webhooks_router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

MAX_DELIVERY_ID_LENGTH = 255
STORE_RETRY_AFTER_SECONDS = "30"


async def process_delivery(delivery: Delivery, event: Event) -> None:
    try:
        await dispatcher.dispatch(delivery, event)
    except StoreError as e:
        # the record stays pending or failed, so a redelivery runs it again
        logger.error(
            "Dispatch aborted by delivery store error",
            delivery_id=delivery.id,
            error=str(e),
            error_type=type(e).__name__,
        )


def verification_http_error(error: VerificationError) -> HTTPException:
    if error.failure == VerificationFailure.INVALID_SIGNATURE:
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=error.detail
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.detail)


@webhooks_router.post(
    "/github",
    response_model=WebhookAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def receive_github_webhook(
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    x_github_delivery: str | None = Header(None, description="GitHub delivery GUID"),
    x_github_event: str | None = Header(None, description="GitHub event type"),
    x_hub_signature_256: str | None = Header(
        None, description="GitHub webhook signature"
    ),
):
    if not x_github_delivery:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-GitHub-Delivery header.",
        )

    if len(x_github_delivery) > MAX_DELIVERY_ID_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-GitHub-Delivery header format (too long).",
        )

    body = await request.body()

    if settings.github_webhook_secret:
        verified = verify(body, x_hub_signature_256, settings.github_webhook_secret)
    else:
        verified = parse(body)

    if isinstance(verified, VerificationError):
        logger.warning(
            "Rejected webhook",
            delivery_id=x_github_delivery,
            reason=verified.failure.value,
        )
        raise verification_http_error(verified)

    event = classify(verified, x_github_event)

    try:
        delivery = await dispatcher.store.record_received(
            x_github_delivery,
            signature_valid=verified.signature_valid,
            raw_payload_hash=verified.raw_payload_hash,
            event_type=x_github_event or "",
        )
    except StoreUnavailableError as e:
        logger.error(
            "Delivery store unavailable", delivery_id=x_github_delivery, error=str(e)
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Delivery store unavailable, retry later.",
            headers={"Retry-After": STORE_RETRY_AFTER_SECONDS},
        )
    except StoreConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if delivery.status in CONSUMED_STATUSES:
        logger.info(
            "Duplicate delivery received",
            delivery_id=delivery.id,
            status=delivery.status.value,
        )
        if settings.duplicate_status_code == status.HTTP_409_CONFLICT:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Duplicate delivery {delivery.id}.",
            )
        response.status_code = status.HTTP_200_OK
        return WebhookAccepted(message="Duplicate delivery", delivery_id=delivery.id)

    background_tasks.add_task(process_delivery, delivery, event)

    return WebhookAccepted(
        message="Webhook received",
        delivery_id=delivery.id,
        event=event.kind.value,
    )
