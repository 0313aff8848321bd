from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from hookrelay.errors import HandlerErrorKind
from hookrelay.models import DeliveryStatus


class HandlerResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    handler: str
    ok: bool
    error_kind: HandlerErrorKind | None = None
    error: str | None = None
    duration_ms: float = 0.0


class Delivery(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    received_at: datetime
    signature_valid: bool
    raw_payload_hash: str
    event_type: str = ""
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = 0
    handler_results: list[HandlerResult] = Field(default_factory=list)
    duplicate_of: str | None = None
    completed_at: datetime | None = None

    @property
    def failed_handlers(self) -> list[str]:
        return [result.handler for result in self.handler_results if not result.ok]

    @property
    def succeeded_handlers(self) -> list[str]:
        return [result.handler for result in self.handler_results if result.ok]


class WebhookAccepted(BaseModel):
    message: str
    delivery_id: str
    event: str | None = None
