"""Error types shared by the verifier, dispatcher and delivery stores."""

from dataclasses import dataclass
from enum import Enum


class VerificationFailure(Enum):
    INVALID_SIGNATURE = "invalid_signature"
    MALFORMED_PAYLOAD = "malformed_payload"


@dataclass(frozen=True)
class VerificationError:
    """Returned, not raised, when an inbound request fails verification."""

    failure: VerificationFailure
    detail: str


class HandlerErrorKind(Enum):
    TIMEOUT = "timeout"
    EXCEPTION = "exception"
    INVALID_STATE = "invalid_state"


class InvalidStateError(Exception):
    """Raised by a handler when the event conflicts with its own state."""


class StoreError(Exception):
    """Base class for delivery store failures."""


class StoreUnavailableError(StoreError):
    """The backing store could not be reached; the sender should redeliver later."""


class StoreConflictError(StoreError):
    """The requested change contradicts the stored delivery."""

    def __init__(self, delivery_id: str, reason: str) -> None:
        self.delivery_id = delivery_id
        super().__init__(f"Delivery {delivery_id}: {reason}")
