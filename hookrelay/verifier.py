"""
Authenticity and structure checks for inbound webhook bodies.

Every failure is returned as a VerificationError value. Nothing in here raises
on attacker-controlled input.
"""

import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any

from hookrelay.errors import VerificationError, VerificationFailure

SIGNATURE_PREFIX = "sha256="


@dataclass(frozen=True)
class VerifiedPayload:
    data: dict[str, Any]
    raw_payload_hash: str
    signature_valid: bool


def compute_signature(raw_body: bytes, shared_secret: str) -> str:
    digest = hmac.new(shared_secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def payload_hash(raw_body: bytes) -> str:
    return hashlib.sha256(raw_body).hexdigest()


def parse(
    raw_body: bytes, *, signature_valid: bool = False
) -> VerifiedPayload | VerificationError:
    """Check that the body is a JSON object, without looking at any signature."""
    try:
        data = json.loads(raw_body)
    except (ValueError, RecursionError):
        return VerificationError(
            VerificationFailure.MALFORMED_PAYLOAD, "Invalid JSON payload."
        )

    if not isinstance(data, dict):
        return VerificationError(
            VerificationFailure.MALFORMED_PAYLOAD,
            "Payload must be a JSON object.",
        )

    return VerifiedPayload(
        data=data,
        raw_payload_hash=payload_hash(raw_body),
        signature_valid=signature_valid,
    )


def verify(
    raw_body: bytes, signature_header: str | None, shared_secret: str
) -> VerifiedPayload | VerificationError:
    if not signature_header:
        return VerificationError(
            VerificationFailure.INVALID_SIGNATURE,
            "Missing X-Hub-Signature-256 header.",
        )

    expected_signature = compute_signature(raw_body, shared_secret)
    # compare_digest rejects non-ASCII str, so compare bytes
    if not hmac.compare_digest(
        expected_signature.encode(), signature_header.encode("utf-8", "replace")
    ):
        return VerificationError(
            VerificationFailure.INVALID_SIGNATURE, "Invalid signature."
        )

    return parse(raw_body, signature_valid=True)
