"""Webhook signature verification.

The host signs the raw request body with HMAC-SHA256 using the shared
secret and sends ``sha256=<hex digest>`` in the X-Hub-Signature-256
header. The comparison is constant-time.

When no secret is configured, verification is skipped and every request
is accepted. This is insecure; configure a secret in production.
"""

import hashlib
import hmac
import logging
from enum import Enum
from typing import Optional


logger = logging.getLogger(__name__)


SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


class SignatureCheck(str, Enum):
    """Outcome of verifying a request signature."""

    VALID = "valid"
    SKIPPED = "skipped"
    MISSING = "missing"
    INVALID = "invalid"

    @property
    def accepted(self) -> bool:
        return self in (SignatureCheck.VALID, SignatureCheck.SKIPPED)


def compute_signature(secret: str, raw_body: bytes) -> str:
    """Compute the ``sha256=<hex>`` signature for a body."""
    digest = hmac.new(
        secret.encode("utf-8"),
        msg=raw_body,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return SIGNATURE_PREFIX + digest


def check_signature(
    secret: Optional[str],
    raw_body: bytes,
    signature_header: Optional[str],
) -> SignatureCheck:
    """Verify a request and report why it was accepted or rejected.

    Args:
        secret: The shared secret. Empty or None skips verification.
        raw_body: The raw, unparsed request body.
        signature_header: Value of the X-Hub-Signature-256 header.

    Returns:
        SignatureCheck describing the outcome.
    """
    if not secret:
        logger.warning("Webhook secret not set, skipping signature verification")
        return SignatureCheck.SKIPPED

    if not signature_header:
        logger.warning("Missing %s header", SIGNATURE_HEADER)
        return SignatureCheck.MISSING

    expected = compute_signature(secret, raw_body)

    if hmac.compare_digest(
        expected.encode("utf-8"), signature_header.encode("utf-8")
    ):
        return SignatureCheck.VALID

    logger.warning("Webhook signature mismatch")
    return SignatureCheck.INVALID


def verify_signature(
    secret: Optional[str],
    raw_body: bytes,
    signature_header: Optional[str],
) -> bool:
    """Return True if the request may be processed.

    Args:
        secret: The shared secret. Empty or None accepts every request.
        raw_body: The raw, unparsed request body.
        signature_header: Value of the X-Hub-Signature-256 header.
    """
    return check_signature(secret, raw_body, signature_header).accepted
