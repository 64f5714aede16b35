"""Inbound source-control webhook handling.

This module verifies and parses webhook deliveries:
- ping - acknowledged without further processing
- push - parsed into a PushEvent for the completion pipeline

Signatures are HMAC-SHA256 over the raw body, sent as
``X-Hub-Signature-256: sha256=<hex>``.
"""

from .handler import PayloadError, WebhookHandler
from .models import CommitInfo, PushEvent, WebhookEventType
from .signature import (
    SIGNATURE_HEADER,
    SignatureCheck,
    check_signature,
    compute_signature,
    verify_signature,
)

__all__ = [
    "CommitInfo",
    "PayloadError",
    "PushEvent",
    "SIGNATURE_HEADER",
    "SignatureCheck",
    "WebhookEventType",
    "WebhookHandler",
    "check_signature",
    "compute_signature",
    "verify_signature",
]
