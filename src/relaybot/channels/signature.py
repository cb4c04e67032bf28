"""Slack request signature verification."""

from __future__ import annotations

import hashlib
import hmac
import time

from relaybot.errors import AuthError

SIGNATURE_VERSION = "v0"
DEFAULT_MAX_AGE_SECONDS = 60 * 5


def compute_signature(signing_secret: str, timestamp: str, body: str) -> str:
    basestring = f"{SIGNATURE_VERSION}:{timestamp}:{body}"
    digest = hmac.new(signing_secret.encode("utf-8"), basestring.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_slack_signature(
    signing_secret: str,
    signature: str | None,
    timestamp: str | None,
    body: str,
    *,
    now: float | None = None,
    max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
) -> None:
    """Raise ``AuthError`` unless the request is signed with the secret and fresh."""
    if not signature or not timestamp:
        raise AuthError("missing Slack signature headers")
    try:
        sent_at = int(timestamp)
    except ValueError:
        raise AuthError("invalid Slack request timestamp") from None

    current = time.time() if now is None else now
    if sent_at < int(current) - max_age_seconds:
        raise AuthError("stale Slack request timestamp")

    expected = compute_signature(signing_secret, timestamp, body)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        raise AuthError("invalid Slack signature")
