"""HMAC signature validation for provider video webhooks.

Every video job carries its own webhook secret, minted at submission. Inbound webhook
payloads are authenticated with HMAC-SHA256 over the canonical JSON form of the payload and
compared in constant time.

Security Note:
    verify_signature returns a plain bool for every failure mode (missing secret,
    missing signature, mismatch). Callers must reject all of them the same way.
"""

import hashlib
import hmac
import json
import secrets
from typing import Any

SIGNATURE_FIELD = "signature"


def generate_webhook_secret(num_bytes: int = 32) -> str:
    """Mint a new per-job webhook secret (hex encoded, 2 * num_bytes characters)."""
    return secrets.token_hex(num_bytes)


def canonical_json(payload: dict[str, Any]) -> bytes:
    """Serialize a webhook payload into the byte string that gets signed.

    The embedded signature field (if any) is excluded, keys are sorted and separators are
    compact, so the same logical payload always yields the same bytes regardless of how
    the sender ordered or spaced it.
    """
    unsigned = {key: value for key, value in payload.items() if key != SIGNATURE_FIELD}
    return json.dumps(
        unsigned, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def compute_signature(payload: dict[str, Any], secret: str) -> str:
    """Compute the hex HMAC-SHA256 signature of a payload."""
    return hmac.new(
        key=secret.encode("utf-8"), msg=canonical_json(payload), digestmod=hashlib.sha256
    ).hexdigest()


def verify_signature(
    payload: dict[str, Any], signature: str | None, secret: str | None
) -> bool:
    """Validate a webhook signature using HMAC-SHA256.

    Args:
        payload: Parsed webhook JSON body
        signature: Hex signature from the X-HeyGen-Signature header or body field
        secret: The job's webhook_secret

    Returns:
        True if the signature is valid, False otherwise (including missing inputs).

    Example:
        >>> payload = {"event": "video.completed", "data": {...}, "timestamp": 1700000000}
        >>> verify_signature(payload, compute_signature(payload, "s3cret"), "s3cret")
        True
    """
    if not isinstance(signature, str) or not isinstance(secret, str):
        return False
    if not secret or not signature:
        return False

    expected = compute_signature(payload, secret)

    # hexdigest() is lowercase; accept uppercase hex from the sender
    return hmac.compare_digest(
        expected.encode("ascii"), signature.strip().lower().encode("utf-8")
    )
