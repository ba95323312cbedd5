import hashlib
import hmac

from plain_triage.core.errors import SignatureVerificationError


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str | None, secret: str) -> None:
    """HMAC-SHA256 of the raw body, hex encoded, optionally prefixed with ``sha256=``."""
    if not signature:
        raise SignatureVerificationError("Missing signature header")

    provided = signature.strip().removeprefix("sha256=")
    expected = compute_signature(payload, secret)
    if not hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8")):
        raise SignatureVerificationError("Failed to verify webhook signature")
