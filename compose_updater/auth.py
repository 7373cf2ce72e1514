"""Webhook signature verification and secret loading.

Signatures are hex-encoded HMAC-SHA256 digests of the raw request body,
keyed with the shared secret. An empty secret disables verification.
"""

from __future__ import annotations

import hashlib
import hmac
from pathlib import Path

from compose_updater.errors import AuthError
from compose_updater.logging import get_logger

log = get_logger("compose_updater.auth")

SIGNATURE_HEADER = "X-Webhook-Signature"
_SIGNATURE_PREFIX = "sha256="


def compute_signature(body: bytes, secret: str) -> str:
    """Return the hex HMAC-SHA256 of *body* keyed with *secret*."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, provided_signature: str | None, secret: str) -> bool:
    """Check a webhook signature in constant time.

    Returns True without computing a MAC when *secret* is empty. A leading
    ``sha256=`` on the provided signature is ignored.
    """
    if not secret:
        return True
    if not provided_signature:
        return False

    candidate = provided_signature.strip().lower()
    if candidate.startswith(_SIGNATURE_PREFIX):
        candidate = candidate[len(_SIGNATURE_PREFIX) :]
    if not candidate:
        return False

    expected = compute_signature(body, secret)
    return hmac.compare_digest(candidate.encode("ascii", "replace"), expected.encode("ascii"))


def require_signature(body: bytes, provided_signature: str | None, secret: str) -> None:
    """Like ``verify_signature`` but raises ``AuthError`` on mismatch."""
    if not verify_signature(body, provided_signature, secret):
        reason = "missing signature" if not provided_signature else "invalid signature"
        raise AuthError(reason)


def load_secret(secret_path: str) -> str:
    """Read a shared secret from *secret_path*.

    A missing, empty or whitespace-only file yields an empty secret, which
    leaves the webhook unauthenticated.
    """
    path = Path(secret_path)
    if not path.exists():
        log.warning("webhook_secret_file_missing", path=str(path))
        return ""
    secret = path.read_text(encoding="utf-8").strip()
    if not secret:
        log.warning("webhook_secret_file_empty", path=str(path))
    return secret
