"""Session token issue and verification.

A token is the unpadded URL-safe base64 encoding of::

    <principal reference>:<issued at, epoch ms>:<nonce>:<hmac>

The principal reference comes from the authority: ``username:password`` for
the static authority, ``user_id:username`` for the user store. Verification
re-resolves the reference against the authority, so tokens stay valid only
while the principal does. The HMAC is keyed with the application secret and
also covers the authority's binding for the principal (the password hash in
the user store), which invalidates tokens after a password change.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
from typing import Optional

from fastapi import Request

from config import Settings, now_ms as _clock_ms
from security import AuthorityUnavailable, Principal, _token_from_request

logger = logging.getLogger(__name__)

DELIMITER = ":"
NONCE_BYTES = 16


def _mac(settings: Settings, payload: str, binding: str) -> str:
    digest = hmac.new(
        settings.secret_key.encode(),
        f"{payload}{DELIMITER}{binding}".encode(),
        hashlib.sha256,
    ).digest()
    # 43 chars; hex would push tokens for long credentials past max_token_length
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def _encode(raw: str) -> str:
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def _decode(token: str) -> str:
    padded = token + "=" * (-len(token) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")


def issue_token(principal: Principal, authority, settings: Settings, now_ms: Optional[int] = None) -> str:
    issued_at = _clock_ms() if now_ms is None else now_ms
    nonce = secrets.token_urlsafe(NONCE_BYTES)
    payload = DELIMITER.join([authority.claim_for(principal), str(issued_at), nonce])
    sig = _mac(settings, payload, authority.token_binding(principal))
    return _encode(f"{payload}{DELIMITER}{sig}")


def verify_token(token, authority, settings: Settings, now_ms: Optional[int] = None) -> Optional[Principal]:
    """Return the Principal a token refers to, or None if it is not valid now.

    Malformed, tampered, expired and revoked-principal tokens all give the
    same None.
    """
    if not isinstance(token, str) or not token or len(token) > settings.max_token_length:
        return None
    try:
        decoded = _decode(token)
    except (binascii.Error, ValueError):
        # UnicodeDecodeError and UnicodeEncodeError are ValueErrors
        return None

    parts = decoded.rsplit(DELIMITER, 3)
    if len(parts) < 4:
        return None
    claim, issued_at_s, nonce, sig = parts

    try:
        principal = authority.resolve_claim(claim)
        if principal is None:
            return None
        payload = DELIMITER.join([claim, issued_at_s, nonce])
        expected = _mac(settings, payload, authority.token_binding(principal))
    except AuthorityUnavailable:
        logger.error("Token verification failed: authority unavailable", exc_info=True)
        return None
    if not hmac.compare_digest(sig.encode(), expected.encode()):
        return None

    try:
        issued_at = int(issued_at_s)
    except ValueError:
        return None
    age = (_clock_ms() if now_ms is None else now_ms) - issued_at
    if age < 0 or age > settings.token_expiry_ms:
        return None
    return principal


def _get_authenticated_principal(request: Request) -> Optional[Principal]:
    """Verify the token carried by the request. Returns Principal or None."""
    token = _token_from_request(request)
    if not token:
        return None
    state = request.app.state
    return verify_token(token, state.authority, state.settings)
