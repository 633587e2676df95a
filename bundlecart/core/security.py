"""Signed form tokens guarding add-to-cart submissions.

A token binds the customer session and the form action to the time it was
issued. The signature is an HMAC-SHA256 over ``action|session_key|issued_at``.
"""

from __future__ import annotations

import hashlib
import hmac
import time

from bundlecart.core.config import get_settings

BUNDLE_ADD_TO_CART_ACTION = "bundle_add_to_cart"


def _sign(secret: str, *, action: str, session_key: str, issued_at: int) -> str:
    payload = f"{action}|{session_key}|{issued_at}"
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def issue_form_token(
    session_key: str,
    action: str = BUNDLE_ADD_TO_CART_ACTION,
    *,
    now: float | None = None,
) -> str:
    settings = get_settings()
    issued_at = int(now if now is not None else time.time())
    signature = _sign(
        settings.form_secret_key,
        action=action,
        session_key=session_key,
        issued_at=issued_at,
    )
    return f"{issued_at}.{signature}"


def verify_form_token(
    token: str | None,
    session_key: str,
    action: str = BUNDLE_ADD_TO_CART_ACTION,
    *,
    now: float | None = None,
) -> bool:
    if not token or "." not in token:
        return False

    issued_raw, provided = token.split(".", 1)
    try:
        issued_at = int(issued_raw)
    except ValueError:
        return False

    settings = get_settings()
    expected = _sign(
        settings.form_secret_key,
        action=action,
        session_key=session_key,
        issued_at=issued_at,
    )
    if not hmac.compare_digest(expected, provided):
        return False

    current = int(now if now is not None else time.time())
    age = current - issued_at
    return 0 <= age <= settings.form_token_ttl_seconds
