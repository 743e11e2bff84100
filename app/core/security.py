import base64
import hashlib
import hmac
import time
from typing import Any, Mapping

import bcrypt
from itsdangerous import BadData, URLSafeTimedSerializer

from app.core.config import get_settings
from app.core.exceptions import UnverifiedEventError

SESSION_MAX_AGE = 7 * 24 * 3600  # 7 days


def get_session_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="imagestudio-session",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_session_cookie(payload: dict[str, Any]) -> str:
    return get_session_serializer().dumps(payload)


def load_session_cookie(cookie_value: str, max_age_seconds: int = SESSION_MAX_AGE) -> dict[str, Any] | None:
    serializer = get_session_serializer()
    try:
        return serializer.loads(cookie_value, max_age=max_age_seconds)
    except BadData:
        return None


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def sign_webhook(secret: str, msg_id: str, timestamp: int | str, payload: bytes) -> str:
    """Standard Webhooks signature (as sent by Polar): base64 HMAC-SHA256 over "id.timestamp.body"."""
    to_sign = f"{msg_id}.{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), to_sign, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_webhook(
    payload: bytes,
    headers: Mapping[str, str],
    secret: str,
    tolerance_seconds: int = 5 * 60,
    now: float | None = None,
) -> str:
    """
    Verify webhook-id / webhook-timestamp / webhook-signature headers.
    Returns the message id (stable across redeliveries). Raises UnverifiedEventError.
    """
    if not secret:
        raise UnverifiedEventError("Webhook secret not configured")
    msg_id = headers.get("webhook-id")
    timestamp = headers.get("webhook-timestamp")
    signature_header = headers.get("webhook-signature")
    if not msg_id or not timestamp or not signature_header:
        raise UnverifiedEventError("Missing webhook headers")
    try:
        ts = int(timestamp)
    except ValueError as e:
        raise UnverifiedEventError("Invalid webhook timestamp") from e
    current = int(now if now is not None else time.time())
    if abs(current - ts) > tolerance_seconds:
        raise UnverifiedEventError("Webhook timestamp outside tolerance")

    expected = sign_webhook(secret, msg_id, ts, payload)
    for versioned in signature_header.split(" "):
        version, _, sig = versioned.partition(",")
        if version == "v1" and hmac.compare_digest(expected, sig):
            return msg_id
    raise UnverifiedEventError()
