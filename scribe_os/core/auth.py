"""Bearer token helpers. Tokens identify the practitioner who owns sessions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from scribe_os.config import get_settings


def create_access_token(
    practitioner_id: str,
    *,
    first_name: str = "",
    last_name: str = "",
    specialty: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    settings = get_settings()
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    payload = {
        "sub": practitioner_id,
        "type": "access",
        "given_name": first_name,
        "family_name": last_name,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    if specialty:
        payload["specialty"] = specialty
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    """Decode and validate a JWT. Returns claims dict or None on any error."""
    settings = get_settings()
    if not settings.jwt_secret:
        return None
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
