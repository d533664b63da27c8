from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import jwt

from fulfillment.core_settings import get_settings
from fulfillment.domain.state_machine import Actor
from fulfillment.domain.statuses import Role


def create_access_token(subject: str, user_type: str, permissions: Iterable[str] = (),
                        vendor_id: Optional[str] = None, expires_minutes: int = 60) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "user_type": user_type,
        "permissions": list(permissions),
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    if vendor_id:
        payload["vendor_id"] = vendor_id
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_access_token(token: str) -> Optional[dict]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.PyJWTError:
        return None


def actor_from_claims(claims: dict) -> Optional[Actor]:
    subject = claims.get("sub")
    try:
        role = Role(str(claims.get("user_type", "")).lower())
    except ValueError:
        return None
    if not subject:
        return None
    vendor_id = claims.get("vendor_id") or (subject if role == Role.VENDOR else None)
    return Actor(
        user_id=str(subject),
        role=role,
        capabilities=frozenset(claims.get("permissions") or ()),
        vendor_id=vendor_id,
    )
