from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from jose import jwt

from edubus.core.config import get_settings


class Role(str, Enum):
    admin = "admin"
    scheduler = "scheduler"
    driver = "driver"
    supervisor = "supervisor"


def create_access_token(subject: str, role: Role, expires_minutes: int | None = None) -> str:
    settings = get_settings()
    lifetime = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=lifetime)
    payload = {"sub": subject, "role": role.value, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
