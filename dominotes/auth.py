"""Single-user PIN authentication.

The PIN hash lives in the ``PinAuth`` table; a successful setup or login
sets the ``authenticated`` cookie, which gates every notes/folders route.
"""
from __future__ import annotations
from datetime import datetime, UTC
from typing import Optional
import base64
import logging
import os

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from fastapi import Cookie, HTTPException, Response
from sqlmodel import select

from .config import is_production
from .db import session_scope
from .models import PinAuth

log = logging.getLogger(__name__)

AUTH_COOKIE = "authenticated"
COOKIE_MAX_AGE = 60 * 60 * 24 * 7  # 7 days

_ALGORITHM = "pbkdf2_sha256"
_ITERATIONS = 200_000


def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)


def _b64(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii")


def hash_pin(pin: str, iterations: int = _ITERATIONS) -> str:
    salt = os.urandom(16)
    digest = _kdf(salt, iterations).derive(pin.encode("utf-8"))
    return f"{_ALGORITHM}${iterations}${_b64(salt)}${_b64(digest)}"


def compare_pin(pin: str, hashed: str) -> bool:
    try:
        algorithm, iterations, salt, digest = hashed.split("$")
        kdf = _kdf(base64.urlsafe_b64decode(salt), int(iterations))
        expected = base64.urlsafe_b64decode(digest)
    except ValueError:
        log.warning("Stored PIN hash is malformed")
        return False
    if algorithm != _ALGORITHM:
        return False
    try:
        kdf.verify(pin.encode("utf-8"), expected)
    except InvalidKey:
        return False
    return True


def setup_pin(pin: str) -> None:
    """Store the PIN hash, replacing any existing one."""
    hashed = hash_pin(pin)
    with session_scope() as s:
        row = s.exec(select(PinAuth)).first()
        if row:
            row.pin = hashed
            row.updated_at = datetime.now(UTC)
        else:
            row = PinAuth(pin=hashed)
        s.add(row)


def verify_pin(pin: str) -> bool:
    with session_scope() as s:
        row = s.exec(select(PinAuth)).first()
        if not row:
            return False
        return compare_pin(pin, row.pin)


def set_auth_cookie(response: Response) -> None:
    response.set_cookie(
        key=AUTH_COOKIE,
        value="true",
        httponly=True,
        secure=is_production(),
        max_age=COOKIE_MAX_AGE,
        path="/",
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(AUTH_COOKIE, path="/")


def require_auth(authenticated: Optional[str] = Cookie(default=None)) -> None:
    """FastAPI dependency: reject requests without the auth cookie."""
    if authenticated != "true":
        raise HTTPException(status_code=401, detail="Unauthorized")
