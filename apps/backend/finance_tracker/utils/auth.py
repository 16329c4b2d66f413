import base64
import logging
import hashlib
import hmac
import json
import os
import time
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from finance_tracker.config import settings
from finance_tracker.db import get_db
from finance_tracker.orm_models import User

logger = logging.getLogger(__name__)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    pad = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + pad)


def _json(data: dict) -> bytes:
    return json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")


def _now_ts() -> int:
    return int(time.time())


def _secret() -> str:
    return os.getenv("AUTH_SECRET", settings.AUTH_SECRET)


class Tokens(BaseModel):
    token_type: str = "bearer"
    access_token: str
    refresh_token: str
    expires_in: int


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _sign_jwt(payload: dict, secret: str, alg: str = "HS256") -> str:
    if alg != "HS256":
        # Minimal implementation: only HS256 supported here
        raise ValueError("Unsupported alg; only HS256 is supported in this build")
    header = {"alg": alg, "typ": "JWT"}
    h = _b64url_encode(_json(header))
    p = _b64url_encode(_json(payload))
    msg = f"{h}.{p}".encode("ascii")
    sig = hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).digest()
    s = _b64url_encode(sig)
    return f"{h}.{p}.{s}"


def _verify_jwt(token: str, secret: str) -> dict:
    try:
        h, p, s = token.split(".")
        sig = _b64url_decode(s)
    except ValueError:
        raise _unauthorized("Malformed token")
    msg = f"{h}.{p}".encode("ascii")
    good = hmac.new(secret.encode("utf-8"), msg, hashlib.sha256).digest()
    if not hmac.compare_digest(sig, good):
        raise _unauthorized("Bad signature")
    try:
        payload = json.loads(_b64url_decode(p).decode("utf-8"))
    except ValueError:
        raise _unauthorized("Malformed token")
    # exp, iss, aud checks
    exp = int(payload.get("exp", 0))
    if exp and _now_ts() > exp:
        raise _unauthorized("Token expired")
    if payload.get("iss") != settings.AUTH_ISSUER:
        raise _unauthorized("Bad issuer")
    if payload.get("aud") != settings.AUTH_AUDIENCE:
        raise _unauthorized("Bad audience")
    return payload


def create_tokens(user_id: int) -> Tokens:
    access_min = settings.ACCESS_TOKEN_EXPIRE_MINUTES
    refresh_days = settings.REFRESH_TOKEN_EXPIRE_DAYS
    now = _now_ts()
    base = {
        "sub": str(user_id),
        "iat": now,
        "iss": settings.AUTH_ISSUER,
        "aud": settings.AUTH_AUDIENCE,
    }
    access_payload = {**base, "type": "access", "exp": now + access_min * 60}
    refresh_payload = {**base, "type": "refresh", "exp": now + refresh_days * 24 * 3600}
    secret = _secret()
    at = _sign_jwt(access_payload, secret, settings.AUTH_ALG)
    rt = _sign_jwt(refresh_payload, secret, settings.AUTH_ALG)
    return Tokens(access_token=at, refresh_token=rt, expires_in=access_min * 60)


def decode_token(token: str, expected_type: str = "access") -> int:
    """Verify a token and return the user id it was issued for."""
    payload = _verify_jwt(token, _secret())
    if payload.get("type") != expected_type:
        raise _unauthorized("Invalid token type")
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise _unauthorized("Invalid token payload")


def _pbkdf2(password: str, salt: bytes, iterations: int = 200_000) -> bytes:
    return hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt, iterations, dklen=32
    )


def hash_password(password: str, iterations: Optional[int] = None) -> str:
    salt = os.urandom(16)
    iters = iterations or int(os.getenv("PASSWORD_HASH_ITERATIONS", "200000"))
    dk = _pbkdf2(password, salt, iters)
    return f"pbkdf2_sha256${iters}${base64.b64encode(salt).decode()}${dk.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algo, iters_str, salt_b64, hexhash = stored.split("$")
        iters = int(iters_str)
        salt = base64.b64decode(salt_b64)
    except ValueError:
        return False
    if algo != "pbkdf2_sha256":
        return False
    dk = _pbkdf2(password, salt, iters)
    return hmac.compare_digest(dk.hex(), hexhash)


bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    token: Optional[str] = None
    if creds and creds.scheme and creds.scheme.lower() == "bearer":
        token = creds.credentials
    if not token:
        raise _unauthorized("Missing credentials")
    user_id = decode_token(token, "access")
    u = db.get(User, user_id)
    if not u or not u.is_active:
        raise _unauthorized("User not found or disabled")
    request.state.user_id = u.id
    return u


def get_current_user_id(user: User = Depends(get_current_user)) -> int:
    return user.id
