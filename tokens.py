"""JWT issuance and verification (HS256, stateless)."""
import logging
import os
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import HTTPException

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "dev_secret")
JWT_ALGO = "HS256"
APP_TOKEN_TTL = timedelta(days=7)
TEMP_TOKEN_TTL = timedelta(minutes=15)

if "JWT_SECRET" not in os.environ:
    logger.warning("JWT_SECRET is not set, falling back to an insecure development secret")


def _sign(payload: dict, ttl: timedelta) -> str:
    exp = datetime.now(timezone.utc) + ttl
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGO)


def create_token(payload: dict) -> str:
    """App access token, valid for 7 days."""
    return _sign(payload, APP_TOKEN_TTL)


def create_temp_token(payload: dict) -> str:
    """Short-lived registration token handed out by the Google login flow."""
    return _sign({**payload, "purpose": "register"}, TEMP_TOKEN_TTL)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def decode_temp_token(token: str) -> dict:
    payload = decode_token(token)
    if payload.get("purpose") != "register":
        raise HTTPException(status_code=401, detail="Invalid registration token")
    return payload
