"""
Credential store and session tokens.

Passwords are hashed with passlib (bcrypt by default, argon2 accepted).
Reset and verification tokens are random values whose SHA-256 digest is the
only thing persisted; the plaintext travels to the user by email.
Session tokens are HS256 JWTs carrying the account identity and a snapshot
of its status flags at issuance time.
"""
import hashlib
import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Tuple

import jwt  # PyJWT
from passlib.context import CryptContext

import config
from errors import Unauthenticated

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt", "argon2"],
    default=config.PASSWORD_SCHEME,
    bcrypt__rounds=config.BCRYPT_ROUNDS,
    deprecated="auto",
)

SESSION_CLAIMS = ("id", "username", "role", "isBlocked", "isVerified", "isClosed")


# -------------------------------------------------------------------
# Passwords
# -------------------------------------------------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        # unknown or corrupt hash format
        logger.warning("Stored password hash could not be parsed")
        return False


def password_needs_rehash(hashed: str) -> bool:
    return pwd_context.needs_update(hashed)


# -------------------------------------------------------------------
# Single-use tokens (password reset, email verification)
# -------------------------------------------------------------------
def hash_single_use_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_single_use_token(minutes: int = config.RESET_TOKEN_EXPIRE_MIN) -> Tuple[str, str, int]:
    """Return ``(plaintext, digest, expiry_ms)``; persist only digest and expiry."""
    token = secrets.token_hex(20)
    expiry = now_ms() + minutes * 60 * 1000
    return token, hash_single_use_token(token), expiry


# -------------------------------------------------------------------
# Session tokens
# -------------------------------------------------------------------
def create_jwt(payload: dict, minutes: int = config.JWT_EXPIRE_MIN) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=minutes)
    to_encode = {**payload, "iat": int(now.timestamp()), "exp": int(exp.timestamp())}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm="HS256")


def decode_jwt(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Session expired, please log in again")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Unauthorized request")


def issue_session_token(user: dict) -> str:
    return create_jwt({
        "id": str(user["_id"]),
        "username": user["username"],
        "role": user.get("role", "user"),
        "isBlocked": bool(user.get("isBlocked", False)),
        "isVerified": bool(user.get("isVerified", False)),
        "isClosed": bool(user.get("isClosed", False)),
    })


def decode_session_token(token: str) -> dict:
    claims = decode_jwt(token)
    if any(name not in claims for name in SESSION_CLAIMS):
        raise Unauthenticated("Unauthorized request")
    return claims
