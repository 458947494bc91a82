"""
Access control dependencies.

A request moves through ``get_identity`` (token present and valid), then
``get_current_user`` (live account state), then the role/verification
checks a route declares. Status flags embedded in the token are only a
snapshot, so every status-sensitive check reads the stored user.
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from pymongo.database import Database

import config
from database import get_db, to_object_id
from errors import Forbidden, Unauthenticated
from security import decode_session_token

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


class Identity(BaseModel):
    id: str
    username: str
    role: str = "user"
    isBlocked: bool = False
    isVerified: bool = False
    isClosed: bool = False


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    token = request.cookies.get(config.COOKIE_NAME)
    if token:
        return token
    if credentials and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return None


def get_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Identity:
    token = extract_token(request, credentials)
    if not token:
        raise Unauthenticated("Unauthorized request")
    identity = Identity(**decode_session_token(token))
    request.state.identity = identity
    return identity


def ensure_active(user: dict) -> None:
    if user.get("isBlocked"):
        raise Forbidden("Your account has been blocked. Please contact support")
    if user.get("isClosed"):
        raise Forbidden("This account has been closed. Log in again to reopen it")


def get_current_user(identity: Identity = Depends(get_identity), db: Database = Depends(get_db)) -> dict:
    user = db["users"].find_one({"_id": to_object_id(identity.id, "user id")})
    if not user:
        logger.info("Token for missing account %s rejected", identity.id)
        raise Unauthenticated("Unauthorized request")
    ensure_active(user)
    return user


def get_verified_user(user: dict = Depends(get_current_user)) -> dict:
    if not user.get("isVerified"):
        raise Forbidden("Please verify your account first")
    return user


def require_roles(*roles: str):
    def checker(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in roles:
            raise Forbidden("You don't have permission to view this route")
        return user

    return checker


def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"


def ensure_owner_or_admin(user: dict, owner_id) -> None:
    if str(user["_id"]) != str(owner_id) and not is_admin(user):
        raise Forbidden("You are not authorized to modify this resource")
