"""
Account routes: registration, sessions, password and verification flows,
profiles and admin moderation.
"""
import logging
import re
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile
from pydantic import BaseModel, EmailStr, Field, field_validator
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import config
import content
import mailer
import oauth
import social
import storage
from auth import (
    Identity,
    ensure_owner_or_admin,
    get_current_user,
    get_identity,
    get_verified_user,
    is_admin,
    require_roles,
)
from database import get_db, public_user, serialize, to_object_id
from errors import Conflict, Forbidden, NotFound, Unauthenticated, UpstreamError, ValidationFailed
from payload import json_body, missing, pick
from ratelimit import rate
from schemas import User, new_document, utcnow
from security import (
    generate_single_use_token,
    hash_password,
    hash_single_use_token,
    issue_session_token,
    now_ms,
    password_needs_rehash,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])

USERNAME_RE = r"^[a-z0-9_.]+$"
PROFILE_POSTS_LIMIT = 20
USER_SEARCH_PAGE_SIZE = 20
CHART_MONTHS = 6


# -------------------------------------------------------------------
# Request models
# -------------------------------------------------------------------
class RegisterIn(BaseModel):
    username: str = Field(..., min_length=6, max_length=30, pattern=USERNAME_RE)
    email: EmailStr
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)

    @field_validator("username", "email", mode="before")
    @classmethod
    def normalize(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("firstName", "lastName", mode="before")
    @classmethod
    def strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginIn(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class EmailIn(BaseModel):
    email: EmailStr


class PasswordIn(BaseModel):
    password: str = Field(..., min_length=6)


class ChangePasswordIn(BaseModel):
    oldPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=6)


class UsernameIn(BaseModel):
    username: str = Field(..., min_length=1)


class GoogleAuthIn(BaseModel):
    credential: str = Field(..., min_length=1)


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def set_session_cookie(response: Response, user: dict) -> str:
    token = issue_session_token(user)
    response.set_cookie(
        config.COOKIE_NAME,
        token,
        max_age=config.JWT_EXPIRE_MIN * 60,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
    )
    return token


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(config.COOKIE_NAME, httponly=True, secure=config.COOKIE_SECURE, samesite="lax")


def account_view(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "username": user["username"],
        "email": user["email"],
        "firstName": user.get("firstName"),
        "lastName": user.get("lastName"),
        "bio": user.get("bio", ""),
        "avatar": user.get("avatar"),
        "role": user.get("role", "user"),
        "isVerified": user.get("isVerified", False),
        "isBlocked": user.get("isBlocked", False),
    }


def find_user_by_id(db: Database, user_id: str) -> dict:
    user = db["users"].find_one({"_id": to_object_id(user_id, "user id")})
    if not user:
        raise NotFound("User not found.")
    return user


def ensure_not_blocked(user: dict) -> None:
    if user.get("isBlocked"):
        raise Forbidden("Your account has been blocked. Please contact support")


def discard_asset(resource_id: Optional[str]) -> None:
    """Best-effort removal of an uploaded asset that is no longer referenced."""
    try:
        storage.destroy(resource_id)
    except UpstreamError:
        logger.warning("Asset %s left in storage", resource_id)


def free_username(db: Database, base: str) -> str:
    base = re.sub(r"[^a-z0-9_.]", "", base.lower())[:20] or "user"
    while True:
        candidate = f"{base}{secrets.token_hex(3)}"
        if not db["users"].find_one({"username": candidate}, {"_id": 1}):
            return candidate


# -------------------------------------------------------------------
# Registration and sessions
# -------------------------------------------------------------------
@router.post("/register", status_code=201)
@rate(15, 5)
def register(
    request: Request,
    response: Response,
    username: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    firstName: Optional[str] = Form(None),
    lastName: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    body: Optional[dict] = Depends(json_body),
):
    fields = pick(body, {
        "username": username,
        "email": email,
        "firstName": firstName,
        "lastName": lastName,
        "password": password,
    })
    if missing(*fields.values()):
        raise ValidationFailed("All fields are mandatory.")
    data = RegisterIn(**fields)
    if storage.has_file(avatar):
        storage.ensure_image(avatar)

    if db["users"].find_one({"$or": [{"email": data.email}, {"username": data.username}]}, {"_id": 1}):
        raise Conflict("User Already registered.")

    avatar_doc = {"public_id": None, "secure_url": config.DEFAULT_AVATAR_URL}
    if storage.has_file(avatar):
        uploaded = storage.store_upload(avatar, storage.AVATAR_FOLDER, **storage.AVATAR_TRANSFORM)
        avatar_doc = {"public_id": uploaded["resource_id"], "secure_url": uploaded["resource_url"]}

    user = new_document(
        User,
        username=data.username,
        email=data.email,
        password=hash_password(data.password),
        firstName=data.firstName,
        lastName=data.lastName,
        avatar=avatar_doc,
    )
    try:
        db["users"].insert_one(user)
    except DuplicateKeyError:
        discard_asset(avatar_doc["public_id"])
        raise Conflict("User Already registered.")

    mailer.send_email_quietly(user["email"], "Welcome to Alcodemy Blog", mailer.welcome_message(user["firstName"]))
    token = set_session_cookie(response, user)
    logger.info("Registered user %s", user["username"])
    return {"success": True, "message": "User created Successfully", "token": token, "user": account_view(user)}


@router.post("/login")
@rate(10, 10)
def login(request: Request, data: LoginIn, response: Response, db: Database = Depends(get_db)):
    user = db["users"].find_one({"username": data.username.strip().lower()})
    if not (user and verify_password(data.password, user.get("password"))):
        logger.info("Failed login for %s", data.username)
        raise Unauthenticated("Email or Password do not match or user does not exist")
    ensure_not_blocked(user)

    updates = {}
    info = None
    if user.get("isClosed"):
        updates["isClosed"] = False
        info = "Account reopened successfully."
    if password_needs_rehash(user["password"]):
        updates["password"] = hash_password(data.password)
    if updates:
        db["users"].update_one({"_id": user["_id"]}, {"$set": {**updates, "updatedAt": utcnow()}})
        user.update(updates)

    token = set_session_cookie(response, user)
    return {
        "success": True,
        "message": "User logged in successfully",
        "token": token,
        "user": {**account_view(user), "userInfo": info},
    }


@router.post("/logout")
@rate(10, 10)
def logout(request: Request, response: Response, identity: Identity = Depends(get_identity)):
    clear_session_cookie(response)
    return {"success": True, "message": "User logged Out successfully"}


@router.post("/refresh-token")
@rate(15, 10)
def refresh_token(request: Request, response: Response, user: dict = Depends(get_current_user)):
    """Reissue the session from the stored account so the claims reflect its current flags."""
    token = set_session_cookie(response, user)
    return {"success": True, "message": "Session refreshed", "token": token, "user": account_view(user)}


@router.post("/google/auth")
@rate(10, 10)
def google_auth(request: Request, data: GoogleAuthIn, response: Response, db: Database = Depends(get_db)):
    claims = oauth.verify_google_credential(data.credential)
    email = claims["email"].lower()
    user = db["users"].find_one({"email": email})
    if user is None:
        user = new_document(
            User,
            username=free_username(db, email.split("@")[0]),
            email=email,
            password=hash_password(secrets.token_urlsafe(32)),
            firstName=claims.get("given_name") or email.split("@")[0],
            lastName=claims.get("family_name") or "-",
            avatar={"public_id": None, "secure_url": claims.get("picture") or config.DEFAULT_AVATAR_URL},
            isVerified=True,
        )
        db["users"].insert_one(user)
        logger.info("Created account %s from Google sign-in", user["username"])
    else:
        ensure_not_blocked(user)
        if user.get("isClosed"):
            db["users"].update_one({"_id": user["_id"]}, {"$set": {"isClosed": False}})
            user["isClosed"] = False

    token = set_session_cookie(response, user)
    return {"success": True, "message": "User logged in successfully", "token": token, "user": account_view(user)}


# -------------------------------------------------------------------
# Passwords
# -------------------------------------------------------------------
@router.post("/forgot-password")
@rate(60, 5)
def forgot_password(request: Request, data: EmailIn, db: Database = Depends(get_db)):
    email = data.email.lower()
    user = db["users"].find_one({"email": email})
    if not user:
        raise NotFound("Email not registered")
    ensure_not_blocked(user)

    token, digest, expiry = generate_single_use_token()
    db["users"].update_one({"_id": user["_id"]}, {"$set": {"resetToken": digest, "resetTokenExpiry": expiry}})

    url = f"{config.FRONTEND_URL}/reset-password/{token}"
    try:
        mailer.send_email(email, "Reset Password", mailer.reset_password_message(url))
    except UpstreamError:
        db["users"].update_one({"_id": user["_id"]}, {"$unset": {"resetToken": "", "resetTokenExpiry": ""}})
        raise
    return {"success": True, "message": f"Reset password link has been sent to {email} successfully"}


@router.post("/reset/{resetToken}")
@rate(60, 5)
def reset_password(request: Request, resetToken: str, data: PasswordIn, db: Database = Depends(get_db)):
    user = db["users"].find_one({
        "resetToken": hash_single_use_token(resetToken),
        "resetTokenExpiry": {"$gt": now_ms()},
    })
    if not user:
        raise ValidationFailed("Token is invalid or expired, please try again")
    ensure_not_blocked(user)

    db["users"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(data.password), "updatedAt": utcnow()},
         "$unset": {"resetToken": "", "resetTokenExpiry": ""}},
    )
    return {"success": True, "message": "Password changed successfully"}


@router.post("/change-password")
@rate(60, 5)
def change_password(request: Request, data: ChangePasswordIn, user: dict = Depends(get_verified_user),
                    db: Database = Depends(get_db)):
    if data.oldPassword == data.newPassword:
        raise ValidationFailed("New Password can not be the same as Old Password")
    if not verify_password(data.oldPassword, user.get("password")):
        raise ValidationFailed("Invalid old password")
    db["users"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(data.newPassword), "updatedAt": utcnow()}},
    )
    return {"success": True, "message": "Password changed successfully"}


# -------------------------------------------------------------------
# Email verification
# -------------------------------------------------------------------
@router.post("/verify")
@rate(60, 5)
def request_verification(request: Request, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    if user.get("isVerified"):
        raise ValidationFailed("Account already verified.")

    token, digest, expiry = generate_single_use_token()
    db["users"].update_one({"_id": user["_id"]}, {"$set": {"verifyToken": digest, "verifyTokenExpiry": expiry}})

    url = f"{config.FRONTEND_URL}/user/profile/{user['username']}/verify/{token}"
    try:
        mailer.send_email(user["email"], "Verify account in Alcodemy Blog", mailer.verify_account_message(url))
    except UpstreamError:
        db["users"].update_one({"_id": user["_id"]}, {"$unset": {"verifyToken": "", "verifyTokenExpiry": ""}})
        raise
    return {"success": True, "message": f"Verify token has been sent to {user['email']} successfully"}


@router.patch("/profile/{username}/verify/{token}")
@rate(60, 5)
def verify_account(request: Request, username: str, token: str, db: Database = Depends(get_db)):
    user = db["users"].find_one({
        "verifyToken": hash_single_use_token(token),
        "verifyTokenExpiry": {"$gt": now_ms()},
    })
    if not user:
        raise NotFound("Invalid Token")
    if user["username"] != username.lower():
        raise ValidationFailed("Either the token or username is invalid")

    db["users"].update_one(
        {"_id": user["_id"]},
        {"$set": {"isVerified": True, "updatedAt": utcnow()},
         "$unset": {"verifyToken": "", "verifyTokenExpiry": ""}},
    )
    return {"success": True, "message": "Account Verified Successfully"}


# -------------------------------------------------------------------
# Profiles
# -------------------------------------------------------------------
@router.get("/profile")
@rate(5, 25)
def list_users(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    admin: dict = Depends(require_roles("admin")),
    db: Database = Depends(get_db),
):
    rows = list(db["users"].find({}).sort("createdAt", -1).skip(skip).limit(limit + 1))
    return {
        "success": True,
        "message": "Users fetched successfully",
        "users": [public_user(u) for u in rows[:limit]],
        "more": len(rows) > limit,
    }


@router.get("/profile/chartdata")
@rate(15, 30)
def chart_data(request: Request, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    fields = {"isPublished": 1, "likes": 1, "comments": 1, "createdAt": 1}
    posts = list(db["blogs"].find({"author": user["_id"]}, fields))
    per_month = {}
    for post in posts:
        created = post.get("createdAt")
        if created:
            month = created.strftime("%Y-%m")
            per_month[month] = per_month.get(month, 0) + 1
    published = sum(1 for post in posts if post.get("isPublished"))
    data = {
        "totalPosts": len(posts),
        "publishedPosts": published,
        "draftPosts": len(posts) - published,
        "totalLikes": sum(post.get("likes", 0) for post in posts),
        "totalComments": sum(len(post.get("comments", [])) for post in posts),
        "followers": user.get("followers", 0),
        "postsPerMonth": [{"month": m, "posts": per_month[m]} for m in sorted(per_month)[-CHART_MONTHS:]],
    }
    return {"success": True, "message": "Chart data fetched successfully", "data": data}


@router.get("/profile/search")
@rate(60, 40)
def search_users(
    request: Request,
    q: str = Query("", max_length=100),
    skip: int = Query(0, ge=0),
    admin: dict = Depends(require_roles("admin")),
    db: Database = Depends(get_db),
):
    term = q.strip()
    if not term:
        raise ValidationFailed("Search term is required")
    pattern = {"$regex": re.escape(term), "$options": "i"}
    query = {"$or": [{"username": pattern}, {"email": pattern}, {"firstName": pattern}, {"lastName": pattern}]}
    rows = list(db["users"].find(query).sort("createdAt", -1).skip(skip).limit(USER_SEARCH_PAGE_SIZE + 1))
    return {
        "success": True,
        "message": "Users fetched successfully",
        "users": [public_user(u) for u in rows[:USER_SEARCH_PAGE_SIZE]],
        "more": len(rows) > USER_SEARCH_PAGE_SIZE,
    }


@router.api_route("/profile/{username}", methods=["GET", "POST"])
@rate(15, 30)
def user_profile(request: Request, username: str, viewer: dict = Depends(get_current_user),
                 db: Database = Depends(get_db)):
    user = db["users"].find_one({"username": username.lower()})
    if not user:
        raise NotFound("User not found")
    if not is_admin(viewer):
        if user.get("isBlocked"):
            raise Forbidden("This account has been blocked by admin.")
        if user.get("isClosed"):
            raise Forbidden("This account has been closed.")

    is_author = viewer["_id"] == user["_id"]
    posts_query = {"author": user["_id"]}
    if not (is_author or is_admin(viewer)):
        posts_query["isPublished"] = True
    posts = list(db["blogs"].find(posts_query, {"content": 0}).sort("createdAt", -1).limit(PROFILE_POSTS_LIMIT))

    details = public_user(user)
    details.pop("blogs", None)
    details["totalFollowers"] = db["followers"].count_documents({"author": user["_id"]})
    details["totalPosts"] = db["blogs"].count_documents(posts_query)
    details["blogPosts"] = serialize(posts)
    return {
        "success": True,
        "message": "Profile fetched successfully",
        "isAuthor": is_author,
        "userDetails": details,
    }


def _set_blocked(db: Database, user_id: str, username: str, blocked: bool) -> dict:
    user = find_user_by_id(db, user_id)
    if user["username"] != username.lower():
        raise ValidationFailed("Either of Id or Username is Incorrect")
    if blocked and user.get("role") == "admin":
        raise ValidationFailed("Admin can not be blocked.")
    db["users"].update_one({"_id": user["_id"]}, {"$set": {"isBlocked": blocked, "updatedAt": utcnow()}})
    logger.info("User %s %s", user["username"], "blocked" if blocked else "unblocked")
    return user


@router.patch("/profile/{id}/block")
@rate(60, 30)
def block_user(request: Request, id: str, data: UsernameIn, admin: dict = Depends(require_roles("admin")),
               db: Database = Depends(get_db)):
    _set_blocked(db, id, data.username, True)
    return {"success": True, "message": "The account has been blocked."}


@router.patch("/profile/{id}/unblock")
@rate(60, 30)
def unblock_user(request: Request, id: str, data: UsernameIn, admin: dict = Depends(require_roles("admin")),
                 db: Database = Depends(get_db)):
    _set_blocked(db, id, data.username, False)
    return {"success": True, "message": "The account has been unblocked successfully."}


@router.patch("/profile/close")
@rate(60, 5)
def close_account(request: Request, data: UsernameIn, response: Response, user: dict = Depends(get_current_user),
                  db: Database = Depends(get_db)):
    if data.username.lower() != user["username"] or is_admin(user):
        raise Forbidden("You don't have permission to perform this action.")
    db["users"].update_one({"_id": user["_id"]}, {"$set": {"isClosed": True, "updatedAt": utcnow()}})
    mailer.send_email_quietly(user["email"], "Your Account has been closed.",
                              mailer.account_closed_message(user.get("firstName", "")))
    clear_session_cookie(response)
    return {"success": True, "message": "Account closed successfully"}


@router.patch("/profile")
@rate(60, 8)
def update_profile(
    request: Request,
    response: Response,
    username: Optional[str] = Form(None),
    firstName: Optional[str] = Form(None),
    lastName: Optional[str] = Form(None),
    bio: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    body: Optional[dict] = Depends(json_body),
):
    fields = pick(body, {"username": username, "firstName": firstName, "lastName": lastName, "bio": bio})
    changes = {k: v.strip() for k, v in fields.items() if isinstance(v, str) and v.strip()}
    if not changes and not storage.has_file(avatar):
        raise ValidationFailed("At least one field is required for update.")

    if "username" in changes:
        changes["username"] = changes["username"].lower()
        if len(changes["username"]) < 6 or not re.match(USERNAME_RE, changes["username"]):
            raise ValidationFailed("Username should be minimum 6 characters long")
        if changes["username"] != user["username"] and db["users"].find_one(
                {"username": changes["username"]}, {"_id": 1}):
            raise Conflict("Username is already taken")
    if storage.has_file(avatar):
        storage.ensure_image(avatar)

    old_avatar_id = (user.get("avatar") or {}).get("public_id")
    if storage.has_file(avatar):
        uploaded = storage.store_upload(avatar, storage.AVATAR_FOLDER, **storage.AVATAR_TRANSFORM)
        changes["avatar"] = {"public_id": uploaded["resource_id"], "secure_url": uploaded["resource_url"]}

    try:
        db["users"].update_one({"_id": user["_id"]}, {"$set": {**changes, "updatedAt": utcnow()}})
    except DuplicateKeyError:
        if "avatar" in changes:
            discard_asset(changes["avatar"]["public_id"])
        raise Conflict("Username is already taken")

    if "avatar" in changes and old_avatar_id:
        discard_asset(old_avatar_id)

    user.update(changes)
    if "username" in changes:
        set_session_cookie(response, user)
    return {"success": True, "message": "Profile updated successfully", "user": public_user(user)}


@router.post("/backgroundImage")
@rate(60, 5)
def update_background(
    request: Request,
    bgImage: Optional[UploadFile] = File(None),
    user: dict = Depends(get_verified_user),
    db: Database = Depends(get_db),
):
    if not storage.has_file(bgImage):
        raise ValidationFailed("No file uploaded")
    storage.ensure_image(bgImage)

    old_id = (user.get("backgroundImage") or {}).get("resource_id")
    uploaded = storage.store_upload(bgImage, storage.BACKGROUND_FOLDER)
    db["users"].update_one({"_id": user["_id"]}, {"$set": {"backgroundImage": uploaded, "updatedAt": utcnow()}})
    if old_id:
        discard_asset(old_id)
    return {"success": True, "message": "Background image updated", "backgroundImage": uploaded}


def remove_account(db: Database, target: dict) -> None:
    """
    Delete an account and everything it owns.

    The account is closed first and its document removed last, so a failed
    step leaves an inactive account behind and the call can be retried.
    """
    uid = target["_id"]

    def posts():
        for post in list(db["blogs"].find({"author": uid}, {"_id": 1})):
            content.delete_post(db, target, str(post["_id"]))

    def comments():
        for comment in list(db["comments"].find({"author": uid}, {"blog": 1})):
            db["blogs"].update_one({"_id": comment["blog"]}, {"$pull": {"comments": comment["_id"]}})
            db["comments"].delete_one({"_id": comment["_id"]})

    def resources():
        for doc in list(db["resources"].find({"user": uid})):
            storage.destroy((doc.get("resource") or {}).get("resource_id"))
            db["resources"].delete_one({"_id": doc["_id"]})

    def images():
        storage.destroy((target.get("avatar") or {}).get("public_id"))
        storage.destroy((target.get("backgroundImage") or {}).get("resource_id"))

    steps = [
        ("account status", lambda: db["users"].update_one({"_id": uid}, {"$set": {"isClosed": True}})),
        ("posts", posts),
        ("comments", comments),
        ("follows and likes", lambda: social.drop_user_relations(db, uid)),
        ("resources", resources),
        ("images", images),
    ]
    failed = []
    for name, step in steps:
        try:
            step()
        except (PyMongoError, UpstreamError) as exc:
            logger.warning("Account cleanup step '%s' for %s failed: %s", name, uid, exc)
            failed.append(name)

    if failed:
        raise UpstreamError(
            f"Account could not be fully deleted, not cleaned up: {', '.join(failed)}. Please retry."
        )
    db["users"].delete_one({"_id": uid})
    logger.info("Account %s deleted", target["username"])


@router.delete("/profile/{id}")
@rate(60, 15)
def delete_user(request: Request, id: str, response: Response, user: dict = Depends(get_current_user),
                db: Database = Depends(get_db)):
    target = find_user_by_id(db, id)
    ensure_owner_or_admin(user, target["_id"])
    if is_admin(target):
        raise ValidationFailed("Admin can not be deleted.")

    remove_account(db, target)
    if target["_id"] == user["_id"]:
        clear_session_cookie(response)
    return {"success": True, "message": "Account deleted successfully"}
