"""
Blog post lifecycle: create, update, publish/unpublish, cascade delete and
the public listings (home feed, tag/title search, single post).
"""
import json
import logging
import re
import secrets
from typing import Any, List, Optional

from fastapi import UploadFile
from pydantic import BaseModel, Field, field_validator
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import storage
from auth import ensure_owner_or_admin
from database import public_user, serialize, to_object_id
from errors import NotFound, UpstreamError, ValidationFailed
from schemas import BlogPost, new_document, utcnow

logger = logging.getLogger(__name__)

MAX_TAGS = 10
SEARCH_PAGE_SIZE = 10
TRENDING_LIMIT = 6
POPULAR_AUTHORS_LIMIT = 20
POPULAR_POSTS_LIMIT = 20


# -------------------------------------------------------------------
# Request types
# -------------------------------------------------------------------
def parse_tags(raw: Any) -> List[str]:
    """Tags arrive as a JSON array (a string in multipart forms)."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationFailed("Tags must be a JSON array")
    if not isinstance(raw, list) or not all(isinstance(tag, str) for tag in raw):
        raise ValidationFailed("Tags must be a JSON array of strings")
    tags = [tag.strip() for tag in raw if tag.strip()]
    if len(tags) > MAX_TAGS:
        raise ValidationFailed(f"A post can have at most {MAX_TAGS} tags")
    return tags


def parse_content(raw: Any) -> Any:
    """Editor output is JSON; plain text is kept as is."""
    if isinstance(raw, str):
        text = raw.strip()
        if text[:1] in ("{", "["):
            try:
                return json.loads(text)
            except ValueError:
                pass
        return text
    return raw


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: Any
    tags: List[str] = Field(default_factory=list, max_length=MAX_TAGS)
    seoKeywords: str = Field(..., min_length=1)
    metaDescription: str = Field(..., min_length=1)
    isPublished: bool = True

    @field_validator("title", "seoKeywords", "metaDescription", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("content")
    @classmethod
    def content_required(cls, value):
        if value is None or value == "" or value == {} or value == []:
            raise ValueError("Content is required for the post")
        return value


class PostUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[Any] = None
    tags: Optional[List[str]] = Field(None, max_length=MAX_TAGS)
    seoKeywords: Optional[str] = Field(None, min_length=1)
    metaDescription: Optional[str] = Field(None, min_length=1)

    @field_validator("title", "seoKeywords", "metaDescription", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
def slugify(title: str) -> str:
    s = re.sub(r"[^a-zA-Z0-9\s-]", "", title).strip().lower()
    s = re.sub(r"[\s-]+", "-", s)
    return s or "post"


def unique_slug(title: str) -> str:
    return f"{slugify(title)[:80]}-{secrets.token_hex(3)}"


def inactive_author_ids(db: Database) -> List:
    return [u["_id"] for u in db["users"].find(
        {"$or": [{"isBlocked": True}, {"isClosed": True}]}, {"_id": 1}
    )]


def find_post(db: Database, post_id: str) -> dict:
    post = db["blogs"].find_one({"_id": to_object_id(post_id, "post id")})
    if not post:
        raise NotFound("Post not found")
    return post


def find_editable_post(db: Database, user: dict, post_id: str) -> dict:
    post = find_post(db, post_id)
    ensure_owner_or_admin(user, post["author"])
    return post


# -------------------------------------------------------------------
# Lifecycle
# -------------------------------------------------------------------
def create_post(db: Database, user: dict, data: PostCreate, image: Optional[UploadFile] = None) -> dict:
    if storage.has_file(image):
        storage.ensure_image(image)

    public_image = {}
    if storage.has_file(image):
        public_image = storage.store_upload(image, storage.POST_IMAGE_FOLDER)

    post = new_document(
        BlogPost,
        title=data.title,
        content=data.content,
        author=user["_id"],
        slug=unique_slug(data.title),
        tags=data.tags,
        isPublished=data.isPublished,
        seoKeywords=data.seoKeywords,
        metaDescription=data.metaDescription,
        public_image=public_image,
    )
    try:
        try:
            db["blogs"].insert_one(post)
        except DuplicateKeyError:
            post.pop("_id", None)
            post["slug"] = unique_slug(data.title)
            db["blogs"].insert_one(post)
        db["users"].update_one({"_id": user["_id"]}, {"$push": {"blogs": post["_id"]}})
    except PyMongoError:
        logger.exception("Creating post for %s failed", user["_id"])
        if "_id" in post:
            db["blogs"].delete_one({"_id": post["_id"]})
        if public_image:
            storage.destroy(public_image["resource_id"])
        raise UpstreamError("Blog could not be created. Try again later")

    logger.info("Post %s created by %s", post["_id"], user["_id"])
    return serialize(post)


def update_post(db: Database, user: dict, post_id: str, data: PostUpdate,
                image: Optional[UploadFile] = None) -> dict:
    post = find_editable_post(db, user, post_id)
    changes = data.changes()
    if not changes and not storage.has_file(image):
        raise ValidationFailed("At least one field is required for update.")
    if storage.has_file(image):
        storage.ensure_image(image)

    old_image_id = (post.get("public_image") or {}).get("resource_id")
    new_image = None
    if storage.has_file(image):
        new_image = storage.store_upload(image, storage.POST_IMAGE_FOLDER)
        changes["public_image"] = new_image
    changes["updatedAt"] = utcnow()

    try:
        db["blogs"].update_one({"_id": post["_id"]}, {"$set": changes})
    except PyMongoError:
        logger.exception("Updating post %s failed", post["_id"])
        if new_image:
            storage.destroy(new_image["resource_id"])
        raise UpstreamError("Post could not be updated. Try again later")

    if new_image and old_image_id:
        try:
            storage.destroy(old_image_id)
        except UpstreamError:
            logger.warning("Old image %s of post %s left in storage", old_image_id, post["_id"])

    return serialize(db["blogs"].find_one({"_id": post["_id"]}))


def set_published(db: Database, user: dict, post_id: str, published: bool) -> dict:
    post = find_editable_post(db, user, post_id)
    db["blogs"].update_one(
        {"_id": post["_id"]},
        {"$set": {"isPublished": published, "updatedAt": utcnow()}},
    )
    return {"id": str(post["_id"]), "isPublished": published}


def delete_post(db: Database, user: dict, post_id: str) -> dict:
    """
    Remove a post and everything hanging off it.

    Dependents go first and the post document last, so a failed step leaves
    the (unpublished) post in place and the whole call can simply be retried.
    """
    post = find_editable_post(db, user, post_id)
    oid = post["_id"]
    image_id = (post.get("public_image") or {}).get("resource_id")

    steps = [
        ("post visibility", lambda: db["blogs"].update_one({"_id": oid}, {"$set": {"isPublished": False}})),
        ("comments", lambda: db["comments"].delete_many({"blog": oid})),
        ("likes", lambda: db["likes"].delete_many({"blog": oid})),
        ("follow sources", lambda: db["followers"].update_many({"blog": oid}, {"$set": {"blog": None}})),
        ("image", lambda: storage.destroy(image_id)),
        ("author post list", lambda: db["users"].update_one({"_id": post["author"]}, {"$pull": {"blogs": oid}})),
    ]
    failed = []
    for name, step in steps:
        try:
            step()
        except (PyMongoError, UpstreamError) as exc:
            logger.warning("Cascade step '%s' for post %s failed: %s", name, oid, exc)
            failed.append(name)

    if failed:
        raise UpstreamError(
            f"Post could not be fully deleted, not cleaned up: {', '.join(failed)}. Please retry."
        )

    db["blogs"].delete_one({"_id": oid})
    logger.info("Post %s deleted by %s", oid, user["_id"])
    return {"id": str(oid)}


# -------------------------------------------------------------------
# Listings
# -------------------------------------------------------------------
def home_feed(db: Database) -> dict:
    inactive = inactive_author_ids(db)
    visible = {"isPublished": True, "author": {"$nin": inactive}}

    trending = list(db["blogs"].find(visible).sort("likes", DESCENDING).limit(TRENDING_LIMIT))

    authors = db["users"].find(
        {"isBlocked": {"$ne": True}, "isClosed": {"$ne": True}}, {"_id": 1}
    ).sort("followers", DESCENDING).limit(POPULAR_AUTHORS_LIMIT)
    author_ids = [a["_id"] for a in authors]
    popular = list(db["blogs"].find(
        {"isPublished": True, "author": {"$in": author_ids}}
    ).sort("createdAt", DESCENDING).limit(POPULAR_POSTS_LIMIT))

    return {"trendingPosts": serialize(trending), "popularAuthorPosts": serialize(popular)}


def search_posts(db: Database, term: str, skip: int = 0) -> dict:
    term = (term or "").strip()
    if not term:
        raise ValidationFailed("Tag is required to search post")
    pattern = {"$regex": re.escape(term), "$options": "i"}
    query = {
        "isPublished": True,
        "author": {"$nin": inactive_author_ids(db)},
        "$or": [{"tags": pattern}, {"title": pattern}],
    }
    rows = list(db["blogs"].find(query).sort("createdAt", DESCENDING)
                .skip(max(skip, 0)).limit(SEARCH_PAGE_SIZE + 1))
    if not rows:
        raise NotFound("Post not found with related search")
    return {"posts": serialize(rows[:SEARCH_PAGE_SIZE]), "more": len(rows) > SEARCH_PAGE_SIZE}


def author_summary(author: Optional[dict]) -> dict:
    if not author:
        return {}
    return {
        "id": str(author["_id"]),
        "username": author["username"],
        "fullName": f"{author.get('firstName', '')} {author.get('lastName', '')}".strip(),
        "followersCount": author.get("followers", 0),
        "bio": author.get("bio", ""),
        "avatar": (author.get("avatar") or {}).get("secure_url"),
    }


def post_comments(db: Database, post_oid) -> List[dict]:
    comments = list(db["comments"].find({"blog": post_oid}).sort("createdAt", DESCENDING))
    author_ids = list({c["author"] for c in comments})
    names = {
        u["_id"]: public_user(u)
        for u in db["users"].find({"_id": {"$in": author_ids}}, {"username": 1, "firstName": 1, "lastName": 1})
    }
    out = []
    for c in comments:
        author = names.get(c["author"], {})
        out.append({
            "_id": str(c["_id"]),
            "content": c["content"],
            "createdAt": serialize(c.get("createdAt")),
            "commentAuthor": {
                "id": str(c["author"]),
                "username": author.get("username"),
                "fullName": f"{author.get('firstName', '')} {author.get('lastName', '')}".strip(),
            },
        })
    return out


def get_post(db: Database, post_id: str) -> dict:
    oid = to_object_id(post_id, "post id")
    post = db["blogs"].find_one({"_id": oid, "isPublished": True})
    if not post:
        raise NotFound("Post not found")
    author = db["users"].find_one({"_id": post["author"]})
    if author and (author.get("isBlocked") or author.get("isClosed")):
        raise NotFound("Post not found")
    details = serialize(post)
    details["author"] = author_summary(author)
    return {"postDetails": details, "comments": post_comments(db, oid)}
