"""
Follow and like relations.

Each relation collection has a unique index on its pair, and the matching
denormalized counter (``users.followers`` / ``blogs.likes``) only changes
through atomic ``$inc`` right after the relation write. If the counter
update fails, the relation write is undone so the two never drift apart.
"""
import logging
from typing import Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import serialize, to_object_id
from errors import Conflict, Forbidden, NotFound, Unauthenticated, UpstreamError, ValidationFailed
from schemas import Follower, Like, new_document

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50


def _bump(collection, filter_: dict, field: str, delta: int) -> Optional[dict]:
    if delta < 0:
        filter_ = {**filter_, field: {"$gt": 0}}
    return collection.find_one_and_update(
        filter_,
        {"$inc": {field: delta}},
        projection={field: 1},
        return_document=ReturnDocument.AFTER,
    )


# -------------------------------------------------------------------
# Follow
# -------------------------------------------------------------------
def follow(db: Database, user: dict, author_id: str, blog_id: Optional[str] = None) -> dict:
    author_oid = to_object_id(author_id, "author id")
    if author_oid == user["_id"]:
        raise ValidationFailed("You can not follow yourself")

    author = db["users"].find_one({"_id": author_oid}, {"isBlocked": 1, "isClosed": 1})
    if not author:
        raise NotFound("Author not found")
    if author.get("isBlocked") or author.get("isClosed"):
        raise Forbidden("This author can not be followed")

    blog_oid = None
    if blog_id:
        blog_oid = to_object_id(blog_id, "blog id")
        if not db["blogs"].find_one({"_id": blog_oid, "author": author_oid}, {"_id": 1}):
            raise NotFound("Blog not found for this author")

    if db["followers"].find_one({"user": user["_id"], "author": author_oid}, {"_id": 1}):
        raise Conflict("You already follow this author")

    relation = new_document(Follower, user=user["_id"], author=author_oid, blog=blog_oid)
    try:
        db["followers"].insert_one(relation)
    except DuplicateKeyError:
        raise Conflict("You already follow this author")

    try:
        updated = _bump(db["users"], {"_id": author_oid}, "followers", 1)
    except PyMongoError:
        logger.exception("Follower counter update failed for %s", author_oid)
        updated = None
    if updated is None:
        db["followers"].delete_one({"_id": relation["_id"]})
        raise UpstreamError("Could not follow author, please try again.")

    logger.info("%s now follows %s", user["_id"], author_oid)
    return {"follow": serialize(relation), "followers": updated["followers"]}


def unfollow(db: Database, user: dict, follow_id: str) -> dict:
    follow_oid = to_object_id(follow_id, "follow id")
    relation = db["followers"].find_one({"_id": follow_oid})
    if not relation:
        raise NotFound("Follow relation not found")
    if relation["user"] != user["_id"]:
        raise Unauthenticated("Unauthorized request")

    result = db["followers"].delete_one({"_id": follow_oid, "user": user["_id"]})
    if result.deleted_count == 0:
        raise NotFound("Follow relation not found")

    try:
        updated = _bump(db["users"], {"_id": relation["author"]}, "followers", -1)
    except PyMongoError:
        logger.exception("Follower counter update failed for %s", relation["author"])
        db["followers"].insert_one(relation)
        raise UpstreamError("Could not unfollow author, please try again.")

    return {"followers": updated["followers"] if updated else 0}


def list_followers(db: Database, author_id, skip: int = 0, limit: int = 10) -> dict:
    """Followers of ``author_id`` with their profiles; fetches one extra row to detect more pages."""
    author_oid = to_object_id(author_id, "author id")
    skip = max(skip, 0)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    rows = list(db["followers"].aggregate([
        {"$match": {"author": author_oid}},
        {"$sort": {"createdAt": -1}},
        {"$skip": skip},
        {"$limit": limit + 1},
        {"$lookup": {"from": "users", "localField": "user", "foreignField": "_id", "as": "follower"}},
        {"$unwind": "$follower"},
    ]))
    more = len(rows) > limit
    followers = []
    for row in rows[:limit]:
        profile = row["follower"]
        followers.append({
            "followId": str(row["_id"]),
            "userId": str(profile["_id"]),
            "username": profile["username"],
            "fullName": f"{profile.get('firstName', '')} {profile.get('lastName', '')}".strip(),
            "avatar": (profile.get("avatar") or {}).get("secure_url"),
            "createdAt": serialize(row.get("createdAt")),
        })
    return {"followers": followers, "more": more}


# -------------------------------------------------------------------
# Likes
# -------------------------------------------------------------------
def like(db: Database, user: dict, post_id: str) -> dict:
    post_oid = to_object_id(post_id, "post id")
    if not db["blogs"].find_one({"_id": post_oid, "isPublished": True}, {"_id": 1}):
        raise NotFound("Post not found")

    if db["likes"].find_one({"user": user["_id"], "blog": post_oid}, {"_id": 1}):
        raise Conflict("You already liked this post")

    relation = new_document(Like, user=user["_id"], blog=post_oid)
    try:
        db["likes"].insert_one(relation)
    except DuplicateKeyError:
        raise Conflict("You already liked this post")

    try:
        updated = _bump(db["blogs"], {"_id": post_oid}, "likes", 1)
    except PyMongoError:
        logger.exception("Like counter update failed for %s", post_oid)
        updated = None
    if updated is None:
        db["likes"].delete_one({"_id": relation["_id"]})
        raise UpstreamError("Could not like the post, please try again.")

    return {"likes": updated["likes"]}


def unlike(db: Database, user: dict, post_id: str) -> dict:
    post_oid = to_object_id(post_id, "post id")
    relation = db["likes"].find_one_and_delete({"user": user["_id"], "blog": post_oid})
    if not relation:
        raise NotFound("You have not liked this post")

    try:
        updated = _bump(db["blogs"], {"_id": post_oid}, "likes", -1)
    except PyMongoError:
        logger.exception("Like counter update failed for %s", post_oid)
        db["likes"].insert_one(relation)
        raise UpstreamError("Could not remove the like, please try again.")

    return {"likes": updated["likes"] if updated else 0}


def like_status(db: Database, user: dict, post_id: str) -> dict:
    post_oid = to_object_id(post_id, "post id")
    post = db["blogs"].find_one({"_id": post_oid}, {"likes": 1})
    if not post:
        raise NotFound("Post not found")
    liked = db["likes"].find_one({"user": user["_id"], "blog": post_oid}, {"_id": 1}) is not None
    return {"liked": liked, "likes": post.get("likes", 0)}


# -------------------------------------------------------------------
# Account removal
# -------------------------------------------------------------------
def drop_user_relations(db: Database, user_oid) -> None:
    """Remove every follow and like involving ``user_oid`` and keep the counters in step."""
    for relation in list(db["followers"].find({"user": user_oid})):
        if db["followers"].delete_one({"_id": relation["_id"]}).deleted_count:
            _bump(db["users"], {"_id": relation["author"]}, "followers", -1)
    db["followers"].delete_many({"author": user_oid})

    for relation in list(db["likes"].find({"user": user_oid})):
        if db["likes"].delete_one({"_id": relation["_id"]}).deleted_count:
            _bump(db["blogs"], {"_id": relation["blog"]}, "likes", -1)
