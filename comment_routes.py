import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo.database import Database

import content
from auth import get_current_user, get_verified_user
from database import get_db, serialize, to_object_id
from errors import Forbidden, NotFound
from schemas import Comment, new_document, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/comments", tags=["comments"])


class CommentIn(BaseModel):
    blogId: str
    comment: str = Field(..., min_length=1, max_length=5000)


class CommentEditIn(BaseModel):
    comment: str = Field(..., min_length=1, max_length=5000)


def find_own_comment(db: Database, user: dict, comment_id: str) -> dict:
    comment = db["comments"].find_one({"_id": to_object_id(comment_id, "comment id")})
    if not comment:
        raise NotFound("Comment not found")
    if comment["author"] != user["_id"]:
        raise Forbidden("You are not authorized to modify this comment")
    return comment


@router.post("/", status_code=201)
def create_comment(data: CommentIn, user: dict = Depends(get_verified_user), db: Database = Depends(get_db)):
    blog_oid = to_object_id(data.blogId, "blog id")
    if not db["blogs"].find_one({"_id": blog_oid, "isPublished": True}, {"_id": 1}):
        raise NotFound("BlogId is invalid")

    comment = new_document(Comment, content=data.comment.strip(), author=user["_id"], blog=blog_oid)
    db["comments"].insert_one(comment)
    db["blogs"].update_one({"_id": blog_oid}, {"$push": {"comments": comment["_id"]}})
    return {"success": True, "message": "Commented Successfully", "comment": serialize(comment)}


@router.get("/{blogId}")
def list_comments(blogId: str, db: Database = Depends(get_db)):
    blog_oid = to_object_id(blogId, "blog id")
    if not db["blogs"].find_one({"_id": blog_oid, "isPublished": True}, {"_id": 1}):
        raise NotFound("Post not found")
    return {"success": True, "message": "Comments fetched successfully", "comments": content.post_comments(db, blog_oid)}


@router.put("/{commentId}")
def edit_comment(commentId: str, data: CommentEditIn, user: dict = Depends(get_current_user),
                 db: Database = Depends(get_db)):
    comment = find_own_comment(db, user, commentId)
    db["comments"].update_one(
        {"_id": comment["_id"]},
        {"$set": {"content": data.comment.strip(), "updatedAt": utcnow()}},
    )
    return {"success": True, "message": "Comment Updated"}


@router.delete("/{commentId}")
def delete_comment(commentId: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    comment = find_own_comment(db, user, commentId)
    db["comments"].delete_one({"_id": comment["_id"]})
    db["blogs"].update_one({"_id": comment["blog"]}, {"$pull": {"comments": comment["_id"]}})
    logger.info("Comment %s deleted by %s", comment["_id"], user["_id"])
    return {"success": True, "message": "Comment deleted successfully"}
