from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo.database import Database

import social
from auth import get_current_user
from database import get_db

router = APIRouter(tags=["social"])


class FollowIn(BaseModel):
    authorId: str
    blogId: Optional[str] = None


class FollowersIn(BaseModel):
    authorId: Optional[str] = None
    skip: int = Field(0, ge=0)
    limit: int = Field(10, ge=1, le=social.MAX_PAGE_SIZE)


@router.post("/follower/follow")
def follow_author(data: FollowIn, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    result = social.follow(db, user, data.authorId, data.blogId)
    return {"success": True, "message": "Author followed successfully", **result}


@router.delete("/follower/unfollow/{followId}")
def unfollow_author(followId: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    result = social.unfollow(db, user, followId)
    return {"success": True, "message": "Author unfollowed successfully", **result}


@router.post("/followers")
def author_followers(data: FollowersIn, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    author_id = data.authorId or user["_id"]
    result = social.list_followers(db, author_id, data.skip, data.limit)
    return {"success": True, "message": "Followers fetched successfully", **result}


@router.post("/like/{postId}")
def like_post(postId: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    result = social.like(db, user, postId)
    return {"success": True, "message": "Post liked", **result}


@router.get("/like/{postId}")
def like_status(postId: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"success": True, **social.like_status(db, user, postId)}


@router.delete("/dislike/{postId}")
def unlike_post(postId: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    result = social.unlike(db, user, postId)
    return {"success": True, "message": "Like removed", **result}
