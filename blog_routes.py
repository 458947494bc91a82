from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel, Field
from pymongo.database import Database

import content
import summarizer
from auth import get_current_user, get_verified_user
from database import get_db
from errors import ValidationFailed
from payload import json_body, missing, pick

router = APIRouter(prefix="/blogs", tags=["blogs"])


class SearchIn(BaseModel):
    tagsearch: str = Field(..., min_length=1)
    skip: int = Field(0, ge=0)


def _flag(raw: Any, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None or raw == "":
        return default
    value = str(raw).strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    raise ValidationFailed("isPublished must be true or false")


@router.post("/create", status_code=201)
def create_blog(
    title: Optional[str] = Form(None),
    content_: Optional[str] = Form(None, alias="content"),
    tags: Optional[str] = Form(None),
    seoKeywords: Optional[str] = Form(None),
    metaDescription: Optional[str] = Form(None),
    isPublished: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: dict = Depends(get_verified_user),
    db: Database = Depends(get_db),
    body: Optional[dict] = Depends(json_body),
):
    fields = pick(body, {
        "title": title,
        "content": content_,
        "tags": tags,
        "seoKeywords": seoKeywords,
        "metaDescription": metaDescription,
        "isPublished": isPublished,
    })
    if missing(fields["title"], fields["content"], fields["tags"], fields["seoKeywords"], fields["metaDescription"]):
        raise ValidationFailed("All fields are mandatory")
    data = content.PostCreate(
        title=fields["title"],
        content=content.parse_content(fields["content"]),
        tags=content.parse_tags(fields["tags"]),
        seoKeywords=fields["seoKeywords"],
        metaDescription=fields["metaDescription"],
        isPublished=_flag(fields["isPublished"], True),
    )
    post = content.create_post(db, user, data, image)
    return {"success": True, "message": "Blog Post Created successfully", "newBlog": post}


@router.get("/")
def home_blogs(db: Database = Depends(get_db)):
    return {"success": True, "message": "Posts fetched successfully", "data": content.home_feed(db)}


@router.post("/tag")
def search_blogs(data: SearchIn, db: Database = Depends(get_db)):
    result = content.search_posts(db, data.tagsearch, data.skip)
    return {"success": True, "message": "Searched posts fetched successfully", **result}


@router.patch("/publish/{id}")
def publish_blog(id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    result = content.set_published(db, user, id, True)
    return {"success": True, "message": "Post published successfully", **result}


@router.patch("/unpublish/{id}")
def unpublish_blog(id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    result = content.set_published(db, user, id, False)
    return {"success": True, "message": "Post unpublished successfully", **result}


@router.get("/{id}/summary")
def blog_summary(id: str, db: Database = Depends(get_db)):
    post = content.get_post(db, id)["postDetails"]
    summary = summarizer.summarize_post(post["title"], post["content"])
    return {"success": True, "summary": summary, "title": post["title"]}


@router.get("/{id}")
def get_blog(id: str, db: Database = Depends(get_db)):
    return {"success": True, "message": "Post fetched successfully", **content.get_post(db, id)}


@router.put("/{id}")
def update_blog(
    id: str,
    title: Optional[str] = Form(None),
    content_: Optional[str] = Form(None, alias="content"),
    tags: Optional[str] = Form(None),
    seoKeywords: Optional[str] = Form(None),
    metaDescription: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    body: Optional[dict] = Depends(json_body),
):
    fields = pick(body, {
        "title": title,
        "content": content_,
        "tags": tags,
        "seoKeywords": seoKeywords,
        "metaDescription": metaDescription,
    })
    fields = {name: value for name, value in fields.items() if not missing(value)}
    data = content.PostUpdate(
        title=fields.get("title"),
        content=content.parse_content(fields["content"]) if "content" in fields else None,
        tags=content.parse_tags(fields["tags"]) if "tags" in fields else None,
        seoKeywords=fields.get("seoKeywords"),
        metaDescription=fields.get("metaDescription"),
    )
    post = content.update_post(db, user, id, data, image)
    return {"success": True, "message": "Post updated successfully", "updatedpost": post}


@router.delete("/{id}")
def delete_blog(id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    result = content.delete_post(db, user, id)
    return {"success": True, "message": "Post deleted successfully", **result}
