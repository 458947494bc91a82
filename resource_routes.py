import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from pymongo.database import Database
from pymongo.errors import PyMongoError

import storage
from auth import get_current_user
from database import get_db, serialize, to_object_id
from errors import Forbidden, NotFound, UpstreamError, ValidationFailed
from schemas import Resource, new_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/resource", tags=["resource"])


@router.post("/", status_code=201)
def add_resource(
    resource: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not storage.has_file(resource):
        raise ValidationFailed("No file uploaded")

    uploaded = storage.store_upload(resource, f"blog/resource/{user['username']}", resource_type="auto")
    doc = new_document(Resource, user=user["_id"], resource=uploaded)
    try:
        db["resources"].insert_one(doc)
    except PyMongoError:
        logger.exception("Saving resource for %s failed", user["_id"])
        storage.destroy(uploaded["resource_id"])
        raise UpstreamError("Server error")
    return {"success": True, "message": "File Uploaded successfully", "data": {"id": str(doc["_id"]), **uploaded}}


@router.get("/")
def list_resources(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    rows = db["resources"].find({"user": user["_id"]}).sort("createdAt", -1)
    return {"success": True, "message": "Resources fetched successfully", "data": serialize(list(rows))}


@router.delete("/{id}")
def delete_resource(id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    doc = db["resources"].find_one({"_id": to_object_id(id, "resource id")})
    if not doc:
        raise NotFound("No resource found")
    if doc["user"] != user["_id"]:
        raise Forbidden("You are not authorized to delete this resource")

    storage.destroy(doc["resource"].get("resource_id"))
    db["resources"].delete_one({"_id": doc["_id"]})
    return {"success": True, "message": "File deleted successfully"}
