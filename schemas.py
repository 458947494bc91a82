"""
Database Schemas for the blog platform

Each Pydantic model maps to a MongoDB collection. Documents are built through
``new_document`` so every insert is validated and timestamped the same way.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Type

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class Asset(BaseModel):
    resource_id: Optional[str] = None
    resource_url: Optional[str] = None


class Avatar(BaseModel):
    public_id: Optional[str] = None
    secure_url: Optional[str] = None


class User(Document):
    """
    Collection: "users"
    """
    username: str = Field(..., min_length=6, description="Unique, lowercase")
    email: EmailStr = Field(..., description="Unique email address")
    password: str = Field(..., description="Password hash (bcrypt/argon2)")
    firstName: str
    lastName: str
    bio: str = ""
    avatar: Avatar = Field(default_factory=Avatar)
    backgroundImage: Asset = Field(default_factory=Asset)
    role: Literal["user", "admin"] = "user"
    blogs: List[ObjectId] = Field(default_factory=list)
    followers: int = Field(0, ge=0, description="Denormalized follower count")
    isBlocked: bool = False
    isVerified: bool = False
    isClosed: bool = False
    resetToken: Optional[str] = None
    resetTokenExpiry: Optional[int] = Field(None, description="Epoch milliseconds")
    verifyToken: Optional[str] = None
    verifyTokenExpiry: Optional[int] = Field(None, description="Epoch milliseconds")


class BlogPost(Document):
    """
    Collection: "blogs"
    """
    title: str
    content: Any = Field(..., description="Rich content blob from the editor")
    author: ObjectId
    slug: str
    tags: List[str] = Field(default_factory=list, max_length=10)
    isPublished: bool = False
    seoKeywords: str = ""
    metaDescription: str = ""
    public_image: Asset = Field(default_factory=Asset)
    likes: int = Field(0, ge=0, description="Denormalized like count")
    comments: List[ObjectId] = Field(default_factory=list)


class Comment(Document):
    """
    Collection: "comments"
    """
    content: str
    author: ObjectId
    blog: ObjectId


class Follower(Document):
    """
    Collection: "followers"
    One document per (user, author) pair.
    """
    user: ObjectId
    author: ObjectId
    blog: Optional[ObjectId] = None


class Like(Document):
    """
    Collection: "likes"
    One document per (user, blog) pair.
    """
    user: ObjectId
    blog: ObjectId


class Resource(Document):
    """
    Collection: "resources"
    """
    user: ObjectId
    resource: Asset


class Contact(Document):
    """
    Collection: "contacts"
    """
    name: str
    email: EmailStr
    subject: str
    message: str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_document(model: Type[BaseModel], **fields) -> Dict[str, Any]:
    doc = model(**fields).model_dump()
    now = utcnow()
    doc["createdAt"] = now
    doc["updatedAt"] = now
    return doc
