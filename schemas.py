"""
Database Schemas

MongoDB collection schemas as Pydantic models, plus the request bodies the
routes accept. References between collections are stored as ObjectId.

Collections:
- User -> "users"
- Video -> "videos"
- Comment -> "comments"
- Like -> "likes"
- Tweet -> "tweets"
- Subscription -> "subscriptions"
- Playlist -> "playlists"
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from bson import ObjectId


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class User(Document):
    """
    Users collection schema
    Collection name: "users"
    """
    username: str = Field(..., description="Unique handle, lowercase")
    email: str = Field(..., description="Unique email address")
    full_name: str = Field(..., description="Display name")
    avatar: Optional[str] = Field(None, description="Avatar URL")


class Video(Document):
    """
    Videos collection schema
    Collection name: "videos"
    """
    title: str = Field(..., description="Video title")
    description: str = Field(..., description="Video description")
    video_file: str = Field(..., description="Stored video filename on server")
    thumbnail: str = Field(..., description="Stored thumbnail filename on server")
    content_type: str = Field(..., description="MIME type of uploaded video")
    size: int = Field(..., ge=0, description="Size in bytes")
    duration: Optional[float] = Field(None, ge=0, description="Duration in seconds")
    views: int = Field(0, ge=0, description="View count")
    is_published: bool = Field(True, description="Visible in public listings")
    owner: ObjectId = Field(..., description="Uploading user")


class Comment(Document):
    """
    Comments collection schema
    Collection name: "comments"
    """
    content: str
    video: ObjectId
    owner: ObjectId


class Like(Document):
    """
    Likes collection schema; exactly one of video/comment/tweet is set
    Collection name: "likes"
    """
    video: Optional[ObjectId] = None
    comment: Optional[ObjectId] = None
    tweet: Optional[ObjectId] = None
    liked_by: ObjectId


class Tweet(Document):
    """
    Tweets collection schema
    Collection name: "tweets"
    """
    content: str
    owner: ObjectId


class Subscription(Document):
    """
    Subscriptions collection schema
    Collection name: "subscriptions"
    """
    subscriber: ObjectId = Field(..., description="User who subscribes")
    channel: ObjectId = Field(..., description="User being subscribed to")


class Playlist(Document):
    """
    Playlists collection schema
    Collection name: "playlists"
    """
    name: str
    description: str
    videos: List[ObjectId] = Field(default_factory=list)
    owner: ObjectId


# Request bodies

class UserCreate(BaseModel):
    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    full_name: str = Field(..., min_length=1)
    avatar: Optional[str] = None


class ContentBody(BaseModel):
    content: str


class PlaylistCreate(BaseModel):
    name: str
    description: str
