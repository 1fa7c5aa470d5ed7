import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
import storage
from database import create_document, get_db, serialize, utcnow
from listing import (
    USER_SUMMARY_FIELDS,
    VIDEO_SORTABLE,
    ListingParams,
    ListingPlan,
    SortSpec,
    ToOneJoin,
    build_listing_plan,
    optional_object_id,
    require_object_id,
    run_listing,
)
from schemas import Comment, ContentBody, Like, Playlist, PlaylistCreate, Subscription, Tweet, User, UserCreate, Video

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VIDEO_FIELDS = ["_id", "title", "description", "video_file", "thumbnail", "duration",
                "views", "is_published", "created_at", "updated_at"]
COMMENT_FIELDS = ["_id", "content", "video", "created_at", "updated_at"]
TWEET_FIELDS = ["_id", "content", "created_at", "updated_at"]
SUBSCRIPTION_FIELDS = ["_id", "created_at"]
TWEET_SORTABLE = {"created_at": "created_at", "createdAt": "created_at"}

OWNER_JOIN = ToOneJoin(collection="users", local_field="owner", fields=USER_SUMMARY_FIELDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.create_indexes(database.db)
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; database routes will answer 503")
    yield


app = FastAPI(title="Video Platform API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------
# Envelope & errors
# ------------------------
def respond(data: Any, message: str, status_code: int = 200) -> JSONResponse:
    """Wrap a successful result as {status, data, message}."""
    payload = {"status": status_code, "data": serialize(data), "message": message}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"status": exc.status_code, "message": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    return JSONResponse(status_code=400, content={"status": 400, "message": message})


# ------------------------
# Request dependencies
# ------------------------
def get_current_user(
    x_user_id: Optional[str] = Header(None),
    db=Depends(get_db),
) -> Dict[str, Any]:
    """Resolve the calling user from the X-User-Id header."""
    user_id = optional_object_id(x_user_id)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = db["users"].find_one({"_id": user_id})
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def listing_params(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    query: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_type: Optional[str] = Query(None, alias="sortType"),
    user_filter: Optional[str] = Query(None, alias="userId"),
) -> ListingParams:
    return ListingParams(page=page, limit=limit, query=query, sort_by=sort_by,
                         sort_type=sort_type, user_id=user_filter)


def page_params(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
) -> ListingParams:
    return ListingParams(page=page, limit=limit)


def find_or_404(db, collection: str, oid: ObjectId, label: str) -> Dict[str, Any]:
    doc = db[collection].find_one({"_id": oid})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} does not exist")
    return doc


def find_owned(db, collection: str, oid: ObjectId, user: dict, label: str, action: str) -> Dict[str, Any]:
    doc = find_or_404(db, collection, oid, label)
    if doc.get("owner") != user["_id"]:
        raise HTTPException(status_code=403, detail=f"You are not allowed to {action} this {label.lower()}")
    return doc


def require_text(value: Optional[str], message: str) -> str:
    if value is None or not value.strip():
        raise HTTPException(status_code=400, detail=message)
    return value.strip()


# ------------------------
# Service
# ------------------------
@app.get("/")
def read_root():
    return {"message": "Video platform backend running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    db = database.db
    if db is None:
        return response
    response["database"] = "✅ Available"
    response["database_name"] = db.name
    response["connection_status"] = "Connected"
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


@app.get("/stream/{filename}")
async def stream_file(filename: str):
    """Serve the raw media file for the frontend player"""
    path = storage.file_path(filename)
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, media_type="application/octet-stream")


# ------------------------
# Users
# ------------------------
@app.post("/api/users")
def create_user(body: UserCreate, db=Depends(get_db)):
    username = require_text(body.username, "Username is required").lower()
    email = require_text(body.email, "Email is required").lower()
    full_name = require_text(body.full_name, "Full name is required")
    if db["users"].find_one({"$or": [{"username": username}, {"email": email}]}):
        raise HTTPException(status_code=409, detail="User with email or username already exists")

    user = User(username=username, email=email, full_name=full_name, avatar=body.avatar)
    try:
        doc = create_document(db, "users", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="User with email or username already exists")
    return respond(doc, "User registered successfully", 201)


@app.get("/api/users/{user_id}")
def get_user(user_id: str, db=Depends(get_db)):
    oid = require_object_id(user_id, "user id")
    user = find_or_404(db, "users", oid, "User")
    return respond(user, "User fetched successfully")


# ------------------------
# Videos
# ------------------------
@app.get("/api/videos")
def list_videos(params: ListingParams = Depends(listing_params), db=Depends(get_db)):
    """List published videos with optional owner filter, search in title/description, sort and paging"""
    plan = build_listing_plan(
        params,
        {"is_published": True},
        search_fields=("title", "description"),
        join=OWNER_JOIN,
        fields=VIDEO_FIELDS,
        sortable=VIDEO_SORTABLE,
    )
    videos = run_listing(db["videos"], plan)
    return respond(videos, "Videos fetched successfully")


@app.post("/api/videos")
async def publish_video(
    video_file: UploadFile = File(...),
    thumbnail: UploadFile = File(...),
    title: str = Form(...),
    description: str = Form(...),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    """
    Publish a video.
    - Saves the video and thumbnail under the storage directory
    - Stores metadata owned by the calling user
    """
    title = require_text(title, "All fields are required")
    description = require_text(description, "All fields are required")

    stored_video = await storage.save_upload(video_file, "video")
    try:
        stored_thumbnail = await storage.save_upload(thumbnail, "image")
    except HTTPException:
        storage.delete_file(stored_video["filename"])
        raise

    video = Video(
        title=title,
        description=description,
        video_file=stored_video["filename"],
        thumbnail=stored_thumbnail["filename"],
        content_type=stored_video["content_type"],
        size=stored_video["size"],
        owner=user["_id"],
    )
    doc = create_document(db, "videos", video)
    return respond(doc, "Video published successfully", 201)


@app.get("/api/videos/{video_id}")
def get_video(video_id: str, db=Depends(get_db)):
    oid = require_object_id(video_id, "video id")
    doc = db["videos"].find_one_and_update(
        {"_id": oid},
        {"$inc": {"views": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise HTTPException(status_code=404, detail="Video does not exist")
    return respond(doc, "Video fetched successfully")


@app.patch("/api/videos/{video_id}")
async def update_video(
    video_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    oid = require_object_id(video_id, "video id")
    video = find_owned(db, "videos", oid, user, "Video", "update")

    changes: Dict[str, Any] = {}
    if title is not None:
        changes["title"] = require_text(title, "Title should not be empty")
    if description is not None:
        changes["description"] = require_text(description, "Description should not be empty")
    if thumbnail is not None:
        stored = await storage.save_upload(thumbnail, "image")
        changes["thumbnail"] = stored["filename"]
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")

    changes["updated_at"] = utcnow()
    updated = db["videos"].find_one_and_update(
        {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    if "thumbnail" in changes:
        storage.delete_file(video.get("thumbnail"))
    return respond(updated, "Video details updated successfully")


@app.delete("/api/videos/{video_id}")
def delete_video(video_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(video_id, "video id")
    video = find_owned(db, "videos", oid, user, "Video", "delete")

    comment_ids = [c["_id"] for c in db["comments"].find({"video": oid}, {"_id": 1})]
    db["likes"].delete_many({"$or": [{"video": oid}, {"comment": {"$in": comment_ids}}]})
    db["comments"].delete_many({"video": oid})
    db["videos"].delete_one({"_id": oid})

    storage.delete_file(video.get("video_file"))
    storage.delete_file(video.get("thumbnail"))
    logger.info("Deleted video %s with %d comments", oid, len(comment_ids))
    return respond({}, "Video deleted successfully")


@app.patch("/api/videos/toggle/publish/{video_id}")
def toggle_publish_status(video_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(video_id, "video id")
    video = find_owned(db, "videos", oid, user, "Video", "change publish status of")
    updated = db["videos"].find_one_and_update(
        {"_id": oid},
        {"$set": {"is_published": not video.get("is_published", True)}},
        return_document=ReturnDocument.AFTER,
    )
    return respond(updated, "Publish status updated successfully")


# ------------------------
# Comments
# ------------------------
@app.get("/api/comments/{video_id}")
def list_video_comments(video_id: str, params: ListingParams = Depends(page_params), db=Depends(get_db)):
    oid = require_object_id(video_id, "video id")
    plan = build_listing_plan(
        params,
        {"video": oid},
        search_fields=(),
        join=OWNER_JOIN,
        fields=COMMENT_FIELDS,
    )
    comments = run_listing(db["comments"], plan)
    return respond(comments, "Comments fetched successfully")


@app.post("/api/comments/{video_id}")
def add_comment(video_id: str, body: ContentBody, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(video_id, "video id")
    content = require_text(body.content, "Comment should not be empty")
    find_or_404(db, "videos", oid, "Video")
    doc = create_document(db, "comments", Comment(content=content, video=oid, owner=user["_id"]))
    return respond(doc, "Comment added successfully", 201)


@app.patch("/api/comments/c/{comment_id}")
def update_comment(comment_id: str, body: ContentBody, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(comment_id, "comment id")
    find_owned(db, "comments", oid, user, "Comment", "update")
    content = require_text(body.content, "Comment should not be empty")
    updated = db["comments"].find_one_and_update(
        {"_id": oid},
        {"$set": {"content": content, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return respond(updated, "Comment updated successfully")


@app.delete("/api/comments/c/{comment_id}")
def delete_comment(comment_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(comment_id, "comment id")
    comment = find_owned(db, "comments", oid, user, "Comment", "delete")
    db["likes"].delete_many({"comment": oid})
    db["comments"].delete_one({"_id": oid})
    return respond(comment, "Comment deleted successfully")


# ------------------------
# Likes
# ------------------------
def toggle_like(db, field: str, target: ObjectId, user: dict):
    existing = db["likes"].find_one({field: target, "liked_by": user["_id"]})
    if existing:
        db["likes"].delete_one({"_id": existing["_id"]})
        return respond({}, "Like removed successfully")
    like = create_document(db, "likes", Like(**{field: target, "liked_by": user["_id"]}))
    return respond(like, "Like added successfully")


@app.post("/api/likes/toggle/v/{video_id}")
def toggle_video_like(video_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(video_id, "video id")
    find_or_404(db, "videos", oid, "Video")
    return toggle_like(db, "video", oid, user)


@app.post("/api/likes/toggle/c/{comment_id}")
def toggle_comment_like(comment_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(comment_id, "comment id")
    find_or_404(db, "comments", oid, "Comment")
    return toggle_like(db, "comment", oid, user)


@app.post("/api/likes/toggle/t/{tweet_id}")
def toggle_tweet_like(tweet_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(tweet_id, "tweet id")
    find_or_404(db, "tweets", oid, "Tweet")
    return toggle_like(db, "tweet", oid, user)


@app.get("/api/likes/videos")
def list_liked_videos(user=Depends(get_current_user), db=Depends(get_db)):
    plan = ListingPlan(
        match={"liked_by": user["_id"], "video": {"$ne": None}},
        join=ToOneJoin(collection="videos", local_field="video", required=True),
        projection={
            "_id": 0,
            "liked_at": "$created_at",
            "video": "$video._id",
            "title": "$video.title",
            "description": "$video.description",
            "thumbnail": "$video.thumbnail",
            "created_at": "$video.created_at",
        },
        # one like per user and video, so the video id settles ties
        sort=SortSpec(field="liked_at", tiebreaker="video"),
    )
    videos = run_listing(db["likes"], plan)
    return respond(videos, "Liked videos fetched successfully")


# ------------------------
# Tweets
# ------------------------
@app.post("/api/tweets")
def create_tweet(body: ContentBody, user=Depends(get_current_user), db=Depends(get_db)):
    content = require_text(body.content, "Content is required")
    doc = create_document(db, "tweets", Tweet(content=content, owner=user["_id"]))
    return respond(doc, "Tweet created successfully", 201)


@app.get("/api/tweets/user/{user_id}")
def list_user_tweets(user_id: str, params: ListingParams = Depends(listing_params), db=Depends(get_db)):
    oid = require_object_id(user_id, "user id")
    plan = build_listing_plan(
        params.model_copy(update={"user_id": None}),
        {"owner": oid},
        search_fields=("content",),
        join=OWNER_JOIN,
        fields=TWEET_FIELDS,
        sortable=TWEET_SORTABLE,
    )
    tweets = run_listing(db["tweets"], plan)
    return respond(tweets, "Tweets fetched successfully")


@app.patch("/api/tweets/{tweet_id}")
def update_tweet(tweet_id: str, body: ContentBody, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(tweet_id, "tweet id")
    find_owned(db, "tweets", oid, user, "Tweet", "update")
    content = require_text(body.content, "Content is required")
    updated = db["tweets"].find_one_and_update(
        {"_id": oid},
        {"$set": {"content": content, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return respond(updated, "Tweet updated successfully")


@app.delete("/api/tweets/{tweet_id}")
def delete_tweet(tweet_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(tweet_id, "tweet id")
    find_owned(db, "tweets", oid, user, "Tweet", "delete")
    db["likes"].delete_many({"tweet": oid})
    db["tweets"].delete_one({"_id": oid})
    return respond({}, "Tweet deleted successfully")


# ------------------------
# Subscriptions
# ------------------------
@app.post("/api/subscriptions/c/{channel_id}")
def toggle_subscription(channel_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    oid = require_object_id(channel_id, "channel id")
    if oid == user["_id"]:
        raise HTTPException(status_code=400, detail="You cannot subscribe to your own channel")
    find_or_404(db, "users", oid, "Channel")

    existing = db["subscriptions"].find_one({"subscriber": user["_id"], "channel": oid})
    if existing:
        db["subscriptions"].delete_one({"_id": existing["_id"]})
        return respond(None, "Unsubscribed successfully")

    doc = create_document(db, "subscriptions", Subscription(subscriber=user["_id"], channel=oid))
    return respond(doc, "Subscribed successfully")


@app.get("/api/subscriptions/c/{channel_id}")
def list_channel_subscribers(channel_id: str, params: ListingParams = Depends(page_params), db=Depends(get_db)):
    oid = require_object_id(channel_id, "channel id")
    plan = build_listing_plan(
        params,
        {"channel": oid},
        search_fields=(),
        join=ToOneJoin(collection="users", local_field="subscriber", fields=USER_SUMMARY_FIELDS, required=True),
        fields=SUBSCRIPTION_FIELDS,
    )
    subscribers = run_listing(db["subscriptions"], plan)
    return respond(subscribers, "Subscribers fetched successfully")


@app.get("/api/subscriptions/u/{subscriber_id}")
def list_subscribed_channels(subscriber_id: str, params: ListingParams = Depends(page_params), db=Depends(get_db)):
    oid = require_object_id(subscriber_id, "subscriber id")
    plan = build_listing_plan(
        params,
        {"subscriber": oid},
        search_fields=(),
        join=ToOneJoin(collection="users", local_field="channel", fields=USER_SUMMARY_FIELDS, required=True),
        fields=SUBSCRIPTION_FIELDS,
    )
    channels = run_listing(db["subscriptions"], plan)
    return respond(channels, "Channels fetched successfully")


# ------------------------
# Playlists
# ------------------------
@app.post("/api/playlists")
def create_playlist(body: PlaylistCreate, user=Depends(get_current_user), db=Depends(get_db)):
    name = require_text(body.name, "All fields are required")
    description = require_text(body.description, "All fields are required")
    doc = create_document(db, "playlists", Playlist(name=name, description=description, owner=user["_id"]))
    return respond(doc, "Playlist created successfully", 201)


@app.get("/api/playlists/{playlist_id}")
def get_playlist(playlist_id: str, db=Depends(get_db)):
    oid = require_object_id(playlist_id, "playlist id")
    playlist = find_or_404(db, "playlists", oid, "Playlist")
    return respond(playlist, "Playlist fetched successfully")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
