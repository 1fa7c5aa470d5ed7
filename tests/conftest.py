"""
Pytest configuration and shared fixtures.

API tests run against an in-memory mongomock database injected through the
get_db dependency; uploads go to a per-test temporary directory.
"""

from datetime import datetime, timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

import storage
from database import create_document, get_db
from main import app
from schemas import User

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["video_platform_test"]


@pytest.fixture
def client(mongo_db, tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "STORAGE_DIR", str(tmp_path))
    app.dependency_overrides[get_db] = lambda: mongo_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, username):
    user = User(username=username, email=f"{username}@example.com", full_name=username.title(),
                avatar=f"https://cdn.example.com/{username}.png")
    return create_document(db, "users", user)


@pytest.fixture
def alice(mongo_db):
    return make_user(mongo_db, "alice")


@pytest.fixture
def bob(mongo_db):
    return make_user(mongo_db, "bob")


def auth(user):
    return {"X-User-Id": str(user["_id"])}


def seed_videos(db, owner, titles, published=True, start=BASE_TIME, description="A video"):
    """Insert videos one minute apart, oldest first; returns their ids in insert order."""
    ids = []
    for i, title in enumerate(titles):
        result = db["videos"].insert_one({
            "title": title,
            "description": description,
            "video_file": f"{title}.mp4",
            "thumbnail": f"{title}.png",
            "content_type": "video/mp4",
            "size": 1024,
            "duration": None,
            "views": 0,
            "is_published": published,
            "owner": owner["_id"],
            "created_at": start + timedelta(minutes=i),
            "updated_at": start + timedelta(minutes=i),
        })
        ids.append(result.inserted_id)
    return ids


def seed_comments(db, owner, video_id, contents, start=BASE_TIME):
    ids = []
    for i, content in enumerate(contents):
        result = db["comments"].insert_one({
            "content": content,
            "video": video_id,
            "owner": owner["_id"],
            "created_at": start + timedelta(minutes=i),
            "updated_at": start + timedelta(minutes=i),
        })
        ids.append(result.inserted_id)
    return ids
