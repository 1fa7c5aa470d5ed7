"""
Database helpers

MongoDB connection plus the small set of helpers the routes share. The
connection is configured from DATABASE_URL / DATABASE_NAME; when either is
missing `db` stays None and every database-backed route answers 503.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Union

from bson import ObjectId
from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

# Load environment variables from .env if present
load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db():
    """FastAPI dependency returning the active database handle."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return db


def create_indexes(database) -> None:
    database["users"].create_index("username", unique=True)
    database["users"].create_index("email", unique=True)
    database["videos"].create_index([("owner", ASCENDING), ("created_at", DESCENDING)])
    database["videos"].create_index([("is_published", ASCENDING), ("created_at", DESCENDING)])
    database["comments"].create_index([("video", ASCENDING), ("created_at", DESCENDING)])
    database["likes"].create_index([("liked_by", ASCENDING), ("video", ASCENDING)])
    database["likes"].create_index([("liked_by", ASCENDING), ("comment", ASCENDING)])
    database["likes"].create_index([("liked_by", ASCENDING), ("tweet", ASCENDING)])
    database["tweets"].create_index([("owner", ASCENDING), ("created_at", DESCENDING)])
    database["subscriptions"].create_index(
        [("subscriber", ASCENDING), ("channel", ASCENDING)], unique=True
    )
    logger.info("Indexes ensured on %s", database.name)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> Dict[str, Any]:
    """Insert a document with timestamps and return it as stored."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict)
    data_dict["_id"] = result.inserted_id
    logger.info("Created %s %s", collection_name, result.inserted_id)
    return data_dict


def serialize(value: Any) -> Any:
    """Make a Mongo document JSON friendly: ObjectId -> str, `_id` -> `id`."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [serialize(item) for item in value]
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            out["id" if key == "_id" else key] = serialize(item)
        return out
    return value
