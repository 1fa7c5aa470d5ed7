"""Local media storage for uploaded videos and thumbnails."""

import logging
import os

from bson import ObjectId
from fastapi import HTTPException, UploadFile

logger = logging.getLogger(__name__)

# Simple storage directory for uploaded files
STORAGE_DIR = os.getenv("STORAGE_DIR", "uploads")


def file_path(filename: str) -> str:
    # Only bare names are served; strip any directory component
    return os.path.join(STORAGE_DIR, os.path.basename(filename))


async def save_upload(file: UploadFile, kind: str) -> dict:
    """
    Save an uploaded file under STORAGE_DIR.
    - kind is the required MIME major type ("video" or "image")
    - Returns the stored filename, content type and size
    """
    if file.content_type is None or not file.content_type.startswith(f"{kind}/"):
        raise HTTPException(status_code=400, detail=f"Only {kind} files are allowed")

    # Create a safe filename
    safe_name = f"{ObjectId()}{os.path.splitext(file.filename or '')[1]}"
    os.makedirs(STORAGE_DIR, exist_ok=True)

    content = await file.read()
    with open(file_path(safe_name), "wb") as f:
        f.write(content)

    return {"filename": safe_name, "content_type": file.content_type, "size": len(content)}


def delete_file(filename: str) -> bool:
    if not filename:
        return False
    try:
        os.remove(file_path(filename))
    except FileNotFoundError:
        logger.warning("Stored file %s already missing", filename)
        return False
    return True
