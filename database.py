"""
MongoDB connection and small document helpers.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; the API
answers 500 "Database not configured" in that case.
"""
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")


def ensure_indexes(handle):
    """Indexes the data store itself enforces; safe to call repeatedly."""
    # profiles without a slug yet (slug null) stay out of the unique index
    handle["profiles"].create_index(
        "slug",
        name="profiles_slug_unique",
        unique=True,
        partialFilterExpression={"slug": {"$type": "string"}},
    )


client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]
    ensure_indexes(db)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mongo hands back naive datetimes; they are stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def create_document(handle, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with created_at/updated_at stamps and return its id as a string."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = handle[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(handle, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None):
    cursor = handle[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
