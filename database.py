"""
MongoDB access helpers.

The database handle is created once by `connect` and injected into the app;
route handlers reach it through the `get_db` dependency.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException, Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import Settings

COLL_USER = "user"
COLL_ARTICLE = "article"
COLL_COMMENT = "comment"
COLL_LIKE = "like"
COLL_FUEL_PRICE = "fuel_price"


def utcnow() -> datetime:
    # Naive UTC, matching what pymongo hands back from the server.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db[COLL_USER].create_index("email", unique=True)
    db[COLL_USER].create_index("mobile", unique=True, sparse=True)
    db[COLL_USER].create_index("google_id", unique=True, sparse=True)
    db[COLL_USER].create_index("reset_token", sparse=True)
    db[COLL_ARTICLE].create_index([("category", ASCENDING), ("created_at", DESCENDING)])
    db[COLL_COMMENT].create_index([("article_id", ASCENDING), ("created_at", DESCENDING)])
    # one like per identity per article
    db[COLL_LIKE].create_index([("article_id", ASCENDING), ("liker", ASCENDING)], unique=True)
    db[COLL_FUEL_PRICE].create_index([("date", ASCENDING), ("state", ASCENDING)], unique=True)


def create_document(db: Database, collection: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    doc = data.model_dump(exclude_none=True) if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    result = db[collection].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[tuple]] = None,
) -> List[dict]:
    cursor = db[collection].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def parse_object_id(value: str, label: str = "id") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def serialize(doc: Optional[dict]) -> Optional[dict]:
    """Return a JSON-friendly copy of a stored document with `_id` renamed to `id`."""
    if doc is None:
        return None
    out = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        elif isinstance(value, ObjectId):
            out[key] = str(value)
        else:
            out[key] = value
    return out


def get_db(request: Request) -> Database:
    return request.app.state.db
