"""
MongoDB access for the laundry marketplace.

`db` is the module-level handle every route reads through. It is built from
DATABASE_URL / DATABASE_NAME at import time and can be swapped with init_db()
(tests point it at an in-memory database).
"""
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from bson.errors import InvalidId
from bson.objectid import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None

if DATABASE_URL and DATABASE_NAME:
    try:
        _client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)
        db = _client[DATABASE_NAME]
    except Exception as e:
        logger.error("Could not create MongoDB client: %s", e)
        db = None


def init_db(database) -> None:
    """Replace the shared database handle and make sure indexes exist."""
    global db
    db = database
    if db is not None:
        ensure_indexes()


def get_db():
    if db is None:
        raise RuntimeError("Database not available. Set DATABASE_URL and DATABASE_NAME.")
    return db


def ensure_indexes() -> None:
    d = get_db()
    # OTP rows disappear on their own once expires_at passes
    d["emailotp"].create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
    d["emailotp"].create_index([("email", ASCENDING)])
    d["user"].create_index([("email", ASCENDING)], unique=True)
    d["user"].create_index([("google_sub", ASCENDING)], unique=True, sparse=True)
    d["signup"].create_index([("email", ASCENDING)], unique=True)
    for name in ("order", "orderformerchant"):
        d[name].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        d[name].create_index([("shop_id", ASCENDING), ("status", ASCENDING)])
    d["transaction"].create_index([("account_type", ASCENDING), ("account_id", ASCENDING)])


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid ID format")


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
        del doc["_id"]
    # convert datetimes
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def _as_dict(data) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_none=True)
    return dict(data)


def create_document(collection_name: str, data) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    doc = _as_dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = get_db()[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[list] = None):
    cursor = get_db()[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
