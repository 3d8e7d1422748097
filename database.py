"""
Database connection and document helpers.

One MongoClient (and its connection pool) lives for the whole process:
init_db() opens it at startup, close_db() drains it at shutdown. Request
handlers receive the database through the get_db dependency.
"""

import logging
import math
import os
from datetime import datetime, timezone
from typing import Optional, Union

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from errors import ValidationError

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "bookstore")
MAX_POOL_SIZE = int(os.getenv("DATABASE_POOL_SIZE", "50"))

client: Optional[MongoClient] = None
db: Optional[Database] = None


def init_db(mongo_client=None, name: Optional[str] = None) -> Database:
    """Connect once and create indexes. A client may be injected (tests)."""
    global client, db
    if db is not None:
        return db
    client = mongo_client or MongoClient(
        DATABASE_URL,
        maxPoolSize=MAX_POOL_SIZE,
        serverSelectionTimeoutMS=5000,
    )
    db = client[name or DATABASE_NAME]
    try:
        ensure_indexes(db)
    except Exception:
        logger.exception("Could not prepare database %s", name or DATABASE_NAME)
        close_db()
        raise
    logger.info("Connected to MongoDB database %s", db.name)
    return db


def close_db() -> None:
    global client, db
    if client is not None:
        client.close()
        logger.info("MongoDB connection closed")
    client = None
    db = None


def get_db() -> Database:
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def ensure_indexes(database: Database) -> None:
    database["user"].create_index("email", unique=True)
    database["book"].create_index("isbn", unique=True)
    database["book"].create_index([("seller_id", ASCENDING), ("status", ASCENDING)])
    database["book"].create_index([("category", ASCENDING), ("status", ASCENDING), ("price", ASCENDING)])
    database["cart"].create_index("user_id")
    database["cart"].create_index("session_id")
    database["cart"].create_index("expires_at", expireAfterSeconds=0)
    database["order"].create_index("idempotency_key", unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["order"].create_index("items.book_id")
    database["review"].create_index([("book_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
    database["review"].create_index([("book_id", ASCENDING), ("is_active", ASCENDING), ("created_at", DESCENDING)])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid ID format")


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  sort=None, skip: int = 0, limit: int = 0) -> list:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_by_id(database: Database, collection_name: str, id_str: str) -> Optional[dict]:
    return database[collection_name].find_one({"_id": to_object_id(id_str)})


def serialize_doc(doc):
    """Make a Mongo document JSON friendly: _id -> id, ObjectId/datetime -> str."""
    if doc is None:
        return None
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, dict):
        out = {}
        for k, v in doc.items():
            if k == "_id":
                out["id"] = str(v)
            elif k == "password_hash":
                continue
            else:
                out[k] = serialize_doc(v)
        return out
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    return doc


def page_window(page: int, limit: int) -> tuple:
    page = max(page, 1)
    limit = max(min(limit, 100), 1)
    return page, limit, (page - 1) * limit


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
