"""
MongoDB access for the Glow Beauty store.

Thin helpers around pymongo shared by every route module. Documents get
``created_at``/``updated_at`` stamps on insert and are handed to clients with
their ``_id`` exposed as a string ``id``.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import settings

logger = structlog.get_logger(__name__)

PRODUCTS = "products"
CART = "cart"
FAVORITES = "favorites"
ORDERS = "orders"
BOOKINGS = "bookings"
USERS = "users"
SESSIONS = "sessions"
PASSWORD_RESETS = "password_resets"

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    _client = MongoClient(settings.DATABASE_URL)
    db = _client[settings.DATABASE_NAME]


def utcnow() -> datetime:
    # Naive UTC, the form pymongo hands back by default
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse a client supplied id; None when it is not a valid ObjectId."""
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_document(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
    return doc


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    now = utcnow()
    doc = {**data, "created_at": now, "updated_at": now}
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: int = 0,
    sort: Optional[List[Tuple[str, int]]] = None,
    skip: int = 0,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes() -> None:
    if db is None:
        return
    try:
        db[USERS].create_index("email", unique=True)
        db[SESSIONS].create_index("token", unique=True)
        db[SESSIONS].create_index("expires_at", expireAfterSeconds=0)
        db[PASSWORD_RESETS].create_index("token", unique=True)
        db[PASSWORD_RESETS].create_index("expires_at", expireAfterSeconds=0)
        db[CART].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)
        db[FAVORITES].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)
        db[ORDERS].create_index([("created_at", DESCENDING)])
        db[ORDERS].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        db[PRODUCTS].create_index([("category_slug", ASCENDING), ("created_at", DESCENDING)])
        db[BOOKINGS].create_index([("created_at", DESCENDING)])
    except PyMongoError as e:
        logger.warning("index_creation_failed", error=str(e))
