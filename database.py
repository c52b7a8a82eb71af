# /quickpick/database.py

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId, errors as bson_errors
from pymongo import ASCENDING, MongoClient
from pymongo.server_api import ServerApi

from config import MONGO_DB_NAME, MONGO_URI
from errors import ValidationFailed

logger = logging.getLogger("DATABASE")

CUSTOMERS = "customers"
SELLERS = "sellers"
ADMINS = "admins"
PRODUCTS = "products"
CHATROOMS = "chatrooms"
MESSAGES = "messages"

# Connection is lazy; the first operation opens it.
client = MongoClient(MONGO_URI, server_api=ServerApi("1"), connect=False)
db = client[MONGO_DB_NAME]


def get_collection(name: str):
    return db[name]


def ping() -> bool:
    db.client.admin.command("ping")
    return True


def ensure_indexes():
    """Creates the store-level uniqueness constraints.

    Email is unique per identity collection only. Uniqueness across the
    three account collections is an application-level check.
    """
    for name in (CUSTOMERS, SELLERS, ADMINS):
        db[name].create_index("email", unique=True)
    db[SELLERS].create_index("mobileNumber", unique=True)
    db[SELLERS].create_index("shopName", unique=True)
    db[PRODUCTS].create_index("seller")
    db[CHATROOMS].create_index("pairKey", unique=True)
    db[CHATROOMS].create_index("participants")
    db[MESSAGES].create_index([("chatRoom", ASCENDING), ("timestamp", ASCENDING)])
    logger.info("Indexes ensured on database '%s'", db.name)


def parse_object_id(value: str, label: str = "") -> ObjectId:
    try:
        return ObjectId(value)
    except (bson_errors.InvalidId, TypeError):
        raise ValidationFailed(f"Invalid {label} ID" if label else "Invalid ID")


def _jsonable(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Mongo document -> JSON-ready dict. `_id` becomes `id`; password is dropped."""
    if doc is None:
        return None
    out = {k: v for k, v in doc.items() if k not in ("_id", "password")}
    if "_id" in doc:
        out = {"id": str(doc["_id"]), **out}
    return _jsonable(out)


IDENTITY_COLLECTIONS = {
    "buyer": CUSTOMERS,
    "seller": SELLERS,
    "admin": ADMINS,
    "superadmin": ADMINS,
}


def collection_for_role(role: str):
    return db[IDENTITY_COLLECTIONS[role]]
