"""
Database helpers for the Academy API

Connection is configured through DATABASE_URL / DATABASE_NAME. When either is
missing `db` stays None and the routes answer 503.
"""

import os
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel
from pymongo import MongoClient

logger = logging.getLogger(__name__)

db = None

_database_url = os.getenv("DATABASE_URL")
_database_name = os.getenv("DATABASE_NAME")

if _database_url and _database_name:
    try:
        _client = MongoClient(_database_url)
        db = _client[_database_name]
    except Exception:
        logger.exception("Could not connect to MongoDB")
        db = None


def _now():
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data) -> str:
    """Insert a document (pydantic model or dict) and return its id as string"""
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)

    data_dict["created_at"] = _now()
    data_dict["updated_at"] = _now()

    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None, sort=None):
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
