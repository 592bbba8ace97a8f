"""
Database helpers

Thin layer over pymongo. Collections are named after the lowercased model
name ("user", "meeting"). ``db`` is None until DATABASE_URL and DATABASE_NAME
are configured; every helper goes through ``collection()`` so the handle can
be swapped at runtime.
"""

import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

import config
from errors import Conflict, InternalError

logger = structlog.get_logger(__name__)

client = MongoClient(config.DATABASE_URL) if config.DATABASE_URL and config.DATABASE_NAME else None
db = client[config.DATABASE_NAME] if client is not None else None

LOCK_TTL_SECONDS = 30
LOCK_ATTEMPTS = 20
LOCK_WAIT_SECONDS = 0.05


def utcnow() -> datetime:
    """Naive UTC timestamp, the form pymongo hands back from the store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def collection(name: str):
    if db is None:
        raise InternalError("Database not configured")
    return db[name]


def to_object_id(value) -> Optional[ObjectId]:
    """Parse an id from a path or token; None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def _as_dict(data) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def create_document(collection_name: str, data) -> str:
    """Insert a model or dict, stamping created_at/updated_at. Returns the new id."""
    data_dict = _as_dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = collection(collection_name).insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: dict = None, limit: int = None,
                  skip: int = 0, sort: list = None) -> list:
    cursor = collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, filter_dict: dict) -> Optional[dict]:
    return collection(collection_name).find_one(filter_dict)


def count_documents(collection_name: str, filter_dict: dict = None) -> int:
    return collection(collection_name).count_documents(filter_dict or {})


def update_document(collection_name: str, filter_dict: dict, changes: dict = None,
                    add_to_set: dict = None, pull: dict = None, push: dict = None) -> Optional[dict]:
    """
    Apply ``$set`` changes plus optional ``$addToSet`` / ``$pull`` / ``$push``
    to the first matching document.

    updated_at is always refreshed. Returns the document after the update, or
    None when the filter matched nothing.
    """
    update = {"$set": {**(changes or {}), "updated_at": utcnow()}}
    if add_to_set:
        update["$addToSet"] = add_to_set
    if pull:
        update["$pull"] = pull
    if push:
        update["$push"] = push
    return collection(collection_name).find_one_and_update(
        filter_dict, update, return_document=ReturnDocument.AFTER
    )


def delete_document(collection_name: str, filter_dict: dict) -> bool:
    return collection(collection_name).delete_one(filter_dict).deleted_count > 0


def ensure_indexes() -> None:
    collection("user").create_index("email", unique=True)
    collection("user").create_index("username", unique=True)
    collection("meeting").create_index([("owner_id", ASCENDING), ("date_time", ASCENDING)])
    collection("meeting").create_index("emails")
    collection("meeting").create_index("pending_participants")
    collection("write_lock").create_index("expires_at", expireAfterSeconds=0)
    logger.info("database.indexes_ensured")


@contextmanager
def owner_write_lock(owner_id: str):
    """
    Serialize meeting writes for one owner across processes.

    The lock is a document in ``write_lock`` keyed by owner; MongoDB's unique
    ``_id`` makes the insert the mutual exclusion point. Each acquisition
    stores its own token and only deletes a lock still carrying it, so a
    holder that outlived the TTL cannot release its successor's lock.
    """
    lock_id = f"meetings:{owner_id}"
    token = uuid.uuid4().hex
    locks = collection("write_lock")

    def acquire():
        locks.delete_one({"_id": lock_id, "expires_at": {"$lt": utcnow()}})
        locks.insert_one({
            "_id": lock_id,
            "token": token,
            "expires_at": utcnow() + timedelta(seconds=LOCK_TTL_SECONDS),
        })

    try:
        for attempt in Retrying(
            stop=stop_after_attempt(LOCK_ATTEMPTS),
            wait=wait_fixed(LOCK_WAIT_SECONDS),
            retry=retry_if_exception_type(DuplicateKeyError),
        ):
            with attempt:
                acquire()
    except RetryError:
        logger.warning("write_lock.busy", owner_id=owner_id)
        raise Conflict("Another change to your meetings is in progress, try again")

    try:
        yield
    finally:
        if locks.delete_one({"_id": lock_id, "token": token}).deleted_count == 0:
            logger.warning("write_lock.lost", owner_id=owner_id)
