"""
Meeting document migrations.

Version 1 is the shape written before schema_version existed: camelCase
fields, ``user`` for the owner, title-cased statuses, and either
``acceptedParticipants`` (with ``emails`` holding everyone who asked to join)
or ``pendingParticipants`` (with ``emails`` holding confirmed participants).
"""

import structlog
from pymongo.errors import DuplicateKeyError

from auth import get_password_hash
from database import collection, utcnow
from schemas import MEETING_SCHEMA_VERSION

logger = structlog.get_logger(__name__)

RENAMED_FIELDS = {
    "dateTime": "date_time",
    "bannerImage": "banner_image",
    "backgroundColor": "background_color",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}
STATUSES = {"pending", "accepted", "rejected", "ignored"}
CATEGORIES = {"upcoming", "pending", "canceled"}
OUTDATED_MEETINGS = {"$or": [
    {"schema_version": {"$exists": False}},
    {"schema_version": {"$lt": MEETING_SCHEMA_VERSION}},
]}


def _unique_lower(emails):
    return list(dict.fromkeys(e.strip().lower() for e in emails or [] if e))


def migrate_meeting(doc: dict) -> dict:
    """Return ``doc`` upgraded to the current schema version."""
    version = doc.get("schema_version", 1)
    if version >= MEETING_SCHEMA_VERSION:
        return doc

    out = {k: v for k, v in doc.items() if k not in RENAMED_FIELDS}
    for old, new in RENAMED_FIELDS.items():
        if old in doc:
            out[new] = doc[old]

    if "user" in out:
        out["owner_id"] = str(out.pop("user"))

    if "pendingParticipants" in out:
        confirmed = _unique_lower(out.get("emails"))
        pending = _unique_lower(out.pop("pendingParticipants"))
        out.pop("acceptedParticipants", None)
    else:
        confirmed = _unique_lower(out.pop("acceptedParticipants", None))
        pending = _unique_lower(out.get("emails"))
    out["emails"] = confirmed
    out["pending_participants"] = [e for e in pending if e not in confirmed]

    # Legacy ignore toggled between "Ignored" and "Rejected", so a stored
    # "Rejected" may be an unignored meeting or a real rejection. Both become
    # "rejected"; nothing in the old document tells them apart.
    status = str(out.get("status") or "pending").lower()
    out["status"] = status if status in STATUSES else "pending"
    out.setdefault("status_before_ignore", None)
    category = str(out.get("category") or "upcoming").lower()
    out["category"] = category if category in CATEGORIES else "upcoming"

    password = out.pop("password", None)
    out["password_hash"] = get_password_hash(password) if password else None

    out.setdefault("description", "")
    out.setdefault("banner_image", "")
    out.setdefault("background_color", "#ffffff")
    out.setdefault("reminder", None)
    out["schema_version"] = MEETING_SCHEMA_VERSION
    return out


def migrate_user(doc: dict) -> dict:
    """Legacy users keep the bcrypt hash in ``password`` and camelCase availability."""
    if "password" not in doc:
        return doc
    out = dict(doc)
    out["password_hash"] = out.pop("password")
    out["email"] = out["email"].strip().lower()
    out["meetings"] = [str(m) for m in out.get("meetings", [])]
    out["availability"] = [
        {
            "day": window.get("day"),
            "start_time": window.get("start_time", window.get("startTime")),
            "end_time": window.get("end_time", window.get("endTime")),
        }
        for window in out.get("availability", [])
    ]
    out.setdefault("category", "")
    return out


def _email_claims(users) -> dict:
    """
    Lowercased email -> _id of the user that keeps it.

    Current users claim first, then legacy users in insertion order.
    """
    claims = {}
    docs = list(users.find({}, {"email": 1, "password": 1}).sort("_id", 1))
    for doc in sorted(docs, key=lambda d: "password" in d):
        claims.setdefault(str(doc.get("email", "")).strip().lower(), doc["_id"])
    return claims


def migrate_users() -> int:
    """
    Upgrade legacy users in place. Returns the count migrated.

    Older stores kept emails as typed, so two legacy users can differ only
    by case. Only the first keeps the lowercased address; the rest are left
    unmigrated and logged for manual merging.
    """
    users = collection("user")
    claims = _email_claims(users)
    migrated = 0
    for doc in list(users.find({"password": {"$exists": True}})):
        new_doc = migrate_user(doc)
        holder = claims.get(new_doc["email"])
        if holder != doc["_id"]:
            logger.warning(
                "migration.user_email_collision",
                user_id=str(doc["_id"]), email=new_doc["email"], kept_user_id=str(holder),
            )
            continue
        new_doc["updated_at"] = utcnow()
        try:
            users.replace_one({"_id": doc["_id"]}, new_doc)
        except DuplicateKeyError:
            logger.warning("migration.user_duplicate", user_id=str(doc["_id"]), email=new_doc["email"])
            continue
        migrated += 1
    logger.info("migration.users_migrated", count=migrated)
    return migrated


def migrate_meetings() -> int:
    """Rewrite every outdated meeting document in place. Returns the count."""
    meetings = collection("meeting")
    migrated = 0
    for doc in list(meetings.find(OUTDATED_MEETINGS)):
        new_doc = migrate_meeting(doc)
        new_doc["updated_at"] = utcnow()
        meetings.replace_one({"_id": doc["_id"]}, new_doc)
        migrated += 1

    newer = meetings.count_documents({"schema_version": {"$gt": MEETING_SCHEMA_VERSION}})
    if newer:
        logger.warning("migration.newer_documents_skipped", count=newer)
    logger.info("migration.meetings_migrated", count=migrated, version=MEETING_SCHEMA_VERSION)
    return migrated
