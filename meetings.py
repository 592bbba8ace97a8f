"""
Meeting create/read/update/delete for the owning user.

Creates and time changes run under the owner's write lock so the conflict
check and the write cannot interleave with another request for that owner.
"""

import structlog

from auth import get_password_hash
from database import (
    create_document,
    delete_document,
    get_document,
    owner_write_lock,
    to_object_id,
    update_document,
)
from errors import Conflict, NotFoundOrUnauthorized
from scheduling import has_conflict
from schemas import Meeting, MeetingCreate, MeetingUpdate

logger = structlog.get_logger(__name__)

CONFLICT_MESSAGE = "Time slot conflicts with an existing meeting"

# Fields an update may not clear
REQUIRED_FIELDS = ("title", "link", "date_time", "emails", "status", "category")


def get_owned_meeting(meeting_id: str, owner_id: str) -> dict:
    oid = to_object_id(meeting_id)
    meeting = get_document("meeting", {"_id": oid, "owner_id": owner_id}) if oid else None
    if not meeting:
        raise NotFoundOrUnauthorized()
    return meeting


def create_meeting(owner: dict, payload: MeetingCreate) -> dict:
    owner_id = str(owner["_id"])
    with owner_write_lock(owner_id):
        if has_conflict(owner_id, payload.date_time):
            raise Conflict(CONFLICT_MESSAGE)
        meeting = Meeting(
            title=payload.title,
            description=payload.description.strip(),
            link=payload.link,
            password_hash=get_password_hash(payload.password) if payload.password else None,
            date_time=payload.date_time,
            owner_id=owner_id,
            background_color=payload.background_color or "#ffffff",
            reminder=payload.reminder,
            category=payload.category,
            emails=payload.emails,
        )
        meeting_id = create_document("meeting", meeting)

    # Separate write; a failure here leaves the meeting without a back-reference
    update_document("user", {"_id": owner["_id"]}, push={"meetings": meeting_id})
    logger.info("meeting.created", meeting_id=meeting_id, owner_id=owner_id)
    return get_document("meeting", {"_id": to_object_id(meeting_id)})


def update_meeting(meeting_id: str, owner: dict, payload: MeetingUpdate) -> dict:
    owner_id = str(owner["_id"])
    changes = payload.model_dump(exclude_unset=True)
    for field in REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            del changes[field]
    if "description" in changes:
        changes["description"] = (changes["description"] or "").strip()
    if "background_color" in changes:
        changes["background_color"] = changes["background_color"] or "#ffffff"

    with owner_write_lock(owner_id):
        meeting = get_owned_meeting(meeting_id, owner_id)

        if "password" in changes:
            password = changes.pop("password")
            changes["password_hash"] = get_password_hash(password) if password else None

        new_start = changes.get("date_time")
        if new_start is not None and new_start != meeting["date_time"]:
            if has_conflict(owner_id, new_start, exclude_id=meeting_id):
                raise Conflict(CONFLICT_MESSAGE)

        if "emails" in changes:
            confirmed = set(changes["emails"])
            changes["pending_participants"] = [
                e for e in meeting.get("pending_participants", []) if e not in confirmed
            ]

        if "status" in changes:
            changes["status_before_ignore"] = None

        updated = update_document("meeting", {"_id": meeting["_id"]}, changes)

    logger.info("meeting.updated", meeting_id=meeting_id, fields=sorted(changes))
    return updated


def set_banner_image(meeting_id: str, owner: dict, reference: str) -> dict:
    meeting = get_owned_meeting(meeting_id, str(owner["_id"]))
    updated = update_document("meeting", {"_id": meeting["_id"]}, {"banner_image": reference})
    logger.info("meeting.banner_set", meeting_id=meeting_id, banner_image=reference)
    return updated


def delete_meeting(meeting_id: str, owner: dict) -> None:
    meeting = get_owned_meeting(meeting_id, str(owner["_id"]))
    delete_document("meeting", {"_id": meeting["_id"]})
    update_document("user", {"_id": owner["_id"]}, pull={"meetings": str(meeting["_id"])})
    logger.info("meeting.deleted", meeting_id=meeting_id)
