"""
Participant workflow for a meeting.

Per (meeting, email) the lifecycle is::

    not requested -> pending -> confirmed
                             -> removed (may request again)

``pending_participants`` holds join requests, ``emails`` holds confirmed
participants. Each transition is a single conditional update on the meeting
document, filtered on the membership it expects, so an email never sits in
both lists.
"""

from typing import List

import structlog

from auth import verify_password
from database import get_document, get_documents, to_object_id, update_document
from errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from meetings import get_owned_meeting
from schemas import join_receipt, public_meeting

logger = structlog.get_logger(__name__)

ALREADY_PARTICIPANT = "You are already a participant"
NOT_PENDING = "Participant not found in pending requests"


def _get_meeting(meeting_id: str) -> dict:
    oid = to_object_id(meeting_id)
    meeting = get_document("meeting", {"_id": oid}) if oid else None
    if not meeting:
        raise NotFound("Meeting not found")
    return meeting


def request_join(meeting_id: str, email: str, password: str = None) -> dict:
    """Public join request. Re-requesting while pending changes nothing."""
    if not email:
        raise ValidationError("Email is required to join")
    meeting = _get_meeting(meeting_id)

    if meeting.get("password_hash") and not verify_password(password, meeting["password_hash"]):
        logger.info("participant.join_bad_password", meeting_id=meeting_id)
        raise Unauthorized("Incorrect password")

    if email in meeting.get("emails", []):
        raise Conflict(ALREADY_PARTICIPANT)

    if email in meeting.get("pending_participants", []):
        return meeting

    updated = update_document(
        "meeting",
        {"_id": meeting["_id"], "emails": {"$ne": email}},
        add_to_set={"pending_participants": email},
    )
    if updated is None:
        # Confirmed between the read and the write
        raise Conflict(ALREADY_PARTICIPANT)
    logger.info("participant.join_requested", meeting_id=meeting_id, email=email)
    return updated


def review_join_request(meeting_id: str, owner_id: str, email: str, action: str) -> dict:
    """
    Owner approves or rejects a pending request.

    Approving someone already confirmed is a no-op. Anything else not pending
    is NotFound.
    """
    meeting = get_owned_meeting(meeting_id, owner_id)

    if email not in meeting.get("pending_participants", []):
        if action == "approve" and email in meeting.get("emails", []):
            return meeting
        raise NotFound(NOT_PENDING)

    query = {"_id": meeting["_id"], "pending_participants": email}
    if action == "approve":
        updated = update_document(
            "meeting", query,
            pull={"pending_participants": email},
            add_to_set={"emails": email},
        )
    elif action == "reject":
        updated = update_document("meeting", query, pull={"pending_participants": email})
    else:
        raise ValidationError("Action must be approve or reject")

    if updated is None:
        raise NotFound(NOT_PENDING)
    logger.info("participant.reviewed", meeting_id=meeting_id, email=email, action=action)
    return updated


def toggle_ignore(meeting_id: str, owner_id: str) -> dict:
    meeting = get_owned_meeting(meeting_id, owner_id)
    if meeting.get("status") == "ignored":
        changes = {
            "status": meeting.get("status_before_ignore") or "pending",
            "status_before_ignore": None,
        }
    else:
        changes = {"status": "ignored", "status_before_ignore": meeting.get("status", "pending")}
    updated = update_document("meeting", {"_id": meeting["_id"]}, changes)
    logger.info("meeting.ignore_toggled", meeting_id=meeting_id, status=updated["status"])
    return updated


def report_status(meeting_id: str, user: dict, status: str) -> dict:
    """
    Set the meeting status as the owner or as a confirmed participant.

    A participant reporting "rejected" also leaves the confirmed list.
    """
    if status not in ("accepted", "rejected"):
        raise ValidationError("Invalid status")
    meeting = _get_meeting(meeting_id)

    email = user["email"]
    is_owner = meeting["owner_id"] == str(user["_id"])
    is_confirmed = email in meeting.get("emails", [])
    if not (is_owner or is_confirmed):
        raise Forbidden("You are not a participant of this meeting")

    changes = {"status": status, "status_before_ignore": None}
    pull = {"emails": email} if is_confirmed and status == "rejected" else None
    updated = update_document("meeting", {"_id": meeting["_id"]}, changes, pull=pull)
    logger.info("meeting.status_reported", meeting_id=meeting_id, status=status, owner=is_owner)
    return updated


def list_bookings(user: dict) -> List[dict]:
    """Meetings the user is confirmed for or has asked to join."""
    email = user["email"]
    meetings = get_documents(
        "meeting",
        {"$or": [{"emails": email}, {"pending_participants": email}]},
        sort=[("date_time", 1)],
    )
    owner_ids = {to_object_id(m["owner_id"]) for m in meetings}
    owners = {
        str(o["_id"]): {"username": o["username"], "email": o["email"]}
        for o in get_documents("user", {"_id": {"$in": [oid for oid in owner_ids if oid]}})
    }

    bookings = []
    for meeting in meetings:
        if email in meeting.get("emails", []):
            item = public_meeting(meeting)
            item["participation"] = "confirmed"
        else:
            item = join_receipt(meeting)
        item["owner"] = owners.get(meeting["owner_id"])
        bookings.append(item)
    return bookings
