"""
Conflict detection for an owner's meetings.

Every meeting lasts MEETING_DURATION. Two meetings of the same owner may not
overlap; meetings of different owners never conflict.
"""

from datetime import datetime, timedelta
from typing import Optional

import structlog

from database import get_documents, to_object_id

logger = structlog.get_logger(__name__)

MEETING_DURATION = timedelta(minutes=60)


def overlaps(candidate_start: datetime, existing_start: datetime) -> bool:
    candidate_end = candidate_start + MEETING_DURATION
    existing_end = existing_start + MEETING_DURATION
    return (
        (existing_start <= candidate_start < existing_end)
        or (existing_start < candidate_end <= existing_end)
        or (candidate_start <= existing_start and candidate_end >= existing_end)
    )


def find_conflict(owner_id: str, candidate_start: datetime, exclude_id: Optional[str] = None) -> Optional[dict]:
    """First meeting of ``owner_id`` overlapping a meeting starting at ``candidate_start``."""
    query = {"owner_id": owner_id}
    if exclude_id is not None:
        query["_id"] = {"$ne": to_object_id(exclude_id)}
    for meeting in get_documents("meeting", query):
        if overlaps(candidate_start, meeting["date_time"]):
            return meeting
    return None


def has_conflict(owner_id: str, candidate_start: datetime, exclude_id: Optional[str] = None) -> bool:
    conflict = find_conflict(owner_id, candidate_start, exclude_id)
    if conflict is not None:
        logger.info(
            "meeting.conflict_detected",
            owner_id=owner_id,
            candidate_start=candidate_start.isoformat(),
            conflicting_meeting=str(conflict["_id"]),
        )
        return True
    return False
