"""
Listing, search and categorization of an owner's meetings.

Buckets, relative to ``now``:
- upcoming: starts after now and not canceled
- past: started at or before now and not canceled
- pending: starts after now and category is pending
- canceled: category is canceled

They overlap on purpose: a future pending meeting is in both upcoming and
pending.
"""

import math
import re
from datetime import datetime
from typing import Iterable, Optional

from database import count_documents, get_documents, utcnow
from errors import ValidationError
from schemas import public_meeting

BUCKETS = ("upcoming", "past", "pending", "canceled")
MAX_PAGE_SIZE = 100


def in_bucket(meeting: dict, bucket: str, now: datetime) -> bool:
    start = meeting["date_time"]
    category = meeting.get("category")
    if bucket == "upcoming":
        return start > now and category != "canceled"
    if bucket == "past":
        return start <= now and category != "canceled"
    if bucket == "pending":
        return start > now and category == "pending"
    if bucket == "canceled":
        return category == "canceled"
    raise ValidationError(f"Unknown category: {bucket}")


def categorize(meetings: Iterable[dict], now: datetime) -> dict:
    buckets = {name: [] for name in BUCKETS}
    for meeting in meetings:
        for name in BUCKETS:
            if in_bucket(meeting, name, now):
                buckets[name].append(meeting)
    return buckets


def bucket_filter(bucket: str, now: datetime) -> dict:
    """The Mongo query equivalent of ``in_bucket``."""
    if bucket == "upcoming":
        return {"date_time": {"$gt": now}, "category": {"$ne": "canceled"}}
    if bucket == "past":
        return {"date_time": {"$lte": now}, "category": {"$ne": "canceled"}}
    if bucket == "pending":
        return {"date_time": {"$gt": now}, "category": "pending"}
    if bucket == "canceled":
        return {"category": "canceled"}
    raise ValidationError(f"Unknown category: {bucket}")


def owner_filter(owner_id: str, search: Optional[str] = None) -> dict:
    query = {"owner_id": owner_id}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"title": pattern}, {"description": pattern}]
    return query


def list_meetings(owner_id: str, search: Optional[str] = None, page: int = 1, limit: int = 10,
                  category: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}")

    query = owner_filter(owner_id, search)
    if category:
        query = {"$and": [query, bucket_filter(category, now or utcnow())]}

    total = count_documents("meeting", query)
    meetings = get_documents(
        "meeting", query, skip=(page - 1) * limit, limit=limit, sort=[("date_time", 1)]
    )
    return {
        "meetings": [public_meeting(m) for m in meetings],
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit),
    }


def categorized_meetings(owner_id: str, search: Optional[str] = None,
                         now: Optional[datetime] = None) -> dict:
    meetings = get_documents("meeting", owner_filter(owner_id, search), sort=[("date_time", 1)])
    buckets = categorize(meetings, now or utcnow())
    return {name: [public_meeting(m) for m in items] for name, items in buckets.items()}
