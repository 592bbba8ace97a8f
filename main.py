import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, File, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import DuplicateKeyError, PyMongoError

import config
import database
from auth import get_current_user, get_password_hash, token_for, verify_password
from database import create_document, get_document, update_document
from errors import Conflict, NotFound, SchedulerError, Unauthorized
from logging_config import RequestLoggingMiddleware, configure_logging
from meetings import create_meeting, delete_meeting, get_owned_meeting, set_banner_image, update_meeting
from migrations import OUTDATED_MEETINGS, migrate_meetings, migrate_users
from participants import list_bookings, report_status, request_join, review_join_request, toggle_ignore
from queries import categorized_meetings, list_meetings
from schemas import (
    MEETING_SCHEMA_VERSION,
    ApprovalPayload,
    AvailabilityPayload,
    JoinMeetingPayload,
    LoginPayload,
    MeetingCreate,
    MeetingUpdate,
    PreferencesPayload,
    SettingsPayload,
    SignupPayload,
    StatusPayload,
    Token,
    User,
    join_receipt,
    public_meeting,
    public_user,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if database.db is not None:
        database.ensure_indexes()
        migrate_users()
        migrate_meetings()
    else:
        logger.warning("database.not_configured")
    yield


app = FastAPI(title="Meeting Scheduler API", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Banner images
os.makedirs(config.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR), name="uploads")


@app.exception_handler(SchedulerError)
async def scheduler_error_handler(request: Request, exc: SchedulerError):
    if exc.status_code >= 500:
        logger.error("server.error", path=request.url.path, error=exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": SchedulerError.detail})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error("database.error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Server error"})


@app.get("/")
def read_root():
    return {"message": "Meeting Scheduler API is running"}


@app.get("/api/protected")
def protected(current_user: dict = Depends(get_current_user)):
    return {"message": "You are in a protected route!", "user_id": str(current_user["_id"])}


# Auth routes
@app.post("/api/auth/signup", response_model=Token, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupPayload):
    if get_document("user", {"email": payload.email}):
        raise Conflict("Email already exists")
    if get_document("user", {"username": payload.username}):
        raise Conflict("Username already taken")

    user = User(username=payload.username, email=payload.email, password_hash=get_password_hash(payload.password))
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise Conflict("Email or username already exists")
    logger.info("user.signed_up", user_id=user_id)
    return token_for({"_id": user_id})


@app.post("/api/auth/login", response_model=Token)
def login(payload: LoginPayload):
    user = get_document("user", {"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise Unauthorized("Invalid credentials")
    return token_for(user)


# User routes
@app.get("/api/user")
def get_user(current_user: dict = Depends(get_current_user)):
    return {"user": public_user(current_user)}


@app.put("/api/user/availability")
def update_availability(payload: AvailabilityPayload, current_user: dict = Depends(get_current_user)):
    availability = [window.model_dump() for window in payload.availability]
    user = update_document("user", {"_id": current_user["_id"]}, {"availability": availability})
    return {"message": "Availability updated", "user": public_user(user)}


@app.put("/api/user/settings")
def update_settings(payload: SettingsPayload, current_user: dict = Depends(get_current_user)):
    changes = {}
    should_logout = False

    if payload.username and payload.username != current_user["username"]:
        if get_document("user", {"username": payload.username, "_id": {"$ne": current_user["_id"]}}):
            raise Conflict("Username already taken")
        changes["username"] = payload.username
    if payload.email and payload.email != current_user["email"]:
        if get_document("user", {"email": payload.email, "_id": {"$ne": current_user["_id"]}}):
            raise Conflict("Email already in use")
        changes["email"] = payload.email
        should_logout = True
    if payload.password:
        changes["password_hash"] = get_password_hash(payload.password)
        should_logout = True

    try:
        user = update_document("user", {"_id": current_user["_id"]}, changes)
    except DuplicateKeyError:
        raise Conflict("Email or username already in use")
    if user is None:
        raise NotFound("User not found")
    return {"message": "Settings updated successfully", "user": public_user(user), "should_logout": should_logout}


@app.put("/api/user/preferences")
def update_preferences(payload: PreferencesPayload, current_user: dict = Depends(get_current_user)):
    if get_document("user", {"username": payload.username, "_id": {"$ne": current_user["_id"]}}):
        raise Conflict("Username already taken")
    try:
        update_document(
            "user", {"_id": current_user["_id"]},
            {"username": payload.username, "category": payload.category},
        )
    except DuplicateKeyError:
        raise Conflict("Username already taken")
    return {"message": "Preferences updated successfully"}


# Meetings
@app.post("/api/meetings", status_code=status.HTTP_201_CREATED)
def create_meeting_route(payload: MeetingCreate, current_user: dict = Depends(get_current_user)):
    meeting = create_meeting(current_user, payload)
    return {"message": "Meeting created successfully", "meeting": public_meeting(meeting)}


@app.get("/api/meetings")
def list_meetings_route(
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    category: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
):
    return list_meetings(str(current_user["_id"]), search=search, page=page, limit=limit, category=category)


@app.get("/api/meetings/categorized")
def categorized_meetings_route(search: Optional[str] = None, current_user: dict = Depends(get_current_user)):
    return categorized_meetings(str(current_user["_id"]), search=search)


@app.get("/api/meetings/bookings")
def bookings_route(current_user: dict = Depends(get_current_user)):
    return {"meetings": list_bookings(current_user)}


@app.get("/api/meetings/{meeting_id}")
def get_meeting_route(meeting_id: str, current_user: dict = Depends(get_current_user)):
    return {"meeting": public_meeting(get_owned_meeting(meeting_id, str(current_user["_id"])))}


@app.put("/api/meetings/{meeting_id}")
def update_meeting_route(meeting_id: str, payload: MeetingUpdate, current_user: dict = Depends(get_current_user)):
    meeting = update_meeting(meeting_id, current_user, payload)
    return {"message": "Meeting updated successfully", "meeting": public_meeting(meeting)}


@app.post("/api/meetings/{meeting_id}/banner")
async def upload_banner_route(
    meeting_id: str,
    banner_image: UploadFile = File(...),
    current_user: dict = Depends(get_current_user),
):
    # Ownership first so strangers cannot fill the upload dir
    get_owned_meeting(meeting_id, str(current_user["_id"]))
    _, ext = os.path.splitext(banner_image.filename or "")
    filename = f"{int(datetime.now().timestamp() * 1000)}{ext}"
    with open(os.path.join(config.UPLOAD_DIR, filename), "wb") as out:
        out.write(await banner_image.read())
    meeting = set_banner_image(meeting_id, current_user, f"/uploads/{filename}")
    return {"message": "Banner uploaded", "meeting": public_meeting(meeting)}


@app.delete("/api/meetings/{meeting_id}")
def delete_meeting_route(meeting_id: str, current_user: dict = Depends(get_current_user)):
    delete_meeting(meeting_id, current_user)
    return {"message": "Meeting deleted successfully"}


@app.post("/api/meetings/join/{meeting_id}")
def join_meeting_route(meeting_id: str, payload: JoinMeetingPayload):
    meeting = request_join(meeting_id, payload.email, payload.password)
    return {"message": "Join request sent, awaiting approval", "meeting": join_receipt(meeting)}


@app.put("/api/meetings/approve/{meeting_id}")
def approve_route(meeting_id: str, payload: ApprovalPayload, current_user: dict = Depends(get_current_user)):
    meeting = review_join_request(meeting_id, str(current_user["_id"]), payload.email, payload.action)
    past_tense = {"approve": "approved", "reject": "rejected"}[payload.action]
    return {"message": f"Participant {past_tense} successfully", "meeting": public_meeting(meeting)}


@app.put("/api/meetings/ignore/{meeting_id}")
def ignore_route(meeting_id: str, current_user: dict = Depends(get_current_user)):
    meeting = toggle_ignore(meeting_id, str(current_user["_id"]))
    label = "ignored" if meeting["status"] == "ignored" else "unignored"
    return {"message": f"Meeting {label}", "meeting": public_meeting(meeting)}


@app.put("/api/meetings/{meeting_id}/status")
def status_route(meeting_id: str, payload: StatusPayload, current_user: dict = Depends(get_current_user)):
    meeting = report_status(meeting_id, current_user, payload.status)
    return {"message": "Meeting status updated successfully", "meeting": public_meeting(meeting)}


@app.get("/test")
def store_diagnostics():
    """Document counts and index names for the collections this API writes."""
    response = {
        "backend": "✅ Running",
        "database": "❌ Not configured",
        "schema_version": MEETING_SCHEMA_VERSION,
        "collections": {},
    }
    if database.db is None:
        return response
    try:
        for name in ("user", "meeting", "write_lock"):
            coll = database.db[name]
            response["collections"][name] = {
                "documents": coll.count_documents({}),
                "indexes": sorted(coll.index_information()),
            }
        response["outdated_meetings"] = database.db["meeting"].count_documents(OUTDATED_MEETINGS)
        response["database"] = "✅ Connected"
    except PyMongoError as e:
        logger.warning("diagnostics.database_error", error=str(e))
        response["database"] = "⚠️  Connected but unavailable"
    return response


if __name__ == "__main__":
    import uvicorn
    configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
