# main.py
import asyncio
import json
import logging
from datetime import datetime
from typing import Optional

import fastapi
from fastapi import Depends, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from ovenbook.auth import (
    Token,
    authenticate,
    create_access_token,
    create_identity,
    get_current_identity,
    get_current_session,
    get_user_by_email,
    is_admin,
    oauth2_scheme,
    require_admin,
    resolve_session,
    revoke_session,
)
from ovenbook.config import (
    ADMIN_EMAIL,
    ADMIN_NAME,
    ADMIN_PASSWORD,
    SNAPSHOT_POLL_SECONDS,
    BookingPolicy,
    configure_logging,
)
from ovenbook.data_models import Identity, Session
from ovenbook.database import database, engine, metadata
from ovenbook.errors import OvenBookError, Unauthenticated, Unauthorized, ValidationFailed
from ovenbook.ledger import ReservationLedger
from ovenbook.realtime import ReservationFeed
from ovenbook.registry import ResourceRegistry
from ovenbook.views import ReadViews

logger = logging.getLogger(__name__)

#FastAPI Setup
app = fastapi.FastAPI(title="OvenBook")

feed = ReservationFeed()
registry = ResourceRegistry(database)
ledger = ReservationLedger(database, BookingPolicy.from_env(), feed=feed)
views = ReadViews(database, feed=feed, poll_seconds=SNAPSHOT_POLL_SECONDS)


# Request bodies. Field names on the wire are camelCase.
class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ResourceCreate(CamelModel):
    name: str


class ResourceStatusUpdate(CamelModel):
    id: int
    status: str


class ReservationCreate(CamelModel):
    resource_id: int = Field(alias="resourceId")
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")
    title: str = ""


class ReservationUpdate(CamelModel):
    resource_id: Optional[int] = Field(None, alias="resourceId")
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")
    title: str = ""


class CancelRequest(CamelModel):
    reservation_id: int = Field(alias="reservationId")


class UserCreate(CamelModel):
    email: EmailStr
    full_name: str = Field(alias="fullName")
    password: str


# Error envelope: {"success": false, "message": ...}
def _failure(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message}, headers=headers)


@app.exception_handler(OvenBookError)
async def ovenbook_error_handler(request: Request, exc: OvenBookError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return _failure(exc.status_code, exc.message, headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _failure(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    )
    return _failure(status.HTTP_400_BAD_REQUEST, f"Invalid request: {problems}")


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


# Identity endpoints
@app.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(user: UserCreate):
    await create_identity(user.email, user.full_name, user.password)
    return {"success": True, "message": "User created successfully."}


@app.post("/token", response_model=Token)
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    session = await authenticate(form_data.username, form_data.password)
    return {"access_token": create_access_token(session), "token_type": "bearer"}


@app.post("/logout")
async def logout(session: Session = Depends(get_current_session)):
    await revoke_session(session)
    return {"success": True, "message": "Logged out"}


@app.get("/users/me")
async def read_users_me(current_user: Identity = Depends(get_current_identity)):
    """Get the current authenticated user's profile data."""
    return {
        "id": current_user.id,
        "email": current_user.email,
        "name": current_user.name,
        "isAdmin": current_user.is_admin,
    }


# Resource registry
@app.get("/resources")
async def list_resources():
    # Public: anyone can see which ovens exist and whether they are bookable
    data = [{"id": r.id, "name": r.name, "status": r.status} for r in await registry.list()]
    return {"success": True, "data": data}


@app.post("/resources")
async def create_resource(body: ResourceCreate, admin: Identity = Depends(require_admin)):
    resource_id = await registry.create(body.name)
    return {"success": True, "id": resource_id}


@app.put("/resources")
async def update_resource(body: ResourceStatusUpdate, admin: Identity = Depends(require_admin)):
    await registry.set_status(body.id, body.status)
    return {"success": True, "message": "Resource updated"}


# Reservations
@app.get("/reservations")
async def list_reservations(
    resource_id: Optional[int] = Query(None, alias="resourceId"),
    scope: Optional[str] = None,
    token: Optional[str] = Depends(oauth2_scheme),
):
    session = await resolve_session(token)

    if scope == "admin":
        if not await is_admin(session.identity.id):
            raise Unauthorized("User is not an admin")
        return {"success": True, "data": await views.list_upcoming_all()}

    if resource_id is None:
        raise ValidationFailed("Resource ID is required")
    return {"success": True, "data": await views.list_for_resource(resource_id)}


@app.post("/reservations")
async def create_reservation(body: ReservationCreate, current_user: Identity = Depends(get_current_identity)):
    reservation_id = await ledger.create(
        body.resource_id, body.start_time, body.end_time, body.title, current_user
    )
    return {"success": True, "message": "Booking successful", "id": reservation_id}


@app.post("/reservations/cancel")
async def cancel_reservation(body: CancelRequest, current_user: Identity = Depends(get_current_identity)):
    await ledger.cancel(body.reservation_id, current_user)
    return {"success": True, "message": "Booking cancelled successfully"}


@app.put("/reservations/{reservation_id}")
async def update_reservation(
    reservation_id: int,
    body: ReservationUpdate,
    current_user: Identity = Depends(get_current_identity),
):
    await ledger.update(
        reservation_id, body.resource_id, body.start_time, body.end_time, body.title, current_user
    )
    return {"success": True, "message": "Booking updated successfully"}


@app.websocket("/ws/reservations")
async def reservations_feed(
    websocket: fastapi.WebSocket,
    resource_id: int = Query(..., alias="resourceId"),
    token: str = Query(None),
):
    """
    Pushes the booking list of one resource: once on connect, then on every change.
    """
    try:
        await resolve_session(token)
    except Unauthenticated:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def push_snapshots():
        async for snapshot in views.watch_resource(resource_id):
            await websocket.send_text(json.dumps({"type": "snapshot", "data": snapshot}))

    async def wait_for_client_to_leave():
        # Incoming messages are ignored
        try:
            while True:
                await websocket.receive_text()
        except fastapi.WebSocketDisconnect:
            pass

    pusher = asyncio.create_task(push_snapshots())
    listener = asyncio.create_task(wait_for_client_to_leave())
    try:
        done, _ = await asyncio.wait({pusher, listener}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pusher.cancel()
        listener.cancel()
        outcome, _ = await asyncio.gather(pusher, listener, return_exceptions=True)

    if listener in done:
        return
    if isinstance(outcome, Exception):
        logger.error("Snapshot feed for resource %s failed", resource_id, exc_info=outcome)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    else:
        await websocket.close()


@app.on_event("startup")
async def startup():
    configure_logging()
    await database.connect()
    # Create tables if they don't exist
    metadata.create_all(bind=engine)

    # Seed one admin from the environment
    async with database.transaction():
        if not await get_user_by_email(ADMIN_EMAIL):
            await create_identity(ADMIN_EMAIL, ADMIN_NAME, ADMIN_PASSWORD, is_admin=True)
            logger.info("Seeded admin identity %s", ADMIN_EMAIL)


@app.on_event("shutdown")
async def shutdown():
    await database.disconnect()
