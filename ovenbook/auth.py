# auth.py

import logging
import secrets
from datetime import timedelta
from typing import Optional
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from ovenbook.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from ovenbook.data_models import Identity, Session, as_utc, utcnow
from ovenbook.database import database
from ovenbook.errors import InternalError, Unauthenticated, Unauthorized, ValidationFailed
from ovenbook.models import users, sessions

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# auto_error is off so a missing header goes through the same 401 envelope
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


class Token(BaseModel):
    access_token: str
    token_type: str


async def get_user(user_id: int):
    query = users.select().where(users.c.id == user_id)
    return await database.fetch_one(query)


async def get_user_by_email(email: str):
    query = users.select().where(users.c.email == email)
    return await database.fetch_one(query)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


async def create_identity(email: str, full_name: str, password: str, is_admin: bool = False) -> int:
    if await get_user_by_email(email):
        raise ValidationFailed("Email already registered.")
    query = users.insert().values(
        email=email,
        full_name=full_name,
        hashed_password=pwd_context.hash(password),
        is_admin=is_admin,
    )
    user_id = await database.execute(query)
    logger.info("Created identity %s (admin=%s)", user_id, is_admin)
    return user_id


async def authenticate(email: str, password: str) -> Session:
    """Check credentials and open a new session."""
    record = await get_user_by_email(email)
    if not record or not verify_password(password, record["hashed_password"]):
        raise Unauthenticated("Incorrect email or password")

    now = utcnow()
    session = Session(
        id=secrets.token_urlsafe(16),
        identity=Identity.from_record(record),
        expires_at=now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    await database.execute(
        sessions.insert().values(
            id=session.id,
            user_id=record["id"],
            created_at=now,
            expires_at=session.expires_at,
        )
    )
    logger.info("Opened session for identity %s", record["id"])
    return session


def create_access_token(session: Session) -> str:
    to_encode = {
        "sub": str(session.identity.id),
        "sid": session.id,
        "exp": session.expires_at,
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def revoke_session(session: Session):
    query = sessions.update().where(sessions.c.id == session.id).values(revoked_at=utcnow())
    await database.execute(query)
    logger.info("Revoked session for identity %s", session.identity.id)


async def resolve_session(token: Optional[str]) -> Session:
    """Decode a bearer token and load the live session behind it."""
    if not token:
        raise Unauthenticated("Missing or invalid Authorization header")

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id = int(payload["sub"])
        session_id = payload["sid"]
    except (JWTError, KeyError, ValueError):
        raise Unauthenticated("Invalid auth token")

    record = await database.fetch_one(sessions.select().where(sessions.c.id == session_id))
    if record is None or record["user_id"] != user_id or record["revoked_at"] is not None:
        raise Unauthenticated("Invalid auth token")
    expires_at = as_utc(record["expires_at"])
    if expires_at <= utcnow():
        raise Unauthenticated("Session expired")

    user = await get_user(user_id)
    if user is None:
        raise Unauthenticated("Invalid auth token")
    return Session(id=session_id, identity=Identity.from_record(user), expires_at=expires_at)


async def is_admin(user_id: int) -> bool:
    """Second-stage check against the identity record."""
    try:
        record = await get_user(user_id)
    except Exception:
        logger.exception("Admin check failed for identity %s", user_id)
        raise InternalError("Internal server error during admin check")
    return bool(record and record["is_admin"])


# Used for API calls
async def get_current_session(token: Optional[str] = Depends(oauth2_scheme)) -> Session:
    return await resolve_session(token)


async def get_current_identity(session: Session = Depends(get_current_session)) -> Identity:
    return session.identity


async def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not await is_admin(identity.id):
        raise Unauthorized("User is not an admin")
    return identity
