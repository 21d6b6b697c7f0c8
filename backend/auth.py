# backend/auth.py
import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, cast
from dotenv import load_dotenv
from fastapi import Depends, Request, Response
from authlib.integrations.starlette_client import OAuth
from jose import JWTError, jwt
from sqlmodel import select
from sqlalchemy.ext.asyncio import AsyncSession
from models import Role, User, utcnow
from database import get_session
from errors import AuthenticationRequired, AuthorizationDenied, ValidationFailure

load_dotenv()
logger = logging.getLogger(__name__)

DRIVE_SCOPE = "https://www.googleapis.com/auth/drive.file"

oauth = OAuth()
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
    raise ValueError("Google OAuth credentials are not set in .env file.")
oauth.register(
    name='google', client_id=GOOGLE_CLIENT_ID, client_secret=GOOGLE_CLIENT_SECRET,
    server_metadata_url='https://accounts.google.com/.well-known/openid-configuration',
    client_kwargs={'scope': f'openid email profile {DRIVE_SCOPE}'},
    # offline + consent so Google hands back a refresh token on every login
    authorize_params={'access_type': 'offline', 'prompt': 'consent'},
)

JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET: raise ValueError("JWT_SECRET is not set in .env file!")
safe_jwt_secret: str = cast(str, JWT_SECRET)
ALGORITHM = "HS256"

SESSION_USER_KEY = "user_id"
AUTH_COOKIE_NAME = "auth_token"
AUTH_COOKIE_MAX_AGE = 7 * 24 * 60 * 60
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "true") or "").strip().lower() not in ("0", "false", "no", "off")


def create_identity_token(user_id: int) -> str:
    """Signed value for the fallback identity cookie."""
    expire = datetime.now(timezone.utc) + timedelta(seconds=AUTH_COOKIE_MAX_AGE)
    to_encode = {"sub": str(user_id), "typ": "identity", "exp": expire}
    return jwt.encode(to_encode, safe_jwt_secret, algorithm=ALGORITHM)


def read_identity_token(token: Optional[str]) -> Optional[int]:
    if not token:
        return None
    try:
        payload = jwt.decode(token, safe_jwt_secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("typ") != "identity":
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None


def auth_cookie_kwargs(value: str) -> dict:
    return {
        "key": AUTH_COOKIE_NAME, "value": value, "max_age": AUTH_COOKIE_MAX_AGE,
        "httponly": True, "secure": COOKIE_SECURE, "samesite": "none", "path": "/",
    }


async def find_or_create_user(session: AsyncSession, user_info: dict, token: dict) -> User:
    google_id = user_info.get('sub')
    if not google_id: raise ValidationFailure("Invalid user info from Google")

    statement = select(User).where(User.googleId == google_id)
    result = await session.execute(statement)
    db_user = result.scalar_one_or_none()

    now = utcnow()
    refresh_token = token.get('refresh_token')

    if db_user:
        db_user.displayName = user_info.get('name')
        db_user.email = user_info.get('email') or db_user.email
        if user_info.get('picture'):
            db_user.photoURL = user_info.get('picture')
        # Google omits the refresh token on repeat consent; keep the stored one.
        if refresh_token:
            db_user.oauth_refresh_token = refresh_token
        db_user.lastLogin = now
    else:
        db_user = User(
            googleId=google_id, email=user_info.get('email') or "", displayName=user_info.get('name'),
            photoURL=user_info.get('picture'), oauth_refresh_token=refresh_token,
            lastLogin=now, createdAt=now,
        )
    session.add(db_user)
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    await session.refresh(db_user)
    return db_user


def establish_session(request: Request, response: Response, user: User) -> None:
    """Bind the server session to the user and set the fallback identity cookie."""
    request.session[SESSION_USER_KEY] = user.id
    response.set_cookie(**auth_cookie_kwargs(create_identity_token(cast(int, user.id))))


def clear_session(request: Request, response: Response) -> None:
    request.session.clear()
    response.delete_cookie(
        AUTH_COOKIE_NAME, path="/", secure=COOKIE_SECURE, httponly=True, samesite="none",
    )


async def resolve_user(request: Request, session: AsyncSession) -> Optional[User]:
    """Resolve the acting user from the server session, then the identity cookie.

    A user found through the cookie gets a fresh server session so the next
    request resolves from the session alone.
    """
    session_user_id = request.session.get(SESSION_USER_KEY)
    if session_user_id is not None:
        user = await session.get(User, int(session_user_id))
        if user is not None:
            return user
        request.session.pop(SESSION_USER_KEY, None)

    cookie_user_id = read_identity_token(request.cookies.get(AUTH_COOKIE_NAME))
    if cookie_user_id is None:
        return None
    user = await session.get(User, cookie_user_id)
    if user is None:
        return None
    request.session[SESSION_USER_KEY] = user.id
    logger.info("Re-established session for user %s from identity cookie", user.id)
    return user


async def get_optional_user(request: Request, session: AsyncSession = Depends(get_session)) -> Optional[User]:
    return await resolve_user(request, session)


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise AuthenticationRequired()
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != Role.admin:
        raise AuthorizationDenied()
    return current_user
