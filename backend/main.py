# backend/main.py
import os
import logging
from contextlib import asynccontextmanager
from typing import Optional
from dotenv import load_dotenv
from fastapi import FastAPI, Depends, Request, HTTPException, File, Form, UploadFile, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from starlette.middleware.sessions import SessionMiddleware
from starlette.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from database import create_db_and_tables, get_session
from models import User, UserRead
from auth import (
    oauth, AUTH_COOKIE_MAX_AGE, COOKIE_SECURE, clear_session, establish_session,
    find_or_create_user, get_current_user, require_admin,
)
from errors import RemoteProviderFailure
from services import content_service, token_service

load_dotenv()
logging.basicConfig(
    level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    format="%(levelname)s:     %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

CLIENT_URL = os.getenv("CLIENT_URL")
SESSION_SECRET_KEY = os.getenv("JWT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI")
if not CLIENT_URL or not SESSION_SECRET_KEY:
    raise ValueError("CLIENT_URL and JWT_SECRET must be set in .env file!")

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up and creating database tables...")
    await create_db_and_tables()
    logger.info("Startup complete.")
    yield

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware, allow_origins=[CLIENT_URL], allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Cookie"],
)
# Cross-site frontend: the session cookie must be SameSite=None (and therefore Secure).
app.add_middleware(
    SessionMiddleware, secret_key=SESSION_SECRET_KEY, max_age=AUTH_COOKIE_MAX_AGE,
    same_site="none", https_only=COOKIE_SECURE,
)

# --- Pydantic Models ---
class TextContentRequest(BaseModel): title: str; content: str
class UpdateContentRequest(BaseModel): title: Optional[str] = None; content: Optional[str] = None

# --- Auth Routes ---
@app.get("/auth/google")
async def login(request: Request):
    assert oauth.google is not None
    redirect_uri = GOOGLE_REDIRECT_URI or request.url_for('auth_callback')
    return await oauth.google.authorize_redirect(request, redirect_uri)

@app.get("/auth/google/callback", name="auth_callback")
async def auth_callback(request: Request, session: AsyncSession = Depends(get_session)):
    try:
        assert oauth.google is not None
        token = await oauth.google.authorize_access_token(request)
        user_info = token.get('userinfo') or {}
        db_user = await find_or_create_user(session, user_info, token)
    except Exception as e:
        logger.error("Google authentication failed: %s", e)
        return RedirectResponse(url=f"{CLIENT_URL}/login?error=auth_failed")
    logger.info("User %s logged in", db_user.id)
    response = RedirectResponse(url=f"{CLIENT_URL}/dashboard")
    establish_session(request, response, db_user)
    return response

@app.get("/auth/logout")
async def logout(request: Request):
    response = JSONResponse({"message": "Logged out successfully"})
    clear_session(request, response)
    return response

@app.get("/auth/user")
async def get_user(current_user: User = Depends(get_current_user)):
    return {"user": UserRead.model_validate(current_user, from_attributes=True)}

@app.get("/auth/refresh-token")
async def refresh_token(current_user: User = Depends(get_current_user)):
    try:
        return token_service.refresh_access_token(current_user)
    except RemoteProviderFailure:
        raise HTTPException(status_code=500, detail="Failed to refresh access token")

@app.get("/auth/users", response_model=list[UserRead])
async def list_users(admin: User = Depends(require_admin), session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(User).order_by(User.createdAt))
    return result.scalars().all()

# --- Drive / Content Routes ---
@app.post("/drive/upload", status_code=status.HTTP_201_CREATED)
async def create_text_content(
    request: TextContentRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    return await content_service.create_text_content(session, current_user, request.title, request.content)

@app.post("/drive/upload/file", status_code=status.HTTP_201_CREATED)
async def create_file_content(
    title: str = Form(...),
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    data = await file.read()
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File is too large. Maximum size is 10MB")
    return await content_service.create_file_content(
        session, current_user, title, data, file_name=file.filename,
        mime_type=file.content_type, description=description
    )

@app.get("/drive/files")
async def list_content(current_user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    return await content_service.list_content(session, current_user)

@app.get("/drive/files/{content_id}")
async def get_content(
    content_id: int, current_user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)
):
    return await content_service.get_content(session, current_user, content_id)

@app.put("/drive/content/{content_id}")
async def update_content(
    content_id: int,
    request: UpdateContentRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    return await content_service.update_content(
        session, current_user, content_id, title=request.title, content=request.content
    )

@app.delete("/drive/{content_id}")
async def delete_content(
    content_id: int, current_user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)
):
    return await content_service.delete_content(session, current_user, content_id)

@app.post("/drive/sync-drive")
async def sync_drive(current_user: User = Depends(get_current_user), session: AsyncSession = Depends(get_session)):
    try:
        return await content_service.sync_drive(session, current_user)
    except RemoteProviderFailure as e:
        logger.error("Google Drive sync failed for user %s: %s", current_user.id, e)
        raise HTTPException(status_code=500, detail=f"Google Drive sync failed: {e}")

@app.get("/")
async def read_root():
    return {"message": "Warranty letters backend is running!"}
