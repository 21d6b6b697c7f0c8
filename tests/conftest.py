"""
Pytest config.

The backend is a flat set of modules (`main`, `auth`, `models`, ...) living in
`backend/`. Put that directory on sys.path and provide the environment the
modules read at import time before anything imports them.
"""

from __future__ import annotations

import asyncio
import os
import sys
import tempfile
from pathlib import Path

import pytest


def _ensure_backend_on_syspath() -> None:
    backend_dir = str(Path(__file__).resolve().parents[1] / "backend")
    if backend_dir not in sys.path:
        sys.path.insert(0, backend_dir)


_ensure_backend_on_syspath()

_DB_DIR = tempfile.mkdtemp(prefix="warranty-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-purposes-only"
os.environ["CLIENT_URL"] = "https://frontend.example"
os.environ["COOKIE_SECURE"] = "true"
os.environ.pop("GOOGLE_REDIRECT_URI", None)

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import select  # noqa: E402

import database  # noqa: E402
from models import Content, Role, User  # noqa: E402


def run(coro):
    return asyncio.run(coro)


async def _reset_db() -> None:
    await database.drop_db_and_tables()
    await database.create_db_and_tables()


@pytest.fixture()
def client():
    from main import app

    run(_reset_db())
    with TestClient(app, base_url="https://testserver") as c:
        yield c


def create_user(
    google_id: str = "google-1",
    *,
    refresh_token: str | None = None,
    role: Role = Role.user,
    email: str = "owner@example.com",
) -> int:
    async def _create() -> int:
        async with database.AsyncSessionLocal() as session:
            user = User(googleId=google_id, email=email, displayName="Owner", role=role,
                        oauth_refresh_token=refresh_token)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user.id

    return run(_create())


def load_user(user_id: int) -> User | None:
    async def _load():
        async with database.AsyncSessionLocal() as session:
            return await session.get(User, user_id)

    return run(_load())


def all_users() -> list[User]:
    async def _load():
        async with database.AsyncSessionLocal() as session:
            return list((await session.execute(select(User))).scalars().all())

    return run(_load())


def all_contents() -> list[Content]:
    async def _load():
        async with database.AsyncSessionLocal() as session:
            return list((await session.execute(select(Content).order_by(Content.id))).scalars().all())

    return run(_load())


def login_with_cookie(c: TestClient, user_id: int) -> None:
    """Authenticate through the fallback identity cookie only."""
    from auth import AUTH_COOKIE_NAME, create_identity_token

    c.cookies.set(AUTH_COOKIE_NAME, create_identity_token(user_id))


class FakeDrive:
    """In-memory stand-in for the Drive calls made by services.content_service."""

    def __init__(self) -> None:
        self.files: dict[str, dict] = {}
        self.fail: set[str] = set()
        self.calls: list[str] = []
        self._next = 0
        self.folder_id: str | None = None

    def _check(self, op: str) -> None:
        from errors import RemoteProviderFailure

        self.calls.append(op)
        if op in self.fail:
            raise RemoteProviderFailure(f"{op} failed")

    def add_remote(self, name: str, mime_type: str = "application/pdf") -> str:
        self._next += 1
        file_id = f"drive-{self._next}"
        self.files[file_id] = {
            "id": file_id, "name": name, "mimeType": mime_type,
            "webViewLink": f"https://drive.example/{file_id}", "modifiedTime": "2024-03-01T10:00:00.000Z",
        }
        return file_id

    # patched functions

    def get_drive_service(self, user):
        self._check("service")
        return self

    async def find_letters_folder(self, service):
        self._check("find_folder")
        return self.folder_id

    async def ensure_letters_folder(self, service):
        self._check("folder")
        self.folder_id = self.folder_id or "folder-1"
        return self.folder_id

    async def upload_text(self, service, title, content, folder_id=None):
        self._check("upload_text")
        return self.files[self.add_remote(title, "application/vnd.google-apps.document")]

    async def upload_file(self, service, title, data, mime_type, folder_id=None):
        self._check("upload_file")
        return self.files[self.add_remote(title, mime_type)]

    async def list_files(self, service):
        self._check("list")
        return list(self.files.values())

    async def update_file(self, service, file_id, title=None, content=None):
        self._check("update")
        if title:
            self.files[file_id]["name"] = title
        return self.files[file_id]

    async def delete_file(self, service, file_id):
        self._check("delete")
        self.files.pop(file_id, None)
        return True


@pytest.fixture()
def fake_drive(monkeypatch: pytest.MonkeyPatch) -> FakeDrive:
    from services import drive_service

    fake = FakeDrive()
    for name in ("get_drive_service", "find_letters_folder", "ensure_letters_folder", "upload_text", "upload_file",
                 "list_files", "update_file", "delete_file"):
        monkeypatch.setattr(drive_service, name, getattr(fake, name))
    return fake
