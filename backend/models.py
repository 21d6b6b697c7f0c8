# backend/models.py
from enum import Enum
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    user = "user"
    admin = "admin"


class UploadKind(str, Enum):
    text = "text"
    file = "file"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    googleId: str = Field(unique=True, index=True)
    email: str = Field(default="")
    displayName: Optional[str] = Field(default=None)
    photoURL: Optional[str] = Field(default=None, max_length=512)
    role: Role = Field(default=Role.user)
    # Never serialized back to the client; see UserRead.
    oauth_refresh_token: Optional[str] = Field(default=None, max_length=2048)
    lastLogin: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    createdAt: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class UserRead(SQLModel):
    id: int
    displayName: Optional[str] = None
    email: str
    photoURL: Optional[str] = None
    role: Role


class Content(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("ownerId", "remoteFileId", name="uq_content_owner_remote_file"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    ownerId: int = Field(foreign_key="user.id", index=True)
    title: str
    description: str = Field(default="", sa_column=Column(Text, nullable=False, default=""))
    uploadKind: UploadKind = Field(default=UploadKind.text)
    remoteFileId: Optional[str] = Field(default=None, index=True)
    remoteFileUrl: Optional[str] = Field(default=None, max_length=1024)
    mimeType: Optional[str] = Field(default=None)
    fileName: Optional[str] = Field(default=None)
    createdAt: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updatedAt: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
