# backend/services/content_service.py
"""Local content records with a best-effort Google Drive mirror.

The local database is always written first. Drive failures are reported in the
returned payload (``googleDriveStatus`` / ``syncStatus``) and never undo a
local change.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from models import Content, UploadKind, User, utcnow
from errors import RemoteProviderFailure, ValidationFailure
from services import drive_service

logger = logging.getLogger(__name__)


def _dump(record: Content) -> dict:
    return record.model_dump(mode="json")


async def _save(session: AsyncSession, record: Content) -> Content:
    session.add(record)
    await session.commit()
    await session.refresh(record)
    return record


async def _get_owned(session: AsyncSession, owner_id: int, content_id: int) -> Content:
    result = await session.execute(
        select(Content).where(Content.id == content_id, Content.ownerId == owner_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise HTTPException(status_code=404, detail="Content not found or you don't have permission to access it")
    return record


def _parse_drive_time(value: Optional[str]) -> datetime:
    if not value:
        return utcnow()
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed.astimezone(timezone.utc)


async def _create(session: AsyncSession, user: User, record: Content, upload) -> dict:
    await _save(session, record)
    if not user.oauth_refresh_token:
        logger.warning("User %s has no refresh token. Content %s kept locally only.", user.id, record.id)
        return {"message": "Content created successfully (local only)", "content": _dump(record),
                "googleDriveStatus": "not_saved"}
    try:
        service = drive_service.get_drive_service(user)
        folder_id = await drive_service.ensure_letters_folder(service)
        drive_file = await upload(service, folder_id)
    except RemoteProviderFailure as error:
        logger.warning("Mirroring content %s to Google Drive failed: %s", record.id, error)
        return {"message": "Content created locally (Google Drive save failed)", "content": _dump(record),
                "googleDriveStatus": "failed", "googleDriveError": str(error)}

    record.remoteFileId = drive_file['id']
    record.remoteFileUrl = drive_file.get('webViewLink')
    record.updatedAt = utcnow()
    await _save(session, record)
    return {"message": "Content created and saved to Google Drive successfully", "content": _dump(record),
            "googleDriveStatus": "saved"}


async def create_text_content(session: AsyncSession, user: User, title: str, content: str) -> dict:
    title, content = (title or "").strip(), (content or "").strip()
    if not title or not content:
        raise ValidationFailure("Title and content are required")
    record = Content(ownerId=user.id, title=title, description=content,
                     uploadKind=UploadKind.text, mimeType="text/plain")

    async def upload(service, folder_id):
        return await drive_service.upload_text(service, title, content, folder_id)

    return await _create(session, user, record, upload)


async def create_file_content(session: AsyncSession, user: User, title: str, data: bytes,
                              file_name: Optional[str], mime_type: Optional[str],
                              description: Optional[str] = None) -> dict:
    title = (title or "").strip()
    if not title:
        raise ValidationFailure("Title is required")
    if not data:
        raise ValidationFailure("A non-empty file is required")
    mime_type = mime_type or "application/octet-stream"
    record = Content(ownerId=user.id, title=title, description=(description or "").strip(),
                     uploadKind=UploadKind.file, mimeType=mime_type, fileName=file_name)

    async def upload(service, folder_id):
        return await drive_service.upload_file(service, title, data, mime_type, folder_id)

    return await _create(session, user, record, upload)


async def list_content(session: AsyncSession, user: User) -> dict:
    result = await session.execute(
        select(Content).where(Content.ownerId == user.id).order_by(Content.createdAt.desc(), Content.id.desc())
    )
    records = result.scalars().all()
    items = [_dump(r) for r in records]

    if not user.oauth_refresh_token:
        return {"content": items, "syncStatus": "no_auth"}
    try:
        service = drive_service.get_drive_service(user)
        folder_id = await drive_service.find_letters_folder(service)
        drive_files = await drive_service.list_files(service)
    except RemoteProviderFailure as error:
        logger.warning("Fetching Google Drive listing for user %s failed: %s", user.id, error)
        return {"content": items, "syncStatus": "failed", "syncError": str(error)}

    live_ids = {f['id'] for f in drive_files}
    for item in items:
        remote_id = item.get("remoteFileId")
        if not remote_id:
            item["remoteStatus"] = "local_only"
        else:
            item["remoteStatus"] = "synced" if remote_id in live_ids else "missing"
    return {"content": items, "driveFilesCount": len(drive_files), "lettersFolderId": folder_id,
            "syncStatus": "success"}


async def get_content(session: AsyncSession, user: User, content_id: int) -> dict:
    record = await _get_owned(session, user.id, content_id)
    return {"content": _dump(record), "googleDriveStatus": "linked" if record.remoteFileId else "not_linked"}


async def update_content(session: AsyncSession, user: User, content_id: int,
                         title: Optional[str] = None, content: Optional[str] = None) -> dict:
    if title is None and content is None:
        raise ValidationFailure("Nothing to update")
    if title is not None and not title.strip():
        raise ValidationFailure("Title cannot be empty")
    if content is not None:
        content = content.strip()
        if not content:
            raise ValidationFailure("Content cannot be empty")
    record = await _get_owned(session, user.id, content_id)
    if title is not None:
        record.title = title.strip()
    if content is not None:
        record.description = content
    record.updatedAt = utcnow()
    await _save(session, record)

    status = "not_applicable"
    payload = {"message": "Content updated successfully", "content": _dump(record)}
    if record.remoteFileId and user.oauth_refresh_token:
        body = content if record.uploadKind == UploadKind.text else None
        try:
            service = drive_service.get_drive_service(user)
            await drive_service.update_file(service, record.remoteFileId, title=title and record.title, content=body)
            status = "updated"
        except RemoteProviderFailure as error:
            logger.warning("Updating Drive file %s failed: %s", record.remoteFileId, error)
            status = "update_failed"
            payload["googleDriveError"] = str(error)
    payload["googleDriveStatus"] = status
    return payload


async def delete_content(session: AsyncSession, user: User, content_id: int) -> dict:
    record = await _get_owned(session, user.id, content_id)

    status = "not_applicable"
    if record.remoteFileId and user.oauth_refresh_token:
        try:
            service = drive_service.get_drive_service(user)
            await drive_service.delete_file(service, record.remoteFileId)
            status = "deleted"
        except RemoteProviderFailure as error:
            # Local delete goes ahead; the Drive file may be left orphaned.
            logger.warning("Deleting Drive file %s failed: %s", record.remoteFileId, error)
            status = "delete_failed"

    await session.delete(record)
    await session.commit()
    return {"message": "Content deleted successfully", "googleDriveStatus": status}


async def _is_imported(session: AsyncSession, owner_id: int, remote_file_id: str) -> bool:
    result = await session.execute(
        select(Content.id).where(Content.ownerId == owner_id, Content.remoteFileId == remote_file_id)
    )
    return result.first() is not None


async def sync_drive(session: AsyncSession, user: User) -> dict:
    """Imports Drive files that have no local record yet. Remote to local only."""
    if not user.oauth_refresh_token:
        raise ValidationFailure("Google Drive access not available. Please re-authenticate with Google.")
    owner_id = user.id

    service = drive_service.get_drive_service(user)
    drive_files = await drive_service.list_files(service)

    new_count, existing_count = 0, 0
    for drive_file in drive_files:
        if await _is_imported(session, owner_id, drive_file['id']):
            existing_count += 1
            continue
        mime_type = drive_file.get('mimeType')
        modified = _parse_drive_time(drive_file.get('modifiedTime'))
        session.add(Content(
            ownerId=owner_id, title=drive_file.get('name') or drive_file['id'],
            description=f"Imported from Google Drive ({drive_file['id']})",
            uploadKind=UploadKind.text if mime_type == drive_service.DOCUMENT_MIME_TYPE else UploadKind.file,
            mimeType=mime_type, remoteFileId=drive_file['id'], remoteFileUrl=drive_file.get('webViewLink'),
            createdAt=modified, updatedAt=modified,
        ))
        try:
            await session.commit()
            new_count += 1
        except IntegrityError:
            # Another sync imported it between the check and the insert.
            await session.rollback()
            existing_count += 1

    logger.info("Drive sync for user %s: %d new, %d existing", owner_id, new_count, existing_count)
    return {"message": "Google Drive sync completed successfully", "totalDriveFiles": len(drive_files),
            "newFilesImported": new_count, "existingFiles": existing_count}
