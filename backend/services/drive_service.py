# backend/services/drive_service.py
import io
import logging
from typing import Optional
import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload
from models import User
from errors import RemoteProviderFailure
from services import token_service

logger = logging.getLogger(__name__)

# Anything the transport can raise besides an API error response (DNS, timeouts, resets).
DRIVE_ERRORS = (HttpError, httplib2.HttpLib2Error, OSError)

LETTERS_FOLDER_NAME = "Warranty Letters"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DOCUMENT_MIME_TYPE = "application/vnd.google-apps.document"
FILE_FIELDS = "id, name, mimeType, webViewLink, modifiedTime"


def get_drive_service(user: User):
    """Builds a Drive v3 client from a freshly refreshed access token."""
    creds = token_service.refreshed_credentials(user)
    try:
        return build('drive', 'v3', credentials=creds, static_discovery=False, cache_discovery=False)
    except DRIVE_ERRORS as error:
        raise RemoteProviderFailure(f"Could not build the Drive service: {error}", cause=error) from error


async def find_letters_folder(service) -> Optional[str]:
    """Looks the letters folder up without creating it."""
    query = f"mimeType='{FOLDER_MIME_TYPE}' and name='{LETTERS_FOLDER_NAME}' and trashed=false"
    try:
        found = service.files().list(q=query, spaces='drive', fields='files(id, name)', pageSize=1).execute()
    except DRIVE_ERRORS as error:
        raise RemoteProviderFailure(f"Could not look up the letters folder: {error}", cause=error) from error
    folders = found.get('files', [])
    return folders[0]['id'] if folders else None


async def ensure_letters_folder(service) -> str:
    folder_id = await find_letters_folder(service)
    if folder_id:
        return folder_id
    try:
        folder = service.files().create(
            body={'name': LETTERS_FOLDER_NAME, 'mimeType': FOLDER_MIME_TYPE}, fields='id'
        ).execute()
        logger.info("Created Drive folder '%s' (%s)", LETTERS_FOLDER_NAME, folder['id'])
        return folder['id']
    except DRIVE_ERRORS as error:
        raise RemoteProviderFailure(f"Could not prepare the letters folder: {error}", cause=error) from error


async def upload_text(service, title: str, content: str, folder_id: Optional[str] = None) -> dict:
    """Saves a letter as a Google Doc."""
    metadata: dict = {'name': title, 'mimeType': DOCUMENT_MIME_TYPE}
    if folder_id:
        metadata['parents'] = [folder_id]
    media = MediaIoBaseUpload(io.BytesIO(content.encode('utf-8')), mimetype='text/plain', resumable=False)
    try:
        return service.files().create(body=metadata, media_body=media, fields=FILE_FIELDS).execute()
    except DRIVE_ERRORS as error:
        raise RemoteProviderFailure(str(error), cause=error) from error


async def upload_file(service, title: str, data: bytes, mime_type: str, folder_id: Optional[str] = None) -> dict:
    metadata: dict = {'name': title}
    if folder_id:
        metadata['parents'] = [folder_id]
    media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type or 'application/octet-stream', resumable=False)
    try:
        return service.files().create(body=metadata, media_body=media, fields=FILE_FIELDS).execute()
    except DRIVE_ERRORS as error:
        raise RemoteProviderFailure(str(error), cause=error) from error


async def list_files(service) -> list:
    """Every non-folder file visible to the app, following nextPageToken to the end."""
    query = f"trashed=false and mimeType!='{FOLDER_MIME_TYPE}'"
    files, page_token = [], None
    try:
        while True:
            page = service.files().list(
                q=query, spaces='drive', orderBy='modifiedTime desc', pageSize=100,
                fields=f'nextPageToken, files({FILE_FIELDS})', pageToken=page_token
            ).execute()
            files.extend(page.get('files', []))
            page_token = page.get('nextPageToken')
            if not page_token:
                return files
    except DRIVE_ERRORS as error:
        raise RemoteProviderFailure(str(error), cause=error) from error


async def update_file(service, file_id: str, title: Optional[str] = None, content: Optional[str] = None) -> dict:
    metadata = {'name': title} if title else {}
    media = None
    if content is not None:
        media = MediaIoBaseUpload(io.BytesIO(content.encode('utf-8')), mimetype='text/plain', resumable=False)
    try:
        return service.files().update(fileId=file_id, body=metadata, media_body=media, fields=FILE_FIELDS).execute()
    except DRIVE_ERRORS as error:
        raise RemoteProviderFailure(str(error), cause=error) from error


async def delete_file(service, file_id: str) -> bool:
    try:
        service.files().delete(fileId=file_id).execute()
        return True
    except DRIVE_ERRORS as error:
        raise RemoteProviderFailure(str(error), cause=error) from error
