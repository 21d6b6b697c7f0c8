# backend/services/token_service.py
import os
import logging
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2.credentials import Credentials
from models import User
from errors import AuthorizationDenied, RemoteProviderFailure

logger = logging.getLogger(__name__)

TOKEN_URI = 'https://oauth2.googleapis.com/token'
SCOPES = ['https://www.googleapis.com/auth/drive.file']


def build_credentials(user: User) -> Credentials:
    """Credentials carrying only the stored refresh token; no access token is kept anywhere."""
    if not user.oauth_refresh_token:
        raise AuthorizationDenied("No refresh token found")
    return Credentials(
        token=None, refresh_token=user.oauth_refresh_token,
        token_uri=TOKEN_URI, client_id=os.getenv("GOOGLE_CLIENT_ID"),
        client_secret=os.getenv("GOOGLE_CLIENT_SECRET"), scopes=SCOPES
    )


def refreshed_credentials(user: User) -> Credentials:
    """Exchanges the user's refresh token for a fresh access token, one call to Google each time."""
    creds = build_credentials(user)
    try:
        creds.refresh(GoogleAuthRequest())
    except (GoogleAuthError, OSError) as error:
        # The stored refresh token is left as-is; the user has to re-consent.
        logger.error("Refreshing access token for user %s failed: %s", user.id, error)
        raise RemoteProviderFailure("Failed to refresh access token", cause=error) from error
    return creds


def refresh_access_token(user: User) -> dict:
    creds = refreshed_credentials(user)
    return {
        "access_token": creds.token,
        "expires_in": creds.expiry.replace(microsecond=0).isoformat() + "Z" if creds.expiry else None,
    }
