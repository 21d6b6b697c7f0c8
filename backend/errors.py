# backend/errors.py
from fastapi import HTTPException, status


class AuthenticationRequired(HTTPException):
    """No identity could be resolved for the request."""
    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class AuthorizationDenied(HTTPException):
    """The identity is known but lacks the grant the operation needs."""
    def __init__(self, detail: str = "Insufficient permissions"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ValidationFailure(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class RemoteProviderFailure(Exception):
    """A call to Google (token endpoint or Drive API) failed.

    Content operations downgrade this to a status field; it never aborts a
    local write.
    """
    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause
