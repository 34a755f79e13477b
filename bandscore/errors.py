"""Error taxonomy.

Request-level failures subclass ``HTTPException`` so they can be raised from
the service and CRUD layers and reach the client with their reason intact.
Oracle and transcription failures are plain exceptions that never leave the
subjective scoring code.
"""

from fastapi import HTTPException, status


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class Unauthenticated(HTTPException):
    def __init__(self, detail: str = "Missing credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class Conflict(HTTPException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class BadRequest(HTTPException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class OracleFailure(Exception):
    """The external scoring provider could not produce a usable result."""


class TranscriptionFailure(Exception):
    """An audio answer could not be turned into text."""
