"""
Error taxonomy for the LocalAid API.

Each error is an HTTPException so services can raise it directly and FastAPI
turns it into a `{"detail": ...}` JSON response with the matching status.
"""
from fastapi import HTTPException


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Invalid data"):
        super().__init__(status_code=400, detail=detail)


class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Not authorized", status_code: int = 401):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=400, detail=detail)


class UpstreamError(HTTPException):
    # the upstream cause is logged by the caller, clients only see the generic message
    def __init__(self, detail: str = "Upstream service failed"):
        super().__init__(status_code=500, detail=detail)
