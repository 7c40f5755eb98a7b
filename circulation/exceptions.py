from typing import Dict, List, Optional
from fastapi import Request, status
from fastapi.responses import JSONResponse


class CirculationError(Exception):
    """Base error raised by the circulation services.
    Carries the HTTP status the API layer should answer with."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict:
        return {"detail": self.message}


class ValidationFailed(CirculationError):
    """Missing or invalid input, reported per field."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, errors: List[Dict[str, str]], message: str = "Invalid input"):
        super().__init__(message)
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationFailed":
        return cls([{"field": field, "message": message}], message=message)

    def to_dict(self) -> Dict:
        return {"detail": self.message, "errors": self.errors}


class StateConflict(CirculationError):
    """Operation not allowed in the record's current state."""
    status_code = status.HTTP_409_CONFLICT


class NotFound(CirculationError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDenied(CirculationError):
    status_code = status.HTTP_403_FORBIDDEN


async def circulation_error_handler(request: Request, exc: CirculationError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
