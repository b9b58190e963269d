from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Optional


class SchedulingError(Exception):
    """Base class for scheduling core errors"""


class DateParseError(SchedulingError, ValueError):
    def __init__(self, value, reason: str = "unparseable timestamp"):
        self.value = value
        self.reason = reason
        super().__init__(f"{reason}: {value!r}")


class MissingIdentifierError(SchedulingError, ValueError):
    def __init__(self, operation: str, identifier: str = "appointment id"):
        self.operation = operation
        self.identifier = identifier
        super().__init__(f"Cannot {operation}: {identifier} is missing")


class InvalidTransitionError(SchedulingError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change appointment status from '{current}' to '{requested}'")


class SlotUnavailableError(SchedulingError):
    pass


class AppointmentNotFoundError(SchedulingError):
    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment '{appointment_id}' not found")


class StoreError(SchedulingError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class StoreConflictError(StoreError):
    pass


def create_error_response(error_message: str, status_code: int = 400) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": None,
        "error": error_message
    }


def status_code_for(exc: SchedulingError) -> int:
    if isinstance(exc, (DateParseError, MissingIdentifierError)):
        return 400
    if isinstance(exc, AppointmentNotFoundError):
        return 404
    if isinstance(exc, (InvalidTransitionError, SlotUnavailableError, StoreConflictError)):
        return 409
    if isinstance(exc, StoreError):
        return 502
    return 400


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail, exc.status_code)
    )

async def scheduling_exception_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    """Map scheduling core errors onto the standard error envelope"""
    status_code = status_code_for(exc)
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(str(exc), status_code)
    )
