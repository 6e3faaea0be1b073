from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional


class APIException(HTTPException):
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)


class SchedulingError(APIException):
    """Base class for every guard failure raised by the scheduling core.

    ``code`` is stable and machine-readable; ``detail`` names the rule that was
    violated so it can be shown to the user as-is.
    """

    code = "scheduling_error"
    default_status = 400

    def __init__(self, detail: str, status_code: Optional[int] = None, **extra: Any):
        super().__init__(status_code=status_code or self.default_status, detail=detail)
        self.extra: Dict[str, Any] = extra


class NotFound(SchedulingError):
    code = "not_found"
    default_status = 404


class Unauthorized(SchedulingError):
    code = "unauthorized"
    default_status = 403


class ValidationFailed(SchedulingError):
    code = "validation_failed"
    default_status = 400


class InvalidTransition(SchedulingError):
    code = "invalid_transition"
    default_status = 409

    def __init__(self, current: str, attempted: str, detail: Optional[str] = None, **extra: Any):
        self.current = current
        self.attempted = attempted
        message = detail or f"Cannot move appointment from {current} to {attempted}"
        super().__init__(message, current=current, attempted=attempted, **extra)


class TimingViolation(SchedulingError):
    code = "timing_violation"
    default_status = 400


class SlotUnavailable(SchedulingError):
    code = "slot_unavailable"
    default_status = 400


class PaymentStateConflict(SchedulingError):
    code = "payment_state_conflict"
    default_status = 409


class DuplicateRequest(SchedulingError):
    code = "duplicate_request"
    default_status = 409


class StaleAppointmentError(Exception):
    """Raised by repositories when a compare-and-set write loses a race."""

    def __init__(self, appointment_id: int):
        super().__init__(f"Appointment {appointment_id} was modified concurrently")
        self.appointment_id = appointment_id


def create_error_response(error_message: str, status_code: int = 400, code: Optional[str] = None, extra: Optional[dict] = None) -> dict:
    """Create a standardized error response"""
    body = {
        "success": False,
        "data": None,
        "error": error_message,
    }
    if code:
        body["code"] = code
    if extra:
        body["details"] = extra
    return body

def create_success_response(data: Any) -> dict:
    """Create a standardized success response"""
    return {
        "success": True,
        "data": data,
        "error": None
    }

async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    # Convert 403 from HTTPBearer to 401 for missing authentication
    if exc.status_code == 403 and "Not authenticated" in str(exc.detail):
        return JSONResponse(
            status_code=401,
            content=create_error_response("Authentication required", 401)
        )

    if isinstance(exc, SchedulingError):
        return JSONResponse(
            status_code=exc.status_code,
            content=create_error_response(exc.detail, exc.status_code, code=exc.code, extra=exc.extra or None)
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail, exc.status_code)
    )
