from fastapi import HTTPException, status
from typing import Optional

# Starlette has renamed its 422 constant; the literal is stable
HTTP_422_UNPROCESSABLE = 422


class ExperimentServiceError(Exception):
    """Base class for every error the experiment core reports to its callers"""

    code = "experiment_error"
    http_status = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        details = {
            key: value if value is None or isinstance(value, (str, int, float, bool)) else str(value)
            for key, value in self.context.items()
        }
        return {"code": self.code, "message": self.message, **details}


class TierLimitExceeded(ExperimentServiceError):
    code = "tier_limit_exceeded"
    http_status = status.HTTP_403_FORBIDDEN


class OutOfWindow(ExperimentServiceError):
    code = "out_of_window"
    http_status = HTTP_422_UNPROCESSABLE


class ExperimentNotActive(ExperimentServiceError):
    code = "experiment_not_active"
    http_status = status.HTTP_409_CONFLICT


class MissingNextAction(ExperimentServiceError):
    code = "missing_next_action"
    http_status = HTTP_422_UNPROCESSABLE


class AlreadyCompleted(ExperimentServiceError):
    code = "already_completed"
    http_status = status.HTTP_409_CONFLICT


class NotFound(ExperimentServiceError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class InvalidInput(ExperimentServiceError):
    code = "invalid_input"
    http_status = HTTP_422_UNPROCESSABLE


class StoreUnavailable(ExperimentServiceError):
    """Transient store failure (timeout, dropped connection). The only kind worth retrying."""

    code = "store_unavailable"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


def to_http_exception(error: ExperimentServiceError, retry_after_seconds: Optional[int] = 5) -> HTTPException:
    """Convert a core error into the HTTPException the API returns"""
    headers = None
    if error.retryable and retry_after_seconds:
        headers = {"Retry-After": str(retry_after_seconds)}
    return HTTPException(
        status_code=error.http_status,
        detail=error.to_dict(),
        headers=headers,
    )
