from __future__ import annotations

from enum import Enum

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    # validation
    missing_fields = "missing_fields"
    invalid_dates = "invalid_dates"
    invalid_discount = "invalid_discount"
    validation_error = "validation_error"
    already_cancelled = "already_cancelled"
    vehicle_not_found = "vehicle_not_found"
    # lookup
    not_found = "not_found"
    # conflicts
    reservation_conflict = "reservation_conflict"
    duplicate_code = "duplicate_code"
    # auth
    unauthorized = "unauthorized"
    forbidden = "forbidden"


_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.missing_fields: status.HTTP_400_BAD_REQUEST,
    ErrorCode.invalid_dates: status.HTTP_400_BAD_REQUEST,
    ErrorCode.invalid_discount: status.HTTP_400_BAD_REQUEST,
    ErrorCode.validation_error: status.HTTP_400_BAD_REQUEST,
    ErrorCode.already_cancelled: status.HTTP_400_BAD_REQUEST,
    ErrorCode.vehicle_not_found: status.HTTP_400_BAD_REQUEST,
    ErrorCode.not_found: status.HTTP_404_NOT_FOUND,
    ErrorCode.reservation_conflict: status.HTTP_409_CONFLICT,
    ErrorCode.duplicate_code: status.HTTP_409_CONFLICT,
    ErrorCode.unauthorized: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.forbidden: status.HTTP_403_FORBIDDEN,
}


def status_for(code: ErrorCode) -> int:
    return _STATUS_BY_CODE[code]


class ApiError(HTTPException):
    """
    HTTPException with a machine-checkable error code.

    Response body: {"detail": {"error": "<code>", "message": "<text>"}}
    """

    def __init__(self, code: ErrorCode, message: str, headers: dict[str, str] | None = None):
        super().__init__(
            status_code=status_for(code),
            detail={"error": code.value, "message": message},
            headers=headers,
        )
        self.code = code
        self.message = message
