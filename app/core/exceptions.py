from typing import Any

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found", code: str = "NOT_FOUND", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, status_code=status.HTTP_404_NOT_FOUND, details=details)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", code: str = "CONFLICT", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", code: str = "BAD_REQUEST", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, status_code=status.HTTP_400_BAD_REQUEST, details=details)


# Credits


class InvalidAmountError(BadRequestError):
    def __init__(self, amount: Any):
        super().__init__("Invalid credit amount", code="INVALID_AMOUNT", details={"amount": repr(amount)})


class InsufficientCreditsError(AppError):
    def __init__(self, required: int, balance: int | None = None):
        details: dict[str, Any] = {"required": required}
        if balance is not None:
            details["balance"] = balance
        super().__init__(
            "Insufficient credits",
            code="INSUFFICIENT_CREDITS",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            details=details,
        )


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: Any = None):
        super().__init__("User not found", code="USER_NOT_FOUND", details={"user_id": str(user_id)} if user_id else None)


# Webhooks


class UnverifiedEventError(AppError):
    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, code="UNVERIFIED_EVENT", status_code=status.HTTP_401_UNAUTHORIZED)


class UnknownCustomerError(AppError):
    def __init__(self, message: str = "No external customer id found", details: dict[str, Any] | None = None):
        super().__init__(
            message,
            code="UNKNOWN_CUSTOMER",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class UnknownProductError(AppError):
    def __init__(self, product: str | None):
        super().__init__(
            "Unknown product",
            code="UNKNOWN_PRODUCT",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"product": product},
        )


# Projects and transformations


class NotFoundOrForbiddenError(NotFoundError):
    def __init__(self, message: str = "Project not found or access denied"):
        super().__init__(message, code="NOT_FOUND_OR_FORBIDDEN")


class TransformationAlreadyAppliedError(ConflictError):
    def __init__(self, kind: str):
        super().__init__(
            f"Transformation already applied: {kind}",
            code="TRANSFORMATION_ALREADY_APPLIED",
            details={"kind": kind},
        )


class EmptyInputError(BadRequestError):
    def __init__(self, field: str):
        super().__init__(f"{field} must not be empty", code="EMPTY_INPUT", details={"field": field})


class InvalidLabelError(BadRequestError):
    def __init__(self, label: str):
        super().__init__(
            "Label may only contain letters, digits, spaces, '_' and '-'",
            code="INVALID_LABEL",
            details={"label": label},
        )


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "success": False,
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        },
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "success": False,
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from app.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "success": False,
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        },
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
