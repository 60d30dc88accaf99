from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger


class ServiceError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(ServiceError):
    status_code = 422


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ProfileNotFoundError(NotFoundError):
    pass


class ReferralNotFoundError(NotFoundError):
    pass


class RuleNotFoundError(NotFoundError):
    pass


class CatalogItemNotFoundError(NotFoundError):
    pass


class RedemptionNotFoundError(NotFoundError):
    pass


class InsufficientBalanceError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class InvalidStateTransitionError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class IdempotencyConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class StoreError(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class AuthenticationError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDeniedError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def _service_error_handler(request: Request, exc: ServiceError):
        logger.bind(path=request.url.path, error=type(exc).__name__).warning(exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.message, "error": type(exc).__name__},
        )

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.bind(path=request.url.path).opt(exception=exc).error("Unhandled error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Internal server error"},
        )
