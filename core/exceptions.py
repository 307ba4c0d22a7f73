from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.requests import Request
from sqlalchemy.exc import IntegrityError, OperationalError
import logging

logger = logging.getLogger(__name__)

class AppException(Exception):
    """Base application exception"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

class ValidationError(AppException):
    """Missing or malformed required input"""
    status_code = status.HTTP_400_BAD_REQUEST

class ConflictError(AppException):
    """Duplicate unique key"""
    status_code = status.HTTP_409_CONFLICT

class AuthError(AppException):
    """Bad credentials or an invalid/expired session token"""
    status_code = status.HTTP_401_UNAUTHORIZED

class ForbiddenError(AuthError):
    """Authenticated caller lacks the role or ownership required"""
    status_code = status.HTTP_403_FORBIDDEN

class NotFoundError(AppException):
    status_code = status.HTTP_404_NOT_FOUND

class InternalError(AppException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(message: str, error: str = None) -> dict:
    body = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return body

async def app_exception_handler(request: Request, exc: AppException):
    """Render a handled application error"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as 400 like other validation failures"""
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()) if part != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid request data", details)
    )

async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity error on {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_body("Duplicate field value entered")
    )

async def database_error_handler(request: Request, exc: OperationalError):
    """Store connection or lock failures surface as an internal error"""
    logger.error(f"Database error on {request.url.path}: {exc.orig}")
    return await app_exception_handler(request, InternalError("Database unavailable"))

async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Server Error", str(exc))
    )

def register_exception_handlers(app) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(OperationalError, database_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
