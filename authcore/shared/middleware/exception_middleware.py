# authcore/shared/middleware/exception_middleware.py (async version)

"""
Middleware for centralized exception handling.

Exceptions that escape a route handler are turned into JSON bodies of the
form ``{"error": ..., "code": ...}``.
"""

import logging
import time
import traceback
from typing import Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from jose.exceptions import ExpiredSignatureError, JOSEError
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from authcore.adapters.configuration.config import settings
from authcore.domain.exceptions import (
    AuthCoreException,
    AuthenticationError,
    StoreUnavailableError,
)

# Configure logger
logger = logging.getLogger(__name__)


def _client(request: Request) -> str:
    return request.client.host if request.client else "N/A"


class AsyncExceptionMiddleware(BaseHTTPMiddleware):
    """
    Middleware for centralized exception handling.
    Captures specific exceptions and formats the response accordingly.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            response.headers["X-Process-Time"] = str(process_time)
            return response

        except AuthenticationError as exc:
            logger.warning(
                f"Authentication error: {exc.message} | Type: {exc.error_type.value} | "
                f"Path: {request.url.path}"
            )
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.message, "code": exc.error_type.value},
            )

        except StoreUnavailableError as exc:
            logger.error(f"Store unavailable: {exc.original_error or exc} | Path: {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"error": "Service temporarily unavailable", "code": exc.internal_code},
            )

        except AuthCoreException as exc:
            logger.warning(
                f"Domain exception: {str(exc)} | Code: {exc.internal_code} | "
                f"Path: {request.url.path}"
            )
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": str(exc), "code": exc.internal_code},
            )

        except SQLAlchemyError as exc:
            if settings.is_production:
                error_message = "Internal database error"
                logger.error(
                    f"Database error: Type={type(exc).__name__} | "
                    f"Path: {request.url.path} | Client: {_client(request)}"
                )
            else:
                error_message = str(exc)
                logger.error(
                    f"Database error: {str(exc)} | "
                    f"Path: {request.url.path} | Client: {_client(request)}"
                )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": error_message, "code": "DATABASE_ERROR"},
            )

        except JOSEError as exc:
            error_type = "Expired token" if isinstance(exc, ExpiredSignatureError) else "Invalid token"
            logger.warning(
                f"Authentication error: {error_type} | Type={type(exc).__name__} | "
                f"Path: {request.url.path} | Client: {_client(request)}"
            )
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": f"{error_type}. Please login again.", "code": "INVALID_TOKEN"},
            )

        except Exception as exc:
            if settings.is_production:
                error_message = "Internal server error"
                logger.exception(
                    f"Unhandled exception: Type={type(exc).__name__} | "
                    f"Path: {request.url.path} | Client: {_client(request)}"
                )
            else:
                error_message = str(exc)
                logger.exception(
                    f"Unhandled exception: {str(exc)} | "
                    f"Path: {request.url.path} | Client: {_client(request)}\n"
                    f"Traceback: {traceback.format_exc()}"
                )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": error_message, "code": "INTERNAL_SERVER_ERROR"},
            )
