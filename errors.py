"""
Marketplace error taxonomy and the FastAPI handlers that turn it into
``{"detail": ...}`` responses.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """Base class for every error an operation reports to its caller."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticated(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "You must be logged in"


class PermissionDenied(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to do this"


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ListingUnavailable(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Listing is no longer available"


class InvalidTransition(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Request is no longer pending"


class StorageError(MarketplaceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Storage is unavailable"


class InvalidImage(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "The image data appears to be corrupt or in an invalid format."


class AnalysisFailed(MarketplaceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "An error occurred while analyzing the image."


def register_exception_handlers(app: FastAPI) -> None:
    """Register the marketplace error handlers on ``app``."""

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        extra = {
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code,
        }
        if isinstance(exc, StorageError):
            # The database error stays in the log; the client sees default_message.
            logger.error(
                "Storage failure: %s",
                exc.__cause__ or exc.message,
                exc_info=exc,
                extra=extra,
            )
        else:
            logger.warning("%s: %s", type(exc).__name__, exc.message, extra=extra)

        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message},
        )
