"""Mapping of trade and store errors to HTTP responses."""

import logging
from typing import Tuple, Type
from uuid import UUID

from fastapi import HTTPException, status

from database.exceptions import DatabaseError
from trades.errors import (
    DuplicateActiveTradeError,
    ForbiddenError,
    InvalidTransitionError,
    ItemNotOwnedError,
    ItemNotTradeableError,
    NotAParticipantError,
    NotFoundError,
    OfferAlreadyDecidedError,
    ReportAlreadyClosedError,
    SelfTradeError,
    TradeError,
)

logger = logging.getLogger(__name__)

# First match wins, so subclasses come before their bases
STATUS_BY_ERROR: Tuple[Tuple[Type[TradeError], int], ...] = (
    (NotAParticipantError, status.HTTP_403_FORBIDDEN),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (OfferAlreadyDecidedError, status.HTTP_409_CONFLICT),
    (DuplicateActiveTradeError, status.HTTP_409_CONFLICT),
    (ReportAlreadyClosedError, status.HTTP_409_CONFLICT),
    (ItemNotTradeableError, status.HTTP_400_BAD_REQUEST),
    (ItemNotOwnedError, status.HTTP_400_BAD_REQUEST),
    (SelfTradeError, status.HTTP_400_BAD_REQUEST),
)


def parse_id(value: str, name: str) -> UUID:
    """Parse a path identifier, answering 400 for malformed ones."""
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_id", "message": f"Invalid {name} format: {value}"}
        )


def http_error(e: Exception) -> HTTPException:
    """Translate an exception raised by a trade command.

    Domain errors carry their code, message and extra fields to the client.
    Infrastructure and unexpected errors get a generic message; the details
    only go to the log.
    """
    if isinstance(e, TradeError):
        status_code = status.HTTP_400_BAD_REQUEST
        for error_type, code in STATUS_BY_ERROR:
            if isinstance(e, error_type):
                status_code = code
                break
        return HTTPException(
            status_code=status_code,
            detail={"error": e.code, "message": str(e), **e.extra()}
        )

    if isinstance(e, DatabaseError):
        logger.error(f"Store unavailable: {e}")
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "store_unavailable", "message": "Service temporarily unavailable"}
        )

    logger.exception(f"Unexpected error: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "internal_error", "message": "Internal server error"}
    )
