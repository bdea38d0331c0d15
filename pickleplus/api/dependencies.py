"""API dependencies for database access and error mapping."""

from typing import Annotated, NoReturn

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from pickleplus.core.database import get_db
from pickleplus.services.results import BookingError, BookingErrorKind

ERROR_STATUS = {
    BookingErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    BookingErrorKind.CLASS_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    BookingErrorKind.NOT_ENROLLED: status.HTTP_404_NOT_FOUND,
    BookingErrorKind.ALREADY_ACTIVE: status.HTTP_409_CONFLICT,
    BookingErrorKind.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    BookingErrorKind.CLASS_CANCELLED: status.HTTP_409_CONFLICT,
    BookingErrorKind.CONCURRENCY_CONFLICT: status.HTTP_409_CONFLICT,
    BookingErrorKind.INVALID_ACCESS_CODE: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def raise_booking_error(error: BookingError) -> NoReturn:
    """Translate a service failure into an HTTP error response."""
    raise HTTPException(
        status_code=ERROR_STATUS[error.kind],
        detail={
            "error": error.kind.value,
            "message": error.message,
            "retryable": error.retryable,
        },
    )


# Dependency aliases for easier use
DbSession = Annotated[AsyncSession, Depends(get_db)]
