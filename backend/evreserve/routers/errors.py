from fastapi import HTTPException, status

from ..domain.errors import (
    AccessDeniedError,
    BookingNotFoundError,
    ConcurrentUpdateConflictError,
    InvalidReservationTimeError,
    InvalidTransitionError,
    ReservationError,
    SlotUnavailableError,
    StationInactiveError,
    StationNotFoundError,
)

RETRY_AFTER_SECONDS = "1"


def to_http_exception(exc: ReservationError) -> HTTPException:
    if isinstance(exc, (StationNotFoundError, BookingNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, SlotUnavailableError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "available": exc.available},
        )
    if isinstance(exc, (StationInactiveError, InvalidTransitionError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InvalidReservationTimeError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, AccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, ConcurrentUpdateConflictError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="station is busy, retry the request",
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
