class ReservationError(Exception):
    """Base class for errors raised by the reservation core."""


class StationNotFoundError(ReservationError):
    pass


class StationInactiveError(ReservationError):
    pass


class BookingNotFoundError(ReservationError):
    pass


class InvalidReservationTimeError(ReservationError):
    """Not a grid slot start, outside operating hours, or outside the booking window."""


class SlotUnavailableError(ReservationError):
    def __init__(self, message: str, *, available: int) -> None:
        super().__init__(message)
        self.available = available


class InvalidTransitionError(ReservationError):
    pass


class AccessDeniedError(ReservationError):
    pass


class ConcurrentUpdateConflictError(ReservationError):
    """The station row changed between read and conditional write. Retryable."""
