class BookingDomainError(Exception):
    """Base class for errors raised by the booking core."""


class SlotUnavailableError(BookingDomainError):
    """Slot is missing, full, or already flagged booked."""


class SlotNotFoundError(BookingDomainError):
    pass


class BookingNotFoundError(BookingDomainError):
    pass


class CustomerNotFoundError(BookingDomainError):
    pass


class IdentityConflictError(BookingDomainError):
    """A concurrent request created the same email or mobile first."""


class InvalidStatusTransitionError(BookingDomainError):
    pass


class InvalidBookingRequestError(BookingDomainError):
    pass


class DuplicateSlotError(BookingDomainError):
    def __init__(self, times: list[str]) -> None:
        super().__init__(f"slots already exist for: {', '.join(times)}")
        self.times = times
