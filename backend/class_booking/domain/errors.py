class BookingError(Exception):
    """Base class for errors reported to callers of the booking core."""


class NotAuthenticatedError(BookingError):
    pass


class ClassNotFoundError(BookingError):
    pass


class CourseNotFoundError(BookingError):
    """The class points at a course record that does not exist."""


class ClassNotBookableError(BookingError):
    """The class is cancelled or completed."""


class ClassFullError(BookingError):
    pass


class AlreadyBookedError(BookingError):
    pass


class StoreUnavailableError(BookingError):
    """
    Transport failure or timeout talking to the record store.

    `ambiguous` is True when the call may have committed before failing; the
    caller should re-read state rather than retry blindly.
    """

    def __init__(self, message: str, *, ambiguous: bool = False) -> None:
        super().__init__(message)
        self.ambiguous = ambiguous


class PartialDenormalizationFailure(BookingError):
    """Seat counter changed but the booking record or its indexes did not. Logged, not raised."""

    def __init__(self, message: str, *, operation: str, user_id: str, class_key: str) -> None:
        super().__init__(message)
        self.operation = operation
        self.user_id = user_id
        self.class_key = class_key

    def __str__(self) -> str:
        return f"{self.operation} user={self.user_id} class={self.class_key}: {self.args[0]}"
