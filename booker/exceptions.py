"""Custom exceptions for the tee time booker.

Every error carries an ``outcome`` string that is stored verbatim in the
attempt history, so the status view can tell failure kinds apart.
"""


class BookingError(Exception):
    """Raised when a booking operation fails."""

    outcome = "failed"


class ConfigurationError(BookingError):
    """Missing credentials or a guest roster that is too small."""

    outcome = "config_error"


class AuthError(BookingError):
    """The portal rejected the credentials or never established a session."""

    outcome = "auth_failed"


class SessionExpiredError(BookingError):
    """The portal answered with its login page even after re-authenticating."""

    outcome = "session_expired"


class NetworkError(BookingError):
    """Transport failure that survived every retry."""

    outcome = "network_error"

    def __init__(self, message: str, kind: str = "other"):
        super().__init__(message)
        self.kind = kind


class CatalogNotOpenError(BookingError):
    """The booking window for the date has not opened yet."""

    outcome = "not_open"

    def __init__(self, message: str, countdown: str = ""):
        super().__init__(message)
        self.countdown = countdown


class DateMismatchError(BookingError):
    """The tee sheet came back for a different date than requested."""

    outcome = "date_mismatch"


class NoSlotInRangeError(BookingError):
    """No reservable slot inside the acceptable time window."""

    outcome = "no_slots"


class SlotUnavailableError(BookingError):
    """Someone else took the slot between listing and submitting."""

    outcome = "slot_unavailable"


class WeekdayRestrictionError(BookingError):
    """A participant does not satisfy the weekday booking restriction."""

    outcome = "weekday_restriction"


class RuleConflictError(BookingError):
    """The portal reported a booking rule conflict."""

    outcome = "rule_conflict"


class BookingRejectedError(BookingError):
    """Generic error or failure text in the submission response."""

    outcome = "rejected"


class AmbiguousResponseError(BookingError):
    """The submission response matched none of the known markers."""

    outcome = "unclear"


class ConfirmationMismatchError(AmbiguousResponseError):
    """A confirmation came back, but for a different date or time."""

    outcome = "confirmation_mismatch"
