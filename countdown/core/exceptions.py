"""
Countdown exceptions.

Delivery outcomes (delivered / temporary / permanent) are values returned by
the dispatcher, not exceptions; only conditions that change control flow
live here.
"""


class CountdownError(Exception):
    """Base class for countdown service errors."""

    pass


class UnknownTimezoneError(CountdownError):
    """The IANA identifier is not known to the tz database."""

    def __init__(self, timezone_name: str | None):
        self.timezone_name = timezone_name
        super().__init__(f"Unknown timezone: {timezone_name!r}")


class InvalidSigningKeyError(CountdownError):
    """VAPID key material is missing or malformed. Fatal at startup."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class PredicateEvaluationError(CountdownError):
    """The owner directory failed to answer an eligibility or timezone lookup."""

    def __init__(self, owner_id: str, trigger_id: str | None = None, cause: Exception | None = None):
        self.owner_id = owner_id
        self.trigger_id = trigger_id
        self.cause = cause
        target = f"{owner_id}/{trigger_id}" if trigger_id else owner_id
        super().__init__(f"Predicate evaluation failed for {target}: {cause}")


class FiringStoreError(CountdownError):
    """The de-duplication store could not be read or written."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)
