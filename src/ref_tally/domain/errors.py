"""Error taxonomy for the tally board.

Only ``InitializationFailure`` is fatal. Everything else is shown as a
single banner message and cleared by the next successful operation.
"""


class TallyError(Exception):
    """Base class for tally board errors."""

    banner = "Something went wrong."


class InitializationFailure(TallyError):
    """Backing store or session setup failed."""

    banner = "Failed to initialize the app. Check the server logs for details."


class SubscriptionError(TallyError):
    """The live listener could not read the current day."""

    banner = "Could not load real-time data."


class WriteFailure(TallyError):
    """An increment could not be recorded."""

    banner = "Failed to record count. Please check connection."


class StoreUnavailable(WriteFailure):
    """The backing store could not be reached or rejected the request."""


class TransactionConflict(WriteFailure):
    """Concurrent writers kept winning until retries ran out."""

    def __init__(self, day: object, attempts: int) -> None:
        super().__init__(f"Gave up incrementing {day} after {attempts} attempts")
        self.day = day
        self.attempts = attempts


class FetchFailed(TallyError):
    """The weekly report query failed."""

    banner = "Failed to load weekly report data."


FetchFailure = FetchFailed


class UnknownCategory(TallyError, LookupError):
    """A category id that is not in the registry."""

    def __init__(self, category_id: str) -> None:
        super().__init__(f"Unknown question category: {category_id}")
        self.category_id = category_id
