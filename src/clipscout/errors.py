"""Exception hierarchy for the footage pipeline."""


class ClipscoutError(Exception):
    """Base class for all pipeline errors."""


class TransientPlatformError(ClipscoutError):
    """Gateway error or navigation timeout; safe to retry."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class SessionInvalidError(ClipscoutError):
    """The platform asked for a sign-in; the user must log in again."""


class AnalysisError(ClipscoutError):
    """The text model returned a segment analysis that could not be used."""
