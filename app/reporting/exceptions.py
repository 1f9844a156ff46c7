"""Error taxonomy for the global report engine."""


class ReportError(Exception):
    """Base class for report failures that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ReportValidationError(ReportError):
    """Unknown column, disallowed operator, bad enum value or malformed filter value."""

    status_code = 400


class ReportAuthorizationError(ReportError):
    """Caller is not allowed to use the global report."""

    status_code = 403


class ReportExecutionError(ReportError):
    """The document store could not run the pipeline."""

    status_code = 502


class DecryptionError(Exception):
    """A single ciphertext could not be decrypted. Recovered per item, never surfaced."""
