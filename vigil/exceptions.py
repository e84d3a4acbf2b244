# vigil/exceptions.py
"""
Error taxonomy. Every API-facing error carries the HTTP status it maps to;
the global handler in vigil.main turns them into {"detail": ...} responses.
"""


class VigilError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class AuthenticationError(VigilError):
    status_code = 401


class NotFoundError(VigilError):
    status_code = 404

    def __init__(self, kind: str, identifier):
        super().__init__(f"{kind} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier


class ConflictError(VigilError):
    status_code = 409


class InvalidRequestError(VigilError):
    status_code = 422


class StreamError(VigilError):
    """Stream could not be opened, or reconnect attempts ran out."""


class InferenceUnavailableError(VigilError):
    """A model endpoint is unreachable, timed out or failed server-side. Retryable."""

    status_code = 503

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error
