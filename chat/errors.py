# chat/errors.py


class ValidationError(ValueError):
    """Request is structurally invalid (missing messages, session id, ...)."""


class UpstreamError(RuntimeError):
    """OpenRouter returned a non-2xx status or could not be reached."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ParseError(UpstreamError):
    """Upstream answered, but the payload was not the JSON we asked for."""


class UpstreamConfigError(RuntimeError):
    ...


class PersistenceError(RuntimeError):
    """Supabase read/write failed, or the row is missing / not owned by the caller."""
