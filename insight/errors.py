from __future__ import annotations


class InsightError(RuntimeError):
    pass


class ValidationError(InsightError):
    """Rejected input, raised before any external call is made."""


class ConfigurationError(InsightError):
    pass


class NotFoundError(InsightError):
    pass


class PersistenceError(InsightError):
    pass


class TransportError(InsightError):
    """Completion endpoint unreachable or answering with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RateLimitError(TransportError):
    pass


class QuotaExceededError(TransportError):
    pass


class SynthesisError(InsightError):
    """The model answered but its output is not a valid structured result."""

    def __init__(self, message: str, status_code: int | None = None, raw: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.raw = raw
