"""Integration error types."""
from typing import Optional


class IntegrationError(Exception):
    """Error raised by an integration provider.

    ``code`` is a stable machine-readable tag (``HTTP_ERROR``, ``NO_ACCESS_TOKEN``,
    ...). ``retryable`` marks transient failures that ``RetryManager`` may re-attempt.
    """

    def __init__(self, message: str, code: str, retryable: bool = False, status_code: Optional[int] = None):
        self.message = message
        self.code = code
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(message)

    def __repr__(self) -> str:
        return f"IntegrationError(code={self.code!r}, retryable={self.retryable}, message={self.message!r})"
