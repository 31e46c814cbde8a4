"""Error taxonomy shared by the orchestrator, gateway, storage and API layers."""

from typing import Any


class LanguageTestError(Exception):
    """Base error carrying an HTTP status and a user-visible message.

    Args:
        message: Human-readable description returned to the caller.
        details: Optional extra context (e.g. the upstream error text).
    """

    status_code: int = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "details": self.details}


class ValidationError(LanguageTestError):
    """Missing or malformed required fields."""

    status_code = 400


class NotFound(LanguageTestError):
    """Session, test, question or key does not exist (or is not the caller's)."""

    status_code = 404


class UnsupportedOption(LanguageTestError):
    """Unknown or inactive language / test type."""

    status_code = 400


class CredentialMissing(LanguageTestError):
    """No active API key stored for the required service."""

    status_code = 400


class GatewayError(LanguageTestError):
    """The external language-model call failed."""

    status_code = 502


class PersistenceError(LanguageTestError):
    """A storage operation failed."""

    status_code = 500
