"""Exception taxonomy for the candidate engine."""

from __future__ import annotations

from typing import Iterable


class ConfigurationError(ValueError):
    """Raised before dispatch when required backend settings are missing."""

    def __init__(self, missing: Iterable[str], message: str | None = None) -> None:
        self.missing = tuple(missing)
        if message is None:
            message = "Missing required configuration: " + ", ".join(self.missing)
        super().__init__(message)


class GenerationCallError(RuntimeError):
    """Raised by the backend client when a single generation call fails.

    The dispatcher captures these per call; they never cross the engine
    boundary.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_type: str = "generation_error",
        call_index: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type
        self.call_index = call_index


class CredentialError(GenerationCallError):
    """Raised when the token issuer rejects or cannot serve a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, status_code=status_code, error_type="credential_error")


__all__ = ["ConfigurationError", "GenerationCallError", "CredentialError"]
