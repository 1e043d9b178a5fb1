"""Error types raised by meal detection collaborators."""


class MealTrackerError(Exception):
    """Base error for the meal tracker."""


class CredentialMissingError(MealTrackerError):
    """Raised when no inference API key is configured."""

    def __init__(
        self, message: str = "OpenAI API key not configured. Please set it in Settings."
    ) -> None:
        super().__init__(message)


class InferenceTransportError(MealTrackerError):
    """Network, HTTP status or timeout failure talking to the inference service."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DetectionValidationError(MealTrackerError):
    """Raised when a caller passes input the engine refuses before any I/O."""
