"""Error taxonomy shared by generation clients, relay, and report flow."""


class ClimateVisionError(Exception):
    """Base class for all user-facing ClimateVision failures."""


class ConfigurationError(ClimateVisionError):
    """Raised when a required credential or endpoint is not configured."""


class ValidationError(ClimateVisionError):
    """Raised when required input is missing, before any network call."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class ProviderError(ClimateVisionError):
    """Upstream call failed or returned no usable payload."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        step: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.step = step


class NoResultError(ProviderError):
    """Provider answered without any candidates."""


class NoImageDataError(ProviderError):
    """Provider candidates carried no inline image payload."""


class GenerationTimeoutError(ClimateVisionError, TimeoutError):
    """Wall-clock bound elapsed before the provider answered."""

    def __init__(self, message: str, timeout: float) -> None:
        super().__init__(message)
        self.timeout = timeout


class StorageError(ClimateVisionError):
    """Upload or write to object storage failed."""
