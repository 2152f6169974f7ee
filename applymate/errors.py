"""Exception types shared across the assistant."""


class ConfigurationError(RuntimeError):
    """Raised when credentials or backend settings are missing at startup."""


class UpstreamError(RuntimeError):
    """Raised when the model backend or record store fails."""


class RateLimitError(UpstreamError):
    """Raised when a model credential has been rate limited."""


class AuthenticationError(UpstreamError):
    """Raised when the model backend rejects an API key."""


class ToolUseFailedError(UpstreamError):
    """Raised when the model produced a tool call the backend could not parse."""


class RecursionLimitError(RuntimeError):
    """Raised when a turn exceeds its step budget before producing an answer."""

    def __init__(self, limit: int):
        super().__init__(f"Recursion limit of {limit} reached without a final answer")
        self.limit = limit


class ImageExtractionError(RuntimeError):
    """Raised when job details could not be extracted from an image."""


class ImageRateLimitError(ImageExtractionError):
    """Raised when the vision model is rate limited."""


class InvalidImageError(ImageExtractionError):
    """Raised when the image could not be read by the vision model."""
