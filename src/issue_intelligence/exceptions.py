"""Exceptions for issue intelligence operations and their providers."""


class IssueIntelligenceError(Exception):
    """Base exception for the issue intelligence engine."""

    pass


class InvalidIssueInputError(IssueIntelligenceError, ValueError):
    """The caller supplied malformed input (missing field, empty corpus)."""

    pass


class ProviderError(IssueIntelligenceError):
    """Base exception for embedding and generation provider calls."""

    def __init__(self, message: str, provider: str = "unknown"):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderConnectionError(ProviderError):
    """Failed to connect to the provider service (or the request timed out)."""

    pass


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded."""

    def __init__(
        self, message: str, provider: str, retry_after: float | None = None
    ):
        self.retry_after = retry_after
        super().__init__(message, provider)


class ProviderAuthenticationError(ProviderError):
    """Authentication failed (invalid or missing API key)."""

    pass


class ProviderResponseError(ProviderError):
    """The provider answered, but the response could not be used."""

    pass


class ProviderNotConfiguredError(ProviderError):
    """Provider is not properly configured or not registered."""

    pass
