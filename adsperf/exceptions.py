"""
Custom exception hierarchy for Meta Ads performance operations.

Exception Hierarchy:
    MetaAdsError (base)
    ├── AuthMissingError          - No access token available (fatal, never retried)
    ├── NoActiveAccountError      - No configured ad account (fatal)
    └── UpstreamUnavailableError  - Insights could not be fetched (recoverable)
        ├── MetaConnectionError   - Network/timeout issues
        ├── MetaAPIError          - API returned error response
        └── MetaDataError         - Invalid response structure

    ValidationError               - Input validation failed
    └── InvalidDateError          - Malformed or out-of-order date input
"""


class MetaAdsError(Exception):
    """Base exception for all Meta Ads related errors."""

    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class AuthMissingError(MetaAdsError):
    """
    No access token is available for the request.

    Fatal for the request: retrying cannot help until credentials are configured.
    """


class NoActiveAccountError(MetaAdsError):
    """No ad account is selected, active, or configured through the environment."""


class UpstreamUnavailableError(MetaAdsError):
    """
    Insights could not be obtained from the Graph API.

    Callers may substitute simulated data when their policy allows it.
    """


class MetaConnectionError(UpstreamUnavailableError):
    """
    Network-related errors (timeout, connection refused, etc.).

    These are the only upstream errors worth retrying.
    """

    def __init__(self, message: str, details: str = None, retry_after: int = None):
        super().__init__(message, details)
        self.retry_after = retry_after


class MetaAPIError(UpstreamUnavailableError):
    """
    API returned an error response.

    Check status_code and error_code (Graph API error code) for specifics.
    """

    def __init__(
        self,
        message: str,
        details: str = None,
        status_code: int = None,
        error_code: int = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code
        self.error_code = error_code


class MetaDataError(UpstreamUnavailableError):
    """
    API response has unexpected structure.

    The API returned data in a format we don't understand.
    """

    def __init__(self, message: str, details: str = None, expected: str = None, got: str = None):
        super().__init__(message, details)
        self.expected = expected
        self.got = got


class ValidationError(Exception):
    """
    Input validation failed.

    Raised before any upstream request is made.
    """

    def __init__(self, field: str, message: str, value: any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value!r})"
        return f"{self.field}: {self.message}"


class InvalidDateError(ValidationError):
    """Date is malformed, not a real calendar day, or out of order."""

    def __init__(self, message: str, value: any = None, field: str = "date"):
        super().__init__(field, message, value)
