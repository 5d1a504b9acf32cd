"""Exceptions raised by pysnsync."""


class SNError(Exception):
    """Base exception for all pysnsync errors."""


class SNAPIError(SNError):
    """Raised when a ServiceNow API request fails."""


class SNAuthenticationError(SNAPIError):
    """Raised when the instance rejects the configured credentials."""


class SNPermissionError(SNAPIError):
    """Raised when the user lacks the ACLs for a table or record."""


class SNNotFoundError(SNAPIError):
    """Raised when a table, record or script cannot be found."""


class SNRateLimitError(SNAPIError):
    """Raised when the instance throttles requests (HTTP 429)."""


class SNNetworkError(SNAPIError):
    """Raised on transport-level failures (DNS, connection, timeouts)."""


class SNInvalidResponseError(SNAPIError):
    """Raised when the instance returns something other than the expected JSON."""


class SNConfigError(SNError):
    """Raised for missing or invalid configuration."""


class InvalidScriptTypeError(SNConfigError, ValueError):
    """Raised when a script type identifier is not registered."""


class InvalidDirectionError(SNConfigError, ValueError):
    """Raised when a sync direction is neither push nor pull."""
