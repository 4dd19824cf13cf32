"""Exceptions raised by ga4-cli.

Every error carries a short, user-facing message; the command handler prints
it and exits non-zero.
"""


class GA4CLIError(Exception):
    """Base class for all ga4-cli errors."""


class MissingConfiguration(GA4CLIError):
    """Client id or client secret is not configured."""


class AuthorizationCancelled(GA4CLIError):
    """The operator entered no authorization code."""


class TokenExchangeFailed(GA4CLIError):
    """The authorization code could not be exchanged for a token."""


class NotInitialized(GA4CLIError):
    """A report method was called before initialize()."""


class ReportFetchFailed(GA4CLIError):
    """The GA4 Data API call failed."""


class MalformedResponse(ReportFetchFailed):
    """The GA4 Data API returned a response we cannot decode."""


class UnsupportedFormat(GA4CLIError):
    """Unknown output format requested."""


class InvalidReportOption(GA4CLIError, ValueError):
    """A filter or order-by expression could not be parsed."""
