"""
Error types raised by the estimation engine and its collaborators.
"""


class ConfigurationError(ValueError):
    """Raised when required credentials or configuration are missing or invalid.

    Fatal for a summary run: raised before any upstream fetch is attempted.
    """


class UpstreamFetchError(RuntimeError):
    """Raised when the analytics source returns a transport or GraphQL error.

    Always local to the product whose fetch failed.
    """
