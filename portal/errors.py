"""Error taxonomy shared by the pipelines and the HTTP layer."""
from __future__ import annotations


class PortalError(Exception):
    """Base class for errors surfaced to API callers."""
    pass


class InvalidInputError(PortalError):
    """Raised when a request is missing required input (HTTP 400)."""
    pass


class DataFetchError(PortalError):
    """Raised when a storage read fails (HTTP 500)."""
    pass


class ScoringOracleError(PortalError):
    """Raised when the language-model gateway call fails (HTTP 500)."""
    pass


class ScoringParseError(Exception):
    """Raised when oracle output does not match the expected structure.

    Recovered inside the scoring stage; never reaches the caller.
    """
    pass
