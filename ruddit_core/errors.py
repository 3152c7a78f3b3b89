"""Error taxonomy shared by the ingestion pipeline.

- CredentialError: credentials missing or malformed; needs user action.
- AuthRejected: the upstream explicitly refused the credentials.
- TransportError: network or HTTP failure; retryable at the facet level.
- ParseError: unexpected upstream response shape.
- PersistenceError: local store failure; fatal to the current operation.
"""

from typing import Any, Optional


PAYLOAD_EXCERPT_CHARS = 500


class RudditError(Exception):
    """Base class for all pipeline errors."""

    pass


class CredentialError(RudditError):
    """Raised when API credentials are not configured or unusable."""

    pass


class AuthRejected(RudditError):
    """Raised when the upstream denies a token request or an API call.

    ``unauthorized_client`` is set when the remote reported an
    application-configuration mistake rather than bad user credentials.
    """

    def __init__(self, message: str, status_code: int = 401, unauthorized_client: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.unauthorized_client = unauthorized_client


class TransportError(RudditError):
    """Raised when an upstream request fails at the network or HTTP level.

    status_code is 0 for connection failures and timeouts.
    """

    def __init__(self, message: str, status_code: int = 0, retry_after: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class ParseError(RudditError):
    """Raised when an upstream response does not have the expected shape."""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = _excerpt(payload)


class InvalidIdentityError(ParseError):
    """Raised when an item id cannot be turned into a usable post identity."""

    pass


class PersistenceError(RudditError):
    """Raised when the local store fails to read or write."""

    pass


def _excerpt(payload: Any) -> Optional[str]:
    if payload is None:
        return None
    text = payload if isinstance(payload, str) else repr(payload)
    return text[:PAYLOAD_EXCERPT_CHARS]
