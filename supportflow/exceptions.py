"""
Domain exceptions

Errors raised around the model call (ExternalServiceError,
MalformedResponseError) are absorbed by the fallback paths. Authorization,
validation and not-found errors propagate to the caller unchanged.
PersistenceError wraps document store failures.
"""


class SupportFlowError(Exception):
    """Base class for all SupportFlow errors"""

    code = "internal"


class ExternalServiceError(SupportFlowError):
    """The text-generation API call failed or timed out"""

    code = "unavailable"


class MalformedResponseError(SupportFlowError):
    """The model answered, but not with the JSON object we asked for"""

    code = "data-loss"


class AuthorizationError(SupportFlowError):
    """Caller is unauthenticated or lacks the required role"""

    code = "permission-denied"

    def __init__(self, message: str, authenticated: bool = True):
        super().__init__(message)
        self.authenticated = authenticated


class ValidationError(SupportFlowError):
    """Required input is missing or malformed"""

    code = "invalid-argument"


class NotFoundError(SupportFlowError):
    """Referenced document does not exist"""

    code = "not-found"


class PersistenceError(SupportFlowError):
    """Document store read or write failed"""

    code = "aborted"
