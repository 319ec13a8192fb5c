# titan/common/exceptions/exceptions.py
# =============================================================================
# Custom exceptions for the TITAN messaging core
# =============================================================================


class TitanException(Exception):
    """Base exception for the messaging core"""
    pass


class ValidationError(TitanException):
    """Raised when input is malformed (e.g. an empty channel name)"""
    pass


class PermissionError(TitanException):
    """Raised when an actor lacks the role or ownership for an action"""
    pass


class InvariantError(TitanException):
    """Raised when an operation would break a structural invariant"""
    pass


class TransportError(TitanException):
    """Raised when a remote persistence or service call fails"""
    pass


class NotFoundError(TitanException):
    """Raised when a referenced message, channel or actor is missing"""
    pass
