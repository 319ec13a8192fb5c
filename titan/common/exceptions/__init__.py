from titan.common.exceptions.exceptions import (
    TitanException,
    ValidationError,
    PermissionError,
    InvariantError,
    TransportError,
    NotFoundError,
)

__all__ = [
    "TitanException",
    "ValidationError",
    "PermissionError",
    "InvariantError",
    "TransportError",
    "NotFoundError",
]
