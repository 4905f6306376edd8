"""
Shared plumbing for the Fetch points core: settings, logging and the error
taxonomy every component raises.
"""

from .config import Settings, get_settings
from .errors import (
    ServiceError,
    NotFoundError,
    AlreadyExistsError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    InvalidArgumentError,
    TransientError,
    UnavailableError,
    PermissionDeniedError,
)

__all__ = [
    "Settings",
    "get_settings",
    "ServiceError",
    "NotFoundError",
    "AlreadyExistsError",
    "InsufficientFundsError",
    "InvalidStateTransitionError",
    "InvalidArgumentError",
    "TransientError",
    "UnavailableError",
    "PermissionDeniedError",
]
