"""
Error taxonomy shared by every component.

Callers always get one of these (or a successful result); nothing below the
orchestrators swallows them.
"""


class ServiceError(Exception):
    code = "SERVICE_ERROR"

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class NotFoundError(ServiceError):
    code = "NOT_FOUND"


class AlreadyExistsError(ServiceError):
    code = "ALREADY_EXISTS"


class InsufficientFundsError(ServiceError):
    code = "INSUFFICIENT_FUNDS"

    def __init__(self, message: str = "", balance: int = 0, requested: int = 0):
        super().__init__(message)
        self.balance = balance
        self.requested = requested


class InvalidStateTransitionError(ServiceError):
    code = "INVALID_STATE"


class InvalidArgumentError(ServiceError):
    code = "INVALID_ARGUMENT"


class TransientError(ServiceError):
    """Write conflicts outlasted the retry budget; the whole operation is safe to retry."""

    code = "CONFLICT"


class UnavailableError(ServiceError):
    code = "UNAVAILABLE"


class PermissionDeniedError(ServiceError):
    code = "PERMISSION_DENIED"
