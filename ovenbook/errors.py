# errors.py
from fastapi import status


class OvenBookError(Exception):
    """Base error. The message is shown to the caller as-is."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(OvenBookError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Unauthorized(OvenBookError):
    status_code = status.HTTP_403_FORBIDDEN


class ValidationFailed(OvenBookError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(OvenBookError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(OvenBookError):
    status_code = status.HTTP_404_NOT_FOUND


class InternalError(OvenBookError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class TransactionConflict(Exception):
    """A concurrent writer got there first; the transaction should be retried."""
