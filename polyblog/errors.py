"""Repository error taxonomy"""

from enum import Enum


class ErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class RepositoryError(Exception):
    """Base class for every error raised by a repository"""

    code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value}, message={self.message!r})"


class ValidationError(RepositoryError, ValueError):
    """The caller passed arguments the repository refuses to run"""

    code = ErrorCode.BAD_REQUEST


class FilterRequiredError(ValidationError):
    """update/delete was called without a usable filter"""


class UnknownColumnError(ValidationError):
    """A filter, sort or data key is not a column of the entity"""


class EmptyUpdateError(ValidationError):
    """update was called without any data to set"""


class ImmutableColumnError(ValidationError):
    """create/update data tried to write the primary key"""


class RecordNotFoundError(RepositoryError):
    """An update matched zero rows"""

    code = ErrorCode.NOT_FOUND


class StoreError(RepositoryError):
    """Any failure coming from the relational store itself"""

    code = ErrorCode.INTERNAL_SERVER_ERROR


class RowDecodeError(StoreError):
    """A row could not be turned into an entity"""


class ConfigurationError(RepositoryError):
    """Database settings are incomplete"""

    code = ErrorCode.INTERNAL_SERVER_ERROR


class PoolNotFoundError(ValueError):
    """No pool is registered under the requested name.

    Raised by the pool registry; repositories report it as a StoreError.
    """
