from __future__ import annotations
"""Error taxonomy shared by all storage operations."""
import enum
import re
from typing import Optional, Sequence

# ref: https://help.upyun.com/knowledge-base/errno/
CODE_NOT_FOUND = 40400001  # file or directory not found
CODE_NEED_PERMISSION = 40100017  # user need permission
CODE_ACCOUNT_FORBIDDEN = 40100019  # account forbidden
CODE_DELETE_FORBIDDEN = 40300011  # has no permission to delete

PERMISSION_CODES = frozenset({CODE_NEED_PERMISSION, CODE_ACCOUNT_FORBIDDEN, CODE_DELETE_FORBIDDEN})

_CODE_PATTERN = re.compile(r'"code"\s*:\s*"?(\d+)')


class ErrorKind(enum.Enum):
    NOT_EXIST = "not_exist"
    PERMISSION_DENIED = "permission_denied"
    UNEXPECTED = "unexpected"
    INTERNAL = "internal"


class ServiceError(Exception):
    """Base class for errors that have already been classified."""

    kind = ErrorKind.INTERNAL


class ObjectNotExistError(ServiceError):
    """Raised when the requested object or directory does not exist."""

    kind = ErrorKind.NOT_EXIST


class PermissionDeniedError(ServiceError):
    """Raised when the operator is not allowed to perform the operation."""

    kind = ErrorKind.PERMISSION_DENIED


class UnexpectedError(ServiceError):
    """Raised for backend failures outside the known taxonomy."""

    kind = ErrorKind.UNEXPECTED


class PairUnsupportedError(ServiceError):
    """Raised when a construction option is not supported by this service."""

    def __init__(self, pair: str, value: object):
        super().__init__(f"pair unsupported: {pair}={value!r}")
        self.pair = pair
        self.value = value


class InitError(Exception):
    """Raised when a storage handle cannot be constructed."""

    def __init__(self, operation: str, error: BaseException, **options: object):
        self.operation = operation
        self.error = error
        self.options = options
        super().__init__(f"{operation}: {error}")


class StorageError(Exception):
    """Raised by storage operations; wraps a classified error."""

    def __init__(
        self,
        operation: str,
        error: BaseException,
        storage: object = None,
        path: Sequence[str] = (),
        objects: Sequence[object] = (),
    ):
        self.operation = operation
        self.error = error
        self.storage = storage
        self.path = tuple(path)
        # Objects retrieved before the failure, for listing operations.
        self.objects = list(objects)
        super().__init__(self._describe())

    @property
    def kind(self) -> ErrorKind:
        return getattr(self.error, "kind", ErrorKind.UNEXPECTED)

    @property
    def cause(self) -> Optional[BaseException]:
        return self.error.__cause__ or self.error

    def _describe(self) -> str:
        return f"{self.operation} on {self.storage} {list(self.path)}: {self.error}"


def embedded_code(err: BaseException) -> Optional[int]:
    """Return the machine code carried by a backend error, if any."""

    code = getattr(err, "code", None)
    if isinstance(code, int):
        return code
    match = _CODE_PATTERN.search(str(err))
    if match:
        return int(match.group(1))
    return None


def classify_error(err: BaseException) -> ErrorKind:
    if isinstance(err, (ServiceError, StorageError)):
        return ErrorKind.INTERNAL

    code = embedded_code(err)
    if code is None:
        if "404" in str(err):
            return ErrorKind.NOT_EXIST
        return ErrorKind.UNEXPECTED
    if code == CODE_NOT_FOUND:
        return ErrorKind.NOT_EXIST
    if code in PERMISSION_CODES:
        return ErrorKind.PERMISSION_DENIED
    return ErrorKind.UNEXPECTED


_ERROR_TYPES = {
    ErrorKind.NOT_EXIST: ObjectNotExistError,
    ErrorKind.PERMISSION_DENIED: PermissionDeniedError,
    ErrorKind.UNEXPECTED: UnexpectedError,
}


def format_error(err: BaseException) -> BaseException:
    """Translate a raw backend error into the shared taxonomy.

    Already classified errors are returned untouched. Everything else is
    wrapped in the matching :class:`ServiceError` subclass with the original
    error kept as ``__cause__``.
    """

    kind = classify_error(err)
    if kind is ErrorKind.INTERNAL:
        return err
    wrapped = _ERROR_TYPES[kind](str(err))
    wrapped.__cause__ = err
    return wrapped
