from typing import Optional
from .enums import ErrorKind


class ClaimAttestError(Exception):
    """
    Single error type for the package.

    ``kind`` tells the failure site apart (see ErrorKind); ``cause`` keeps the
    underlying exception for diagnostics.
    """

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or ErrorKind.INTERNAL_ERROR
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"ClaimAttestError(kind={self.kind.value!r}, message={self.message!r})"
