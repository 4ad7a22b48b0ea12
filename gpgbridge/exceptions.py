"""
gpgbridge exception hierarchy and engine error model.

All exceptions inherit from GpgBridgeError for easy catching. Engine error
values (gpgme_error_t) are mapped to EngineError subclasses by
error_from_code(); the "no error" value maps to None.
"""

from enum import IntEnum
from typing import Any

_CODE_MASK = 0xFFFF
_SOURCE_SHIFT = 24
_SOURCE_MASK = 0x7F
_SYSTEM_ERROR = 1 << 15


class ErrorCode(IntEnum):
    """libgpg-error codes the binding gives a name to."""

    NO_ERROR = 0
    GENERAL = 1
    NO_PUBKEY = 9
    BAD_PASSPHRASE = 11
    NO_SECKEY = 17
    UNUSABLE_PUBKEY = 53
    INV_VALUE = 55
    NO_DATA = 58
    CONFLICT = 70
    CANCELED = 99
    UNSUPPORTED_PROTOCOL = 121
    INV_ENGINE = 150
    DECRYPT_FAILED = 152
    NOT_OPERATIONAL = 176
    FULLY_CANCELED = 198
    EOF = 16383


class GpgBridgeError(Exception):
    """Base exception for all gpgbridge errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class LibraryNotFoundError(GpgBridgeError):
    """The GPGME shared library could not be located or loaded."""


class HandleReleasedError(GpgBridgeError):
    """A released context, data object or key was used."""


class KeyListStateError(GpgBridgeError):
    """Key enumeration called out of order (start twice, end without start)."""


class TransportError(GpgBridgeError):
    """Reading, writing or seeking a data object failed."""

    def __init__(self, message: str, *, errno: int | None = None) -> None:
        super().__init__(message, errno=errno)
        self.errno = errno


class PassphraseRejectedError(GpgBridgeError):
    """The engine rejected a passphrase that cannot be changed."""


class EngineError(GpgBridgeError):
    """
    An operation failed inside the engine.

    Attributes:
        raw: The full gpgme_error_t value.
        code: Stable error code (low 16 bits).
        source: Component that produced the error.
        operation: Name of the binding operation that failed, if known.
    """

    def __init__(
        self, raw: int, *, operation: str | None = None, message: str | None = None
    ) -> None:
        self.raw = raw
        self.code = raw & _CODE_MASK
        self.source = (raw >> _SOURCE_SHIFT) & _SOURCE_MASK
        self.operation = operation
        if message is None:
            message = _describe(raw)
        context: dict[str, Any] = {"code": self.code}
        if operation is not None:
            context["operation"] = operation
        super().__init__(message, **context)

    @property
    def is_system_error(self) -> bool:
        """True for errno-class (I/O) errors, e.g. a failed stream callback."""
        return bool(self.code & _SYSTEM_ERROR)

    @property
    def errno(self) -> int | None:
        """The errno behind a system error, or None for other codes."""
        if not self.is_system_error:
            return None
        from gpgbridge.core import native

        if not native.is_loaded():
            return None
        return native.errno_from_code(self.code)

    @property
    def code_name(self) -> str | None:
        try:
            return ErrorCode(self.code).name
        except ValueError:
            return None


class CanceledError(EngineError):
    """The operation was canceled, usually by the passphrase callback."""


class UnsupportedProtocolError(EngineError):
    """The engine does not support the requested protocol."""


class BadPassphraseError(EngineError):
    """The engine rejected the supplied passphrase."""


_ERROR_CLASSES: dict[int, type[EngineError]] = {
    ErrorCode.CANCELED: CanceledError,
    ErrorCode.FULLY_CANCELED: CanceledError,
    ErrorCode.UNSUPPORTED_PROTOCOL: UnsupportedProtocolError,
    ErrorCode.BAD_PASSPHRASE: BadPassphraseError,
}


def _describe(raw: int) -> str:
    # Imported late: native imports this module for its error types.
    from gpgbridge.core import native

    if native.is_loaded():
        return native.strerror(raw)
    code = raw & _CODE_MASK
    try:
        return f"GPGME error {ErrorCode(code).name}"
    except ValueError:
        return f"GPGME error {code}"


def error_from_code(raw: int, *, operation: str | None = None) -> EngineError | None:
    """
    Map a gpgme_error_t value to an exception instance.

    Args:
        raw: Value returned by an engine call.
        operation: Operation name recorded on the error.

    Returns:
        None when the code means success, otherwise an EngineError subclass.
    """
    code = raw & _CODE_MASK
    if code == ErrorCode.NO_ERROR:
        return None
    error_cls = _ERROR_CLASSES.get(code, EngineError)
    return error_cls(raw, operation=operation)


def check_error(raw: int, operation: str) -> None:
    """Raise the mapped EngineError unless raw means success."""
    error = error_from_code(raw, operation=operation)
    if error is not None:
        raise error
