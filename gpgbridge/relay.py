"""
Passphrase relay between the engine and host code.

The engine asks for a secret by calling a C callback with a hint, a flag
telling whether the previous attempt failed, and a descriptor to write the
newline-terminated secret to. The relay hands the request to a host callback
and turns its outcome back into the engine's answer: 0, or GPG_ERR_CANCELED
when the callback raised, which aborts the operation instead of retrying.
"""

import os
from collections.abc import Callable
from typing import BinaryIO

import structlog

from gpgbridge.core import native
from gpgbridge.core.handles import HandleTable
from gpgbridge.exceptions import ErrorCode

logger = structlog.get_logger(__name__)

PassphraseCallback = Callable[[str, bool, BinaryIO], None]

_relays: HandleTable["PassphraseRelay"] = HandleTable()


def _dispatch(
    hook: int | None, uid_hint: bytes | None, _info: bytes | None, prev_was_bad: int, fd: int
) -> int:
    relay = _relays.get(hook)
    if relay is None:
        return ErrorCode.CANCELED
    return relay.respond(uid_hint, bool(prev_was_bad), fd)


# Module-level so the C thunk outlives every context registered with it.
_PASSPHRASE_THUNK = native.PASSPHRASE_CB(_dispatch)


class PassphraseRelay:
    """
    Relays one context's passphrase requests to a host callback.

    The callback receives (uid_hint, prev_was_bad, channel) and must write the
    secret to channel; raising any exception cancels the operation. The
    failure is kept in `failure` until the next operation starts.
    """

    def __init__(self, callback: PassphraseCallback) -> None:
        self._callback = callback
        self.failure: BaseException | None = None
        self.hook = _relays.register(self)

    @property
    def thunk(self) -> native.PASSPHRASE_CB:
        return _PASSPHRASE_THUNK

    def respond(self, uid_hint: bytes | None, prev_was_bad: bool, fd: int) -> int:
        """
        Answer one engine request.

        Args:
            uid_hint: Key/user hint from the engine.
            prev_was_bad: Whether the previous secret was rejected.
            fd: Engine-owned descriptor; wrapped without taking ownership.

        Returns:
            0 on success, GPG_ERR_CANCELED if the callback failed.
        """
        hint = native.decode(uid_hint)
        try:
            with os.fdopen(fd, "wb", closefd=False) as channel:
                self._callback(hint, prev_was_bad, channel)
        except BaseException as e:
            if self.failure is None:
                self.failure = e
            logger.warning("Passphrase callback failed, canceling", error_type=type(e).__name__)
            return ErrorCode.CANCELED
        return ErrorCode.NO_ERROR

    def clear_failure(self) -> None:
        self.failure = None

    def detach(self) -> None:
        """Stop resolving this relay from engine callbacks. Idempotent."""
        _relays.discard(self.hook)
