"""Zeroable passphrase holder usable directly as a passphrase callback."""

import ctypes
import hmac
import warnings
from typing import BinaryIO, Self

from gpgbridge.exceptions import PassphraseRejectedError


def _secure_zero(data: bytearray) -> None:
    if len(data) == 0:
        return
    try:
        address = ctypes.addressof((ctypes.c_char * len(data)).from_buffer(data))
        ctypes.memset(address, 0, len(data))
    except Exception as exc:
        warnings.warn(f"ctypes.memset failed, using fallback: {exc}", RuntimeWarning)
        for i in range(len(data)):
            data[i] = 0


class Passphrase:
    """
    A secret kept in a mutable buffer that is zeroed on clear().

    Instances are passphrase callbacks: the relay calls them with the
    engine's hint, the "previous attempt was bad" flag and the channel to
    write to. A fixed secret cannot do better on a second attempt, so a bad
    previous attempt raises, which cancels the operation.

    Example:
        with Passphrase.from_string("password") as secret:
            ctx.set_passphrase_callback(secret)
            ctx.decrypt(cipher, plain)
    """

    __slots__ = ("_data", "_cleared")

    def __init__(self, secret: bytes | bytearray) -> None:
        self._data = bytearray(secret)
        # The channel protocol is line-based: the trailing newline ends the secret.
        if self._data.endswith(b"\n"):
            del self._data[-1]
        self._cleared = False

    @classmethod
    def from_string(cls, secret: str, encoding: str = "utf-8") -> Self:
        """Create from a string, zeroing the intermediate encoding."""
        encoded = bytearray(secret, encoding)
        try:
            return cls(encoded)
        finally:
            _secure_zero(encoded)

    def __call__(self, uid_hint: str, prev_was_bad: bool, channel: BinaryIO) -> None:
        self._check_cleared()
        if prev_was_bad:
            msg = "Passphrase rejected by the engine"
            raise PassphraseRejectedError(msg, uid_hint=uid_hint)
        channel.write(self._data)
        channel.write(b"\n")

    def __del__(self) -> None:
        self.clear()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.clear()

    def clear(self) -> None:
        """Zero the secret. Idempotent."""
        if self._cleared:
            return
        _secure_zero(self._data)
        self._cleared = True

    @property
    def is_cleared(self) -> bool:
        return self._cleared

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        if self._cleared:
            return "Passphrase(<cleared>)"
        return f"Passphrase(<{len(self._data)} bytes>)"

    def __eq__(self, other: object) -> bool:
        """Constant-time comparison."""
        if isinstance(other, Passphrase):
            if self._cleared or other._cleared:
                return False
            return hmac.compare_digest(self._data, other._data)
        return NotImplemented

    def __hash__(self) -> int:
        raise TypeError("Passphrase is not hashable")

    def _check_cleared(self) -> None:
        if self._cleared:
            raise RuntimeError("Passphrase has been cleared")
