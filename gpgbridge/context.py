"""
Engine session.

A Context owns one engine context handle, its options, its passphrase relay
and its key enumeration cursor, and runs the operations. Every call blocks
the calling thread until the engine returns; callbacks into data objects
and the relay happen on that same thread. A Context must not be shared
between threads.
"""

import ctypes
import weakref
from collections.abc import Callable, Iterator, Sequence
from enum import StrEnum
from typing import Self

import structlog

from gpgbridge.config import GpgBridgeConfig
from gpgbridge.core import native
from gpgbridge.data import Data, Reader
from gpgbridge.exceptions import (
    CanceledError,
    EngineError,
    ErrorCode,
    HandleReleasedError,
    KeyListStateError,
    TransportError,
    check_error,
    error_from_code,
)
from gpgbridge.models.constants import EncryptFlag, KeyListMode, PinEntryMode, Protocol, coerce_enum
from gpgbridge.models.keys import EngineInfo, Key
from gpgbridge.relay import PassphraseCallback, PassphraseRelay

logger = structlog.get_logger(__name__)


class KeyListState(StrEnum):
    IDLE = "idle"
    LISTING = "listing"
    DONE = "done"
    FAILED = "failed"


class Context:
    """
    One conversation with the engine.

    Example:
        ```python
        with Context() as ctx:
            ctx.pinentry_mode = PinEntryMode.LOOPBACK
            ctx.set_passphrase_callback(Passphrase.from_string("password"))
            with Data.from_bytes(armored) as cipher, Data.from_memory() as plain:
                ctx.decrypt(cipher, plain)
                plain.seek(0)
                print(plain.read())
        ```

    Attributes:
        key: Key produced by the last successful keylist_next().
        key_error: Error that ended the last enumeration, None if it ended normally.
    """

    def __init__(self, config: GpgBridgeConfig | None = None) -> None:
        """
        Create a context and apply the configuration.

        Args:
            config: Context configuration. Uses defaults if not provided.

        Raises:
            LibraryNotFoundError: If libgpgme cannot be loaded.
            EngineError: If the engine refuses to create or configure the context.
        """
        self._config = config or GpgBridgeConfig()
        self._lib = native.load_library(self._config.library_path)

        handle = ctypes.c_void_p()
        check_error(self._lib.gpgme_new(ctypes.byref(handle)), "new")
        self._ctx: int = handle.value
        self._finalizer = weakref.finalize(self, native.context_release, handle.value)

        self.key: Key | None = None
        self.key_error: EngineError | None = None
        self._keylist_state = KeyListState.IDLE
        self._relay: PassphraseRelay | None = None

        try:
            self._apply_config()
        except Exception:
            self.release()
            raise
        logger.debug("Context created", protocol=self._config.protocol.name)

    def _apply_config(self) -> None:
        config = self._config
        self.protocol = config.protocol
        if config.needs_engine_info:
            self.set_engine_info(
                config.protocol, file_name=config.engine_path, home_dir=config.home_dir
            )
        self.armor = config.armor
        self.keylist_mode = config.keylist_mode
        self.pinentry_mode = config.pinentry_mode

    # Lifecycle

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    def _handle(self) -> int:
        if not self._finalizer.alive:
            msg = "Context has been released"
            raise HandleReleasedError(msg)
        return self._ctx

    def release(self) -> None:
        """Release the engine context. Idempotent."""
        if not self._finalizer.alive:
            return
        if self._relay is not None:
            self._relay.detach()
            self._relay = None
        self._finalizer()
        self._keylist_state = KeyListState.IDLE
        logger.debug("Context released")

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.release()

    # Options

    @property
    def armor(self) -> bool:
        """Whether output is ASCII armored."""
        return self._lib.gpgme_get_armor(self._handle()) != 0

    @armor.setter
    def armor(self, value: bool) -> None:
        self._lib.gpgme_set_armor(self._handle(), 1 if value else 0)

    @property
    def protocol(self) -> Protocol | int:
        return coerce_enum(Protocol, self._lib.gpgme_get_protocol(self._handle()))

    @protocol.setter
    def protocol(self, value: Protocol) -> None:
        """Raises UnsupportedProtocolError if the engine lacks the protocol."""
        check_error(self._lib.gpgme_set_protocol(self._handle(), int(value)), "set_protocol")

    @property
    def keylist_mode(self) -> KeyListMode:
        return KeyListMode(self._lib.gpgme_get_keylist_mode(self._handle()))

    @keylist_mode.setter
    def keylist_mode(self, value: KeyListMode) -> None:
        err = self._lib.gpgme_set_keylist_mode(self._handle(), int(value))
        check_error(err, "set_keylist_mode")

    @property
    def pinentry_mode(self) -> PinEntryMode | int:
        return coerce_enum(PinEntryMode, self._lib.gpgme_get_pinentry_mode(self._handle()))

    @pinentry_mode.setter
    def pinentry_mode(self, value: PinEntryMode) -> None:
        err = self._lib.gpgme_set_pinentry_mode(self._handle(), int(value))
        check_error(err, "set_pinentry_mode")

    def set_passphrase_callback(self, callback: PassphraseCallback | None) -> None:
        """
        Register the callback that supplies secrets, replacing any previous one.

        Args:
            callback: Called as callback(uid_hint, prev_was_bad, channel); must
                write the secret to channel. Raising cancels the operation.
                None unregisters the current callback.
        """
        ctx = self._handle()
        previous = self._relay
        if callback is None:
            self._lib.gpgme_set_passphrase_cb(ctx, None, None)
            self._relay = None
        else:
            relay = PassphraseRelay(callback)
            self._lib.gpgme_set_passphrase_cb(ctx, relay.thunk, relay.hook)
            self._relay = relay
        if previous is not None:
            previous.detach()

    def engine_info(self) -> EngineInfo | None:
        """Snapshot of the engines configured for this context."""
        return EngineInfo.chain_from_native(self._lib.gpgme_ctx_get_engine_info(self._handle()))

    def set_engine_info(
        self, protocol: Protocol, *, file_name: str | None = None, home_dir: str | None = None
    ) -> None:
        """Point this context's engine for protocol at another binary or home directory."""
        err = self._lib.gpgme_ctx_set_engine_info(
            self._handle(),
            int(protocol),
            file_name.encode() if file_name else None,
            home_dir.encode() if home_dir else None,
        )
        check_error(err, "set_engine_info")

    # Key enumeration

    @property
    def keylist_state(self) -> KeyListState:
        return self._keylist_state

    def keylist_start(self, pattern: str | None = None, secret_only: bool = False) -> None:
        """
        Start enumerating keys.

        Args:
            pattern: Match pattern (user ID, key ID, fingerprint). None lists all keys.
            secret_only: List only keys with a secret part.

        Raises:
            KeyListStateError: If an enumeration is still open.
            EngineError: If the engine cannot start the listing.
        """
        ctx = self._handle()
        if self._keylist_state is not KeyListState.IDLE:
            msg = "Key enumeration already in progress"
            raise KeyListStateError(msg, state=self._keylist_state.value)
        encoded = pattern.encode() if pattern else None
        err = self._lib.gpgme_op_keylist_start(ctx, encoded, 1 if secret_only else 0)
        check_error(err, "keylist_start")
        self.key = None
        self.key_error = None
        self._keylist_state = KeyListState.LISTING
        logger.debug("Key enumeration started", secret_only=secret_only)

    def keylist_next(self) -> bool:
        """
        Advance the enumeration.

        Returns:
            True with the next key in `key`; False at the end, in which case
            `key_error` is None if the listing finished and the error otherwise.

        Raises:
            KeyListStateError: If no enumeration was started.
        """
        ctx = self._handle()
        if self._keylist_state is KeyListState.IDLE:
            msg = "keylist_next called without keylist_start"
            raise KeyListStateError(msg)

        address = ctypes.c_void_p()
        err = self._lib.gpgme_op_keylist_next(ctx, ctypes.byref(address))
        error = error_from_code(err, operation="keylist_next")
        if error is None:
            self.key = Key.from_native(address.value)
            self.key_error = None
            self._keylist_state = KeyListState.LISTING
            return True

        self.key = None
        if error.code == ErrorCode.EOF:
            self.key_error = None
            self._keylist_state = KeyListState.DONE
        else:
            self.key_error = error
            self._keylist_state = KeyListState.FAILED
        return False

    def keylist_end(self) -> None:
        """
        Close the enumeration cursor.

        Raises:
            KeyListStateError: If no enumeration was started.
        """
        ctx = self._handle()
        if self._keylist_state is KeyListState.IDLE:
            msg = "keylist_end called without keylist_start"
            raise KeyListStateError(msg)
        self._keylist_state = KeyListState.IDLE
        check_error(self._lib.gpgme_op_keylist_end(ctx), "keylist_end")
        logger.debug("Key enumeration ended")

    def keylist(self, pattern: str | None = None, secret_only: bool = False) -> Iterator[Key]:
        """
        Iterate over matching keys.

        Raises:
            EngineError: If the listing fails part way, after the keys read so far.
        """
        self.keylist_start(pattern, secret_only)
        try:
            while self.keylist_next():
                yield self.key
        finally:
            self.keylist_end()
        if self.key_error is not None:
            raise self.key_error

    # Operations

    def decrypt(self, cipher: Data, plain: Data) -> None:
        """
        Decrypt cipher into plain.

        Raises:
            CanceledError: If the passphrase callback failed.
            EngineError: If decryption fails.
        """
        ctx = self._handle()
        cipher_dh, plain_dh = cipher.handle, plain.handle
        self._run(
            "decrypt", (cipher, plain), lambda: self._lib.gpgme_op_decrypt(ctx, cipher_dh, plain_dh)
        )

    def decrypt_verify(self, cipher: Data, plain: Data) -> None:
        """Decrypt cipher into plain and verify any embedded signature."""
        ctx = self._handle()
        cipher_dh, plain_dh = cipher.handle, plain.handle
        self._run(
            "decrypt_verify",
            (cipher, plain),
            lambda: self._lib.gpgme_op_decrypt_verify(ctx, cipher_dh, plain_dh),
        )

    def encrypt(
        self,
        recipients: Sequence[Key],
        flags: EncryptFlag,
        plain: Data,
        cipher: Data,
    ) -> None:
        """
        Encrypt plain into cipher for recipients.

        Args:
            recipients: Recipient keys. Empty means symmetric encryption with a
                passphrase from the callback.
            flags: Encryption flags.
            plain: Input.
            cipher: Output.
        """
        ctx = self._handle()
        plain_dh, cipher_dh = plain.handle, cipher.handle
        if recipients:
            handles = [key.native_handle for key in recipients]
            # NULL-terminated gpgme_key_t array, dropped with this frame after the call.
            recipient_array = (ctypes.c_void_p * (len(handles) + 1))(*handles)
        else:
            recipient_array = None
        self._run(
            "encrypt",
            (plain, cipher),
            lambda: self._lib.gpgme_op_encrypt(
                ctx, recipient_array, int(flags), plain_dh, cipher_dh
            ),
        )

    def _run(self, operation: str, data: tuple[Data, ...], call: Callable[[], int]) -> None:
        for item in data:
            item.clear_fault()
        relay = self._relay
        if relay is not None:
            relay.clear_failure()

        err = call()

        fault = next((item.fault for item in data if item.fault is not None), None)
        relay_failure = relay.failure if relay is not None else None
        for failure in (fault, relay_failure):
            if failure is not None and not isinstance(failure, Exception):
                raise failure

        error = error_from_code(err, operation=operation)
        if error is None:
            if fault is not None:
                msg = f"Stream failed during {operation}"
                raise TransportError(msg) from fault
            return
        if relay_failure is not None and not isinstance(error, CanceledError):
            error = CanceledError(err, operation=operation, message=error.message)
        logger.debug("Operation failed", operation=operation, code=error.code)
        raise error from (fault or relay_failure)


def find_keys(
    pattern: str | None = None, secret_only: bool = False, *, config: GpgBridgeConfig | None = None
) -> list[Key]:
    """
    List keys matching pattern in a throwaway context.

    Raises:
        EngineError: If the listing fails.
    """
    with Context(config) as ctx:
        return list(ctx.keylist(pattern, secret_only))


def decrypt(reader: Reader, *, config: GpgBridgeConfig | None = None) -> Data:
    """
    Decrypt everything readable from reader.

    Returns:
        A memory Data holding the plaintext, positioned at its start. The
        caller owns it and should close it.
    """
    with Context(config) as ctx, Data.from_reader(reader, config=config) as cipher:
        plain = Data.from_memory(config=config)
        try:
            ctx.decrypt(cipher, plain)
        except Exception:
            plain.close()
            raise
        plain.seek(0)
        return plain
