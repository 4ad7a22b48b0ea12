"""
gpgbridge: Python binding to the GPGME engine.

The engine does the cryptography; this package moves bytes between Python
streams and the engine, relays passphrase requests, and exposes keys and
engine information as Python objects.

Example:
    ```python
    import io

    from gpgbridge import Context, Data, EncryptFlag, Passphrase, PinEntryMode, find_keys

    keys = find_keys("test@example.com")
    sink = io.BytesIO()

    with Context() as ctx:
        ctx.armor = True
        with Data.from_bytes(b"data\\n") as plain, Data.from_writer(sink) as cipher:
            ctx.encrypt(keys, EncryptFlag.ALWAYS_TRUST, plain, cipher)

        ctx.pinentry_mode = PinEntryMode.LOOPBACK
        ctx.set_passphrase_callback(Passphrase.from_string("password"))
        with Data.from_bytes(sink.getvalue()) as cipher, Data.from_memory() as plain:
            ctx.decrypt(cipher, plain)
            plain.seek(0)
            assert plain.read() == b"data\\n"
    ```
"""

from gpgbridge.config import GpgBridgeConfig
from gpgbridge.context import Context, KeyListState, decrypt, find_keys
from gpgbridge.data import Data
from gpgbridge.engine import engine_check_version, get_engine_info, version
from gpgbridge.exceptions import (
    BadPassphraseError,
    CanceledError,
    EngineError,
    ErrorCode,
    GpgBridgeError,
    HandleReleasedError,
    KeyListStateError,
    LibraryNotFoundError,
    PassphraseRejectedError,
    TransportError,
    UnsupportedProtocolError,
    error_from_code,
)
from gpgbridge.models import (
    EncryptFlag,
    EngineInfo,
    Key,
    KeyListMode,
    PinEntryMode,
    Protocol,
    SubKey,
    UserID,
    Validity,
)
from gpgbridge.passphrase import Passphrase
from gpgbridge.relay import PassphraseRelay

__version__ = "0.1.0"

__all__ = [
    # Session and transport
    "Context",
    "Data",
    "GpgBridgeConfig",
    "KeyListState",
    "Passphrase",
    "PassphraseRelay",
    # Convenience operations
    "find_keys",
    "decrypt",
    "version",
    "engine_check_version",
    "get_engine_info",
    # Models
    "Protocol",
    "PinEntryMode",
    "EncryptFlag",
    "KeyListMode",
    "Validity",
    "Key",
    "SubKey",
    "UserID",
    "EngineInfo",
    # Errors
    "ErrorCode",
    "error_from_code",
    "GpgBridgeError",
    "LibraryNotFoundError",
    "HandleReleasedError",
    "KeyListStateError",
    "TransportError",
    "PassphraseRejectedError",
    "EngineError",
    "CanceledError",
    "UnsupportedProtocolError",
    "BadPassphraseError",
]
