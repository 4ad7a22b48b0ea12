"""
Engine constants and result records.

Records are immutable snapshots of what the engine reported.
"""

from gpgbridge.models.constants import (
    EncryptFlag,
    KeyListMode,
    PinEntryMode,
    Protocol,
    Validity,
)
from gpgbridge.models.keys import EngineInfo, Key, SubKey, UserID

__all__ = [
    # Constants
    "Protocol",
    "PinEntryMode",
    "EncryptFlag",
    "KeyListMode",
    "Validity",
    # Records
    "Key",
    "SubKey",
    "UserID",
    "EngineInfo",
]
