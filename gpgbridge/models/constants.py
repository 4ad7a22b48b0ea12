"""
GPGME enumerations and flag sets.

Values mirror gpgme.h so they can be passed to the engine unchanged.
"""

from enum import IntEnum, IntFlag
from typing import TypeVar

E = TypeVar("E", bound=IntEnum)


class Protocol(IntEnum):
    """Engine protocol identifiers."""

    OPENPGP = 0
    CMS = 1
    GPGCONF = 2
    ASSUAN = 3
    G13 = 4
    UISERVER = 5
    SPAWN = 6
    DEFAULT = 254
    UNKNOWN = 255


class PinEntryMode(IntEnum):
    """How the engine obtains secrets."""

    DEFAULT = 0
    ASK = 1
    CANCEL = 2
    ERROR = 3
    LOOPBACK = 4


class EncryptFlag(IntFlag):
    """Flags accepted by encrypt()."""

    NONE = 0
    ALWAYS_TRUST = 1
    NO_ENCRYPT_TO = 2
    PREPARE = 4
    EXPECT_SIGN = 8
    NO_COMPRESS = 16
    SYMMETRIC = 32
    THROW_KEYIDS = 64


class KeyListMode(IntFlag):
    """Scope of key enumeration."""

    LOCAL = 1
    EXTERN = 2
    SIGS = 4
    SIG_NOTATIONS = 8
    WITH_SECRET = 16
    WITH_TOFU = 32
    EPHEMERAL = 128
    VALIDATE = 256


class Validity(IntEnum):
    """Trust level of a key or user ID."""

    UNKNOWN = 0
    UNDEFINED = 1
    NEVER = 2
    MARGINAL = 3
    FULL = 4
    ULTIMATE = 5


def coerce_enum(enum_cls: type[E], value: int) -> E | int:
    """Return the enum member for value, or value itself if the engine is newer than us."""
    try:
        return enum_cls(value)
    except ValueError:
        return value
