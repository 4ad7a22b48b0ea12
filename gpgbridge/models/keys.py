"""
Key enumeration results and engine descriptors.

Records are copied out of engine memory as soon as they are produced, so
nothing here reads native memory after construction. Subkeys and user IDs
live in tuples owned by their Key; each node keeps its parent alive and
steps to its successor by index.
"""

import weakref
from collections.abc import Iterator
from ctypes import _Pointer
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Self

import structlog

from gpgbridge.core import native
from gpgbridge.exceptions import HandleReleasedError
from gpgbridge.models.constants import KeyListMode, Protocol, Validity, coerce_enum

logger = structlog.get_logger(__name__)


def _walk(head: _Pointer) -> Iterator:
    node = head
    while node:
        record = node.contents
        yield record
        node = record.next


def _timestamp(raw: int) -> datetime | None:
    """Convert an engine timestamp; non-positive values mean 'not set'."""
    if raw <= 0:
        return None
    return datetime.fromtimestamp(raw, tz=timezone.utc)


@dataclass(frozen=True, kw_only=True)
class SubKey:
    """
    A primary key or subkey.

    Attributes:
        key: Owning key.
        index: Position in key.subkeys.
        created: Creation time, or None if unknown.
        expires: Expiration time, or None if the subkey does not expire.
    """

    key: "Key" = field(repr=False, compare=False)
    index: int
    revoked: bool
    expired: bool
    disabled: bool
    invalid: bool
    can_encrypt: bool
    can_sign: bool
    can_certify: bool
    can_authenticate: bool
    is_qualified: bool
    is_cardkey: bool
    secret: bool
    key_id: str
    fingerprint: str
    created: datetime | None
    expires: datetime | None
    card_number: str

    @classmethod
    def from_record(cls, key: "Key", index: int, record: native.SubKeyRecord) -> Self:
        return cls(
            key=key,
            index=index,
            revoked=bool(record.revoked),
            expired=bool(record.expired),
            disabled=bool(record.disabled),
            invalid=bool(record.invalid),
            can_encrypt=bool(record.can_encrypt),
            can_sign=bool(record.can_sign),
            can_certify=bool(record.can_certify),
            can_authenticate=bool(record.can_authenticate),
            is_qualified=bool(record.is_qualified),
            is_cardkey=bool(record.is_cardkey),
            secret=bool(record.secret),
            key_id=native.decode(record.keyid),
            fingerprint=native.decode(record.fpr),
            created=_timestamp(record.timestamp),
            expires=_timestamp(record.expires),
            card_number=native.decode(record.card_number),
        )

    def next(self) -> "SubKey | None":
        """Following subkey, or None after the last one."""
        siblings = self.key.subkeys
        following = self.index + 1
        return siblings[following] if following < len(siblings) else None


@dataclass(frozen=True, kw_only=True)
class UserID:
    """A user ID bound to a key."""

    key: "Key" = field(repr=False, compare=False)
    index: int
    revoked: bool
    invalid: bool
    validity: Validity | int
    uid: str
    name: str
    comment: str
    email: str

    @classmethod
    def from_record(cls, key: "Key", index: int, record: native.UserIDRecord) -> Self:
        return cls(
            key=key,
            index=index,
            revoked=bool(record.revoked),
            invalid=bool(record.invalid),
            validity=coerce_enum(Validity, record.validity),
            uid=native.decode(record.uid),
            name=native.decode(record.name),
            comment=native.decode(record.comment),
            email=native.decode(record.email),
        )

    def next(self) -> "UserID | None":
        """Following user ID, or None after the last one."""
        siblings = self.key.user_ids
        following = self.index + 1
        return siblings[following] if following < len(siblings) else None


class Key:
    """
    A key returned by enumeration.

    Holds one engine reference so the key can be used as an encryption
    recipient. The reference is dropped by release() or, failing that, when
    the key and everything derived from it is garbage collected.
    """

    def __init__(self, record: native.KeyRecord, address: int | None = None) -> None:
        """
        Args:
            record: Engine key record to copy.
            address: Engine key handle owned by this object, if any.
        """
        self.revoked = bool(record.revoked)
        self.expired = bool(record.expired)
        self.disabled = bool(record.disabled)
        self.invalid = bool(record.invalid)
        self.can_encrypt = bool(record.can_encrypt)
        self.can_sign = bool(record.can_sign)
        self.can_certify = bool(record.can_certify)
        self.can_authenticate = bool(record.can_authenticate)
        self.is_qualified = bool(record.is_qualified)
        self.secret = bool(record.secret)
        self.protocol: Protocol | int = coerce_enum(Protocol, record.protocol)
        self.issuer_serial = native.decode(record.issuer_serial)
        self.issuer_name = native.decode(record.issuer_name)
        self.chain_id = native.decode(record.chain_id)
        self.owner_trust: Validity | int = coerce_enum(Validity, record.owner_trust)
        self.keylist_mode = KeyListMode(record.keylist_mode)
        self.subkeys: tuple[SubKey, ...] = tuple(
            SubKey.from_record(self, index, sub) for index, sub in enumerate(_walk(record.subkeys))
        )
        self.user_ids: tuple[UserID, ...] = tuple(
            UserID.from_record(self, index, uid) for index, uid in enumerate(_walk(record.uids))
        )
        fpr = native.decode(record.fpr)
        if not fpr and self.subkeys:
            fpr = self.subkeys[0].fingerprint
        self.fingerprint = fpr

        self._address = address
        self._finalizer = weakref.finalize(self, native.key_unref, address) if address else None

    @classmethod
    def from_native(cls, address: int) -> Self:
        """Take ownership of an engine key handle."""
        return cls(native.KeyRecord.from_address(address), address)

    @property
    def native_handle(self) -> int:
        """Engine handle for passing this key back to the engine."""
        if self._finalizer is None or not self._finalizer.alive:
            msg = "Key has been released"
            raise HandleReleasedError(msg, fingerprint=self.fingerprint)
        return self._address

    @property
    def released(self) -> bool:
        return self._finalizer is None or not self._finalizer.alive

    @property
    def key_id(self) -> str:
        return self.subkeys[0].key_id if self.subkeys else ""

    def release(self) -> None:
        """Drop the engine reference. Idempotent; the copied fields stay readable."""
        if self._finalizer is not None and self._finalizer.alive:
            self._finalizer()
            logger.debug("Key released", fingerprint=self.fingerprint)

    def __repr__(self) -> str:
        uid = self.user_ids[0].uid if self.user_ids else ""
        return f"Key(fingerprint={self.fingerprint!r}, uid={uid!r})"


@dataclass(frozen=True, kw_only=True)
class EngineInfo:
    """One engine known to the library."""

    protocol: Protocol | int
    file_name: str
    version: str
    required_version: str
    home_dir: str
    _chain: list["EngineInfo"] = field(repr=False, compare=False)
    _index: int = field(repr=False, compare=False)

    @classmethod
    def chain_from_native(cls, head: _Pointer) -> "EngineInfo | None":
        """Copy an engine info list, returning its first entry."""
        chain: list[EngineInfo] = []
        for index, record in enumerate(_walk(head)):
            chain.append(
                cls(
                    protocol=coerce_enum(Protocol, record.protocol),
                    file_name=native.decode(record.file_name),
                    version=native.decode(record.version),
                    required_version=native.decode(record.req_version),
                    home_dir=native.decode(record.home_dir),
                    _chain=chain,
                    _index=index,
                )
            )
        return chain[0] if chain else None

    def next(self) -> "EngineInfo | None":
        following = self._index + 1
        return self._chain[following] if following < len(self._chain) else None

    def __iter__(self) -> Iterator["EngineInfo"]:
        """Iterate from this entry to the end of the chain."""
        return iter(self._chain[self._index :])
