from gpgbridge.models.constants import EncryptFlag, KeyListMode, PinEntryMode, Protocol, coerce_enum


def test_engine_values() -> None:
    assert Protocol.OPENPGP == 0
    assert Protocol.CMS == 1
    assert PinEntryMode.LOOPBACK == 4
    assert EncryptFlag.ALWAYS_TRUST == 1
    assert KeyListMode.LOCAL == 1


def test_flags_combine() -> None:
    flags = EncryptFlag.ALWAYS_TRUST | EncryptFlag.NO_COMPRESS

    assert int(flags) == 17
    assert EncryptFlag.NO_COMPRESS in flags


def test_coerce_enum_known_value() -> None:
    assert coerce_enum(Protocol, 1) is Protocol.CMS


def test_coerce_enum_keeps_unknown_value() -> None:
    value = coerce_enum(Protocol, 42)

    assert value == 42
    assert not isinstance(value, Protocol)
