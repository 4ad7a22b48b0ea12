import dataclasses

import pytest

from gpgbridge.config import GpgBridgeConfig
from gpgbridge.models.constants import KeyListMode, PinEntryMode, Protocol


def test_defaults() -> None:
    config = GpgBridgeConfig()

    assert config.library_path is None
    assert config.protocol is Protocol.OPENPGP
    assert config.armor is False
    assert config.keylist_mode is KeyListMode.LOCAL
    assert config.pinentry_mode is PinEntryMode.DEFAULT
    assert config.read_chunk_size == 8192
    assert not config.needs_engine_info


def test_home_dir_requires_engine_info() -> None:
    assert GpgBridgeConfig(home_dir="/tmp/gnupg").needs_engine_info
    assert GpgBridgeConfig(engine_path="/usr/bin/gpg").needs_engine_info


def test_config_is_frozen() -> None:
    config = GpgBridgeConfig()

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.armor = True


def test_config_is_keyword_only() -> None:
    with pytest.raises(TypeError):
        GpgBridgeConfig("/usr/lib/libgpgme.so")


@pytest.mark.parametrize("size", [0, -1])
def test_rejects_non_positive_chunk_size(size: int) -> None:
    with pytest.raises(ValueError, match="read_chunk_size"):
        GpgBridgeConfig(read_chunk_size=size)


@pytest.mark.parametrize("protocol", [Protocol.UNKNOWN, Protocol.DEFAULT])
def test_rejects_non_concrete_protocol(protocol: Protocol) -> None:
    with pytest.raises(ValueError, match="protocol"):
        GpgBridgeConfig(protocol=protocol)


@pytest.mark.parametrize("field_name", ["library_path", "engine_path", "home_dir"])
def test_rejects_empty_paths(field_name: str) -> None:
    with pytest.raises(ValueError, match=field_name):
        GpgBridgeConfig(**{field_name: ""})
