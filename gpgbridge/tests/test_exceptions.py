import errno

import pytest

from gpgbridge.core import native
from gpgbridge.exceptions import (
    BadPassphraseError,
    CanceledError,
    EngineError,
    ErrorCode,
    GpgBridgeError,
    TransportError,
    UnsupportedProtocolError,
    check_error,
    error_from_code,
)


@pytest.fixture
def no_library(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(native, "_library", None)


def test_gpg_bridge_error_str_without_context() -> None:
    error = GpgBridgeError("Something failed")

    assert str(error) == "Something failed"


def test_gpg_bridge_error_str_with_context() -> None:
    error = GpgBridgeError("Failed", operation="decrypt", attempt=3)

    assert "Failed" in str(error)
    assert "operation='decrypt'" in str(error)
    assert "attempt=3" in str(error)


def test_no_error_maps_to_none() -> None:
    assert error_from_code(ErrorCode.NO_ERROR) is None


def test_no_error_with_source_bits_maps_to_none() -> None:
    assert error_from_code(7 << 24) is None


def test_check_error_returns_quietly_on_success() -> None:
    check_error(0, "decrypt")


@pytest.mark.usefixtures("no_library")
def test_check_error_raises_engine_error() -> None:
    with pytest.raises(EngineError) as exc_info:
        check_error(ErrorCode.DECRYPT_FAILED, "decrypt")

    assert exc_info.value.code == ErrorCode.DECRYPT_FAILED
    assert exc_info.value.operation == "decrypt"


@pytest.mark.usefixtures("no_library")
@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (ErrorCode.CANCELED, CanceledError),
        (ErrorCode.FULLY_CANCELED, CanceledError),
        (ErrorCode.UNSUPPORTED_PROTOCOL, UnsupportedProtocolError),
        (ErrorCode.BAD_PASSPHRASE, BadPassphraseError),
        (ErrorCode.GENERAL, EngineError),
    ],
)
def test_error_class_follows_code(code: int, expected: type[EngineError]) -> None:
    error = error_from_code(code)

    assert type(error) is expected


@pytest.mark.usefixtures("no_library")
def test_code_and_source_are_split_from_raw_value() -> None:
    raw = (7 << 24) | ErrorCode.CANCELED
    error = error_from_code(raw)

    assert error.raw == raw
    assert error.code == ErrorCode.CANCELED
    assert error.source == 7
    assert error.code_name == "CANCELED"


@pytest.mark.usefixtures("no_library")
def test_message_falls_back_to_code_name_without_library() -> None:
    error = error_from_code(ErrorCode.CANCELED, operation="decrypt")

    assert error.message == "GPGME error CANCELED"
    assert "operation='decrypt'" in str(error)


@pytest.mark.usefixtures("no_library")
def test_unknown_code_keeps_numeric_value() -> None:
    error = error_from_code(4242)

    assert error.code == 4242
    assert error.code_name is None
    assert error.message == "GPGME error 4242"


def test_message_comes_from_engine_when_loaded(fake_lib) -> None:
    fake_lib.gpgme_strerror.return_value = b"Operation cancelled"

    error = error_from_code(ErrorCode.CANCELED)

    assert error.message == "Operation cancelled"
    fake_lib.gpgme_strerror.assert_called_with(ErrorCode.CANCELED)


@pytest.mark.usefixtures("no_library")
def test_system_error_flag_marks_io_errors() -> None:
    assert error_from_code((1 << 15) | 5).is_system_error
    assert not error_from_code(ErrorCode.GENERAL).is_system_error


def test_system_error_asks_engine_for_errno(fake_lib) -> None:
    fake_lib.gpgme_err_code_to_errno.return_value = errno.EIO
    raw = (1 << 15) | 5

    assert error_from_code(raw).errno == errno.EIO
    fake_lib.gpgme_err_code_to_errno.assert_called_once_with(raw)


def test_non_system_error_has_no_errno(fake_lib) -> None:
    assert error_from_code(ErrorCode.GENERAL).errno is None
    fake_lib.gpgme_err_code_to_errno.assert_not_called()


@pytest.mark.usefixtures("no_library")
def test_errno_unknown_without_library() -> None:
    assert error_from_code((1 << 15) | 5).errno is None


def test_transport_error_keeps_errno() -> None:
    error = TransportError("Data read failed", errno=5)

    assert error.errno == 5
    assert "errno=5" in str(error)
