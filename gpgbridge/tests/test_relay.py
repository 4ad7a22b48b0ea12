import os
from collections.abc import Iterator
from typing import BinaryIO
from unittest.mock import Mock

import pytest

from gpgbridge.exceptions import ErrorCode, PassphraseRejectedError
from gpgbridge.passphrase import Passphrase
from gpgbridge.relay import PassphraseRelay, _relays


@pytest.fixture
def pipe() -> Iterator[tuple[int, int]]:
    read_fd, write_fd = os.pipe()
    yield read_fd, write_fd
    for fd in (read_fd, write_fd):
        try:
            os.close(fd)
        except OSError:
            pass


def _drain(read_fd: int, write_fd: int) -> bytes:
    os.close(write_fd)
    chunks = []
    while chunk := os.read(read_fd, 1024):
        chunks.append(chunk)
    return b"".join(chunks)


def _write_password(uid_hint: str, prev_was_bad: bool, channel: BinaryIO) -> None:
    channel.write(b"password\n")


def test_respond_writes_callback_output_to_descriptor(pipe: tuple[int, int]) -> None:
    read_fd, write_fd = pipe
    relay = PassphraseRelay(_write_password)

    result = relay.respond(b"ABCDEF Test User <test@example.com>", False, write_fd)

    assert result == ErrorCode.NO_ERROR
    assert relay.failure is None
    assert _drain(read_fd, write_fd) == b"password\n"


def test_respond_leaves_engine_descriptor_open(pipe: tuple[int, int]) -> None:
    _, write_fd = pipe
    relay = PassphraseRelay(_write_password)

    relay.respond(None, False, write_fd)

    os.fstat(write_fd)


def test_respond_passes_decoded_hint_and_flag(pipe: tuple[int, int]) -> None:
    _, write_fd = pipe
    callback = Mock()
    relay = PassphraseRelay(callback)

    relay.respond(b"ABCDEF Test User", True, write_fd)

    hint, prev_was_bad, _ = callback.call_args.args
    assert hint == "ABCDEF Test User"
    assert prev_was_bad is True


def test_failing_callback_cancels_and_keeps_first_failure(pipe: tuple[int, int]) -> None:
    _, write_fd = pipe
    first, second = RuntimeError("no secret"), RuntimeError("still none")
    relay = PassphraseRelay(Mock(side_effect=[first, second]))

    assert relay.respond(None, False, write_fd) == ErrorCode.CANCELED
    assert relay.respond(None, True, write_fd) == ErrorCode.CANCELED
    assert relay.failure is first

    relay.clear_failure()
    assert relay.failure is None


def test_interrupt_in_callback_is_captured_not_raised(pipe: tuple[int, int]) -> None:
    _, write_fd = pipe
    relay = PassphraseRelay(Mock(side_effect=KeyboardInterrupt))

    assert relay.respond(None, False, write_fd) == ErrorCode.CANCELED
    assert isinstance(relay.failure, KeyboardInterrupt)


def test_passphrase_rejection_cancels(pipe: tuple[int, int]) -> None:
    _, write_fd = pipe
    relay = PassphraseRelay(Passphrase(b"password"))

    assert relay.respond(None, True, write_fd) == ErrorCode.CANCELED
    assert isinstance(relay.failure, PassphraseRejectedError)


def test_thunk_routes_hook_to_relay(pipe: tuple[int, int]) -> None:
    read_fd, write_fd = pipe
    relay = PassphraseRelay(_write_password)

    result = relay.thunk(relay.hook, b"hint", b"info", 0, write_fd)

    assert result == ErrorCode.NO_ERROR
    assert _drain(read_fd, write_fd) == b"password\n"


def test_thunk_cancels_for_detached_relay(pipe: tuple[int, int]) -> None:
    _, write_fd = pipe
    callback = Mock()
    relay = PassphraseRelay(callback)
    relay.detach()
    relay.detach()

    assert relay.thunk(relay.hook, b"hint", None, 0, write_fd) == ErrorCode.CANCELED
    assert relay.hook not in _relays
    callback.assert_not_called()
