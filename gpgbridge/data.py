"""
Data objects: the byte transport between host streams and the engine.

A Data wraps one engine data handle. Memory and descriptor backed objects
are handled entirely by the engine; callback backed objects route the
engine's read/write/seek requests to a host stream through the module-level
callbacks below, which find their Data through the handle table.

Callbacks run synchronously on the thread that started the enclosing
operation. They never raise into the engine: a failing host stream is
recorded on the Data, errno is set for the engine, and -1 is returned so the
operation fails with an engine error instead of continuing on bad data.
"""

import ctypes
import errno
import os
import weakref
from typing import IO, Any, NoReturn, Protocol, Self, runtime_checkable

import structlog

from gpgbridge.config import GpgBridgeConfig
from gpgbridge.core import native
from gpgbridge.core.handles import HandleTable
from gpgbridge.exceptions import HandleReleasedError, TransportError, check_error

logger = structlog.get_logger(__name__)

_DEFAULT_CHUNK_SIZE = 8192


@runtime_checkable
class Reader(Protocol):
    def read(self, size: int, /) -> bytes | None: ...


@runtime_checkable
class Writer(Protocol):
    def write(self, data: bytes, /) -> int | None: ...


@runtime_checkable
class Seeker(Protocol):
    def seek(self, offset: int, whence: int = ..., /) -> int: ...


_streams: HandleTable["Data"] = HandleTable()


def _dispatch_read(handle: int | None, buffer: int, size: int) -> int:
    data = _streams.get(handle)
    if data is None:
        native.set_errno(errno.EBADF)
        return -1
    return data._pull(buffer, size)


def _dispatch_write(handle: int | None, buffer: int, size: int) -> int:
    data = _streams.get(handle)
    if data is None:
        native.set_errno(errno.EBADF)
        return -1
    return data._push(buffer, size)


def _dispatch_seek(handle: int | None, offset: int, whence: int) -> int:
    data = _streams.get(handle)
    if data is None:
        native.set_errno(errno.EBADF)
        return -1
    return data._reposition(offset, whence)


# Module-level so the C thunks outlive every data handle that points at them.
_READ_THUNK = native.READ_CB(_dispatch_read)
_WRITE_THUNK = native.WRITE_CB(_dispatch_write)
_SEEK_THUNK = native.SEEK_CB(_dispatch_seek)


def _release_handle(dh: int, stream_id: int | None) -> None:
    if stream_id is not None:
        _streams.discard(stream_id)
    native.data_release(dh)


def _is_count(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class Data:
    """
    Engine data buffer.

    Use the from_* constructors. Data objects are single-thread objects and
    context managers; close() is idempotent.

    Example:
        with Data.from_bytes(b"data\\n") as plain, Data.from_writer(sink) as cipher:
            ctx.encrypt([key], EncryptFlag.ALWAYS_TRUST, plain, cipher)
    """

    def __init__(
        self,
        *,
        reader: Reader | None = None,
        writer: Writer | None = None,
        seeker: Seeker | None = None,
        config: GpgBridgeConfig | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._seeker = seeker
        self._chunk_size = config.read_chunk_size if config else _DEFAULT_CHUNK_SIZE
        self._lib = native.load_library(config.library_path if config else None)
        self._dh: int | None = None
        self._stream_id: int | None = None
        self._callbacks: native.DataCallbacks | None = None
        self._fault: BaseException | None = None
        self._finalizer: weakref.finalize | None = None

    # Constructors

    @classmethod
    def from_memory(cls, *, config: GpgBridgeConfig | None = None) -> Self:
        """Empty buffer held in engine memory."""
        data = cls(config=config)
        dh = ctypes.c_void_p()
        check_error(data._lib.gpgme_data_new(ctypes.byref(dh)), "data_new")
        data._adopt(dh.value)
        return data

    @classmethod
    def from_bytes(cls, content: bytes, *, config: GpgBridgeConfig | None = None) -> Self:
        """Buffer initialized with a copy of content."""
        data = cls(config=config)
        dh = ctypes.c_void_p()
        err = data._lib.gpgme_data_new_from_mem(ctypes.byref(dh), bytes(content), len(content), 1)
        check_error(err, "data_new_from_mem")
        data._adopt(dh.value)
        return data

    @classmethod
    def from_file(cls, file: IO[Any] | int, *, config: GpgBridgeConfig | None = None) -> Self:
        """
        Buffer backed by an open file descriptor.

        The engine reads and writes the descriptor directly; the descriptor
        stays owned by the caller.
        """
        fd = file if isinstance(file, int) else file.fileno()
        data = cls(config=config)
        dh = ctypes.c_void_p()
        check_error(data._lib.gpgme_data_new_from_fd(ctypes.byref(dh), fd), "data_new_from_fd")
        data._adopt(dh.value)
        return data

    @classmethod
    def from_reader(cls, reader: Reader, *, config: GpgBridgeConfig | None = None) -> Self:
        """Engine pulls bytes from reader."""
        return cls._from_callbacks(reader=reader, config=config)

    @classmethod
    def from_writer(cls, writer: Writer, *, config: GpgBridgeConfig | None = None) -> Self:
        """Engine pushes bytes to writer."""
        return cls._from_callbacks(writer=writer, config=config)

    @classmethod
    def from_read_writer(cls, stream: Any, *, config: GpgBridgeConfig | None = None) -> Self:
        """Engine reads from and writes to stream."""
        return cls._from_callbacks(reader=stream, writer=stream, config=config)

    @classmethod
    def from_read_write_seeker(cls, stream: Any, *, config: GpgBridgeConfig | None = None) -> Self:
        """Engine reads, writes and seeks stream."""
        return cls._from_callbacks(reader=stream, writer=stream, seeker=stream, config=config)

    @classmethod
    def _from_callbacks(
        cls,
        *,
        reader: Reader | None = None,
        writer: Writer | None = None,
        seeker: Seeker | None = None,
        config: GpgBridgeConfig | None = None,
    ) -> Self:
        data = cls(reader=reader, writer=writer, seeker=seeker, config=config)
        callbacks = native.DataCallbacks()
        if reader is not None:
            callbacks.read = _READ_THUNK
        if writer is not None:
            callbacks.write = _WRITE_THUNK
        if seeker is not None:
            callbacks.seek = _SEEK_THUNK
        # The engine keeps a pointer to the struct for the handle's lifetime.
        data._callbacks = callbacks
        stream_id = _streams.register(data)
        dh = ctypes.c_void_p()
        err = data._lib.gpgme_data_new_from_cbs(
            ctypes.byref(dh), ctypes.byref(callbacks), stream_id
        )
        try:
            check_error(err, "data_new_from_cbs")
        except Exception:
            _streams.discard(stream_id)
            raise
        data._adopt(dh.value, stream_id)
        return data

    def _adopt(self, dh: int | None, stream_id: int | None = None) -> None:
        self._dh = dh
        self._stream_id = stream_id
        self._finalizer = weakref.finalize(self, _release_handle, dh, stream_id)
        logger.debug("Data created", callbacks=stream_id is not None)

    # Lifecycle

    @property
    def closed(self) -> bool:
        return self._finalizer is None or not self._finalizer.alive

    @property
    def handle(self) -> int:
        """Engine data handle. Raises if the object is closed."""
        if self.closed:
            msg = "Data object is closed"
            raise HandleReleasedError(msg)
        return self._dh

    def close(self) -> None:
        """Release the engine handle. Idempotent."""
        if self.closed:
            return
        self._finalizer()
        logger.debug("Data closed")

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    # Callback side: called by the engine through the module-level dispatchers

    def _pull(self, buffer: int, size: int) -> int:
        try:
            chunk = self._reader.read(size)
            if chunk is None:
                no_data = BlockingIOError(errno.EAGAIN, "stream has no data available")
                self._record_fault(no_data, "read", errno.EAGAIN)
                return -1
            count = len(chunk)
            if count > size:
                msg = f"reader returned {count} bytes for a {size} byte request"
                raise ValueError(msg)
            if count:
                ctypes.memmove(buffer, bytes(chunk), count)
            return count
        except BaseException as e:
            self._record_fault(e, "read")
            return -1

    def _push(self, buffer: int, size: int) -> int:
        try:
            written = self._writer.write(ctypes.string_at(buffer, size))
            if written is None:
                return size
            if not _is_count(written) or written > size:
                msg = f"writer returned {written!r} for a {size} byte write"
                raise ValueError(msg)
            return written
        except BaseException as e:
            self._record_fault(e, "write")
            return -1

    def _reposition(self, offset: int, whence: int) -> int:
        try:
            position = self._seeker.seek(offset, whence)
            if not _is_count(position):
                msg = f"seeker returned {position!r} as the new position"
                raise ValueError(msg)
            return position
        except BaseException as e:
            self._record_fault(e, "seek")
            return -1

    def _record_fault(self, error: BaseException, action: str, code: int = errno.EIO) -> None:
        if self._fault is None:
            self._fault = error
        logger.warning("Host stream failed", action=action, error_type=type(error).__name__)
        native.set_errno(code)

    @property
    def fault(self) -> BaseException | None:
        """First host stream failure seen since the last operation started."""
        return self._fault

    def clear_fault(self) -> None:
        self._fault = None

    # Direct access

    def read(self, size: int = -1) -> bytes:
        """
        Read from the buffer.

        Args:
            size: Maximum bytes to read; negative reads to the end.

        Returns:
            The bytes read; b"" at end of stream.

        Raises:
            TransportError: If the engine reports a read failure.
        """
        if size < 0:
            chunks = []
            while chunk := self._read_once(self._chunk_size):
                chunks.append(chunk)
            return b"".join(chunks)
        if size == 0:
            return b""
        return self._read_once(size)

    def _read_once(self, size: int) -> bytes:
        self.clear_fault()
        buffer = ctypes.create_string_buffer(size)
        count = self._lib.gpgme_data_read(self.handle, buffer, size)
        if count < 0:
            self._raise_transport_error("read")
        return buffer.raw[:count]

    def write(self, content: bytes) -> int:
        """
        Write to the buffer.

        Returns:
            Number of bytes written.

        Raises:
            TransportError: If the engine reports a write failure or accepts nothing.
        """
        if not content:
            return 0
        self.clear_fault()
        payload = bytes(content)
        count = self._lib.gpgme_data_write(self.handle, payload, len(payload))
        if count < 0:
            self._raise_transport_error("write")
        if count == 0:
            self._raise_transport_error("write", "Data write reached end of stream")
        return count

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        """Move the buffer position; returns the new absolute position."""
        self.clear_fault()
        position = self._lib.gpgme_data_seek(self.handle, offset, whence)
        if position < 0:
            self._raise_transport_error("seek")
        return position

    def _raise_transport_error(self, action: str, message: str | None = None) -> NoReturn:
        code = None if message else ctypes.get_errno()
        fault, self._fault = self._fault, None
        if fault is not None and not isinstance(fault, Exception):
            raise fault
        if message is None:
            message = f"Data {action} failed: {os.strerror(code)}"
        raise TransportError(message, errno=code) from fault

    def tell(self) -> int:
        return self.seek(0, os.SEEK_CUR)

    @property
    def name(self) -> str:
        """File name associated with the buffer, if any."""
        return native.decode(self._lib.gpgme_data_get_file_name(self.handle))

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        kind = "callbacks" if self._stream_id is not None else "engine"
        return f"Data(<{kind}, {state}>)"
