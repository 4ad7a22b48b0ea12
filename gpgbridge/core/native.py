"""
ctypes boundary to libgpgme.

Loads the shared library on first use, declares the C signatures the binding
calls, and mirrors the public record layouts (keys, subkeys, user IDs, engine
info) that results are copied out of.
"""

import ctypes
import ctypes.util
import platform
from ctypes import (
    CFUNCTYPE,
    POINTER,
    Structure,
    c_char,
    c_char_p,
    c_int,
    c_int64,
    c_long,
    c_size_t,
    c_ssize_t,
    c_uint,
    c_void_p,
)

import structlog

from gpgbridge.exceptions import LibraryNotFoundError

logger = structlog.get_logger(__name__)

_PLATFORM = platform.system()
_FALLBACK_NAMES = {
    "Linux": ("libgpgme.so.11", "libgpgme.so"),
    "Darwin": ("libgpgme.11.dylib", "libgpgme.dylib"),
    "Windows": ("libgpgme-11.dll", "libgpgme6-11.dll"),
}

gpgme_error_t = c_uint
# gpgme is built with 64-bit off_t on every platform it supports today.
off_t = c_int64

# Stream callbacks report failures through errno. With use_errno, ctypes copies
# the value set by ctypes.set_errno() to the real errno when the callback returns.
READ_CB = CFUNCTYPE(c_ssize_t, c_void_p, c_void_p, c_size_t, use_errno=True)
WRITE_CB = CFUNCTYPE(c_ssize_t, c_void_p, c_void_p, c_size_t, use_errno=True)
SEEK_CB = CFUNCTYPE(off_t, c_void_p, off_t, c_int, use_errno=True)
RELEASE_CB = CFUNCTYPE(None, c_void_p)
PASSPHRASE_CB = CFUNCTYPE(gpgme_error_t, c_void_p, c_char_p, c_char_p, c_int, c_int)


class DataCallbacks(Structure):
    """struct gpgme_data_cbs"""

    _fields_ = [
        ("read", READ_CB),
        ("write", WRITE_CB),
        ("seek", SEEK_CB),
        ("release", RELEASE_CB),
    ]


class SubKeyRecord(Structure):
    """Leading part of struct _gpgme_subkey."""


SubKeyRecord._fields_ = [
    ("next", POINTER(SubKeyRecord)),
    ("revoked", c_uint, 1),
    ("expired", c_uint, 1),
    ("disabled", c_uint, 1),
    ("invalid", c_uint, 1),
    ("can_encrypt", c_uint, 1),
    ("can_sign", c_uint, 1),
    ("can_certify", c_uint, 1),
    ("secret", c_uint, 1),
    ("can_authenticate", c_uint, 1),
    ("is_qualified", c_uint, 1),
    ("is_cardkey", c_uint, 1),
    ("_flags_unused", c_uint, 21),
    ("pubkey_algo", c_int),
    ("length", c_uint),
    ("keyid", c_char_p),
    ("_keyid", c_char * 17),
    ("fpr", c_char_p),
    ("timestamp", c_long),
    ("expires", c_long),
    ("card_number", c_char_p),
]


class UserIDRecord(Structure):
    """Leading part of struct _gpgme_user_id."""


UserIDRecord._fields_ = [
    ("next", POINTER(UserIDRecord)),
    ("revoked", c_uint, 1),
    ("invalid", c_uint, 1),
    ("_flags_unused", c_uint, 25),
    ("origin", c_uint, 5),
    ("validity", c_int),
    ("uid", c_char_p),
    ("name", c_char_p),
    ("email", c_char_p),
    ("comment", c_char_p),
]


class KeyRecord(Structure):
    """Leading part of struct _gpgme_key."""

    _fields_ = [
        ("_refs", c_uint),
        ("revoked", c_uint, 1),
        ("expired", c_uint, 1),
        ("disabled", c_uint, 1),
        ("invalid", c_uint, 1),
        ("can_encrypt", c_uint, 1),
        ("can_sign", c_uint, 1),
        ("can_certify", c_uint, 1),
        ("secret", c_uint, 1),
        ("can_authenticate", c_uint, 1),
        ("is_qualified", c_uint, 1),
        ("_flags_unused", c_uint, 22),
        ("protocol", c_int),
        ("issuer_serial", c_char_p),
        ("issuer_name", c_char_p),
        ("chain_id", c_char_p),
        ("owner_trust", c_int),
        ("subkeys", POINTER(SubKeyRecord)),
        ("uids", POINTER(UserIDRecord)),
        ("_last_subkey", c_void_p),
        ("_last_uid", c_void_p),
        ("keylist_mode", c_uint),
        ("fpr", c_char_p),
    ]


class EngineInfoRecord(Structure):
    """struct _gpgme_engine_info"""


EngineInfoRecord._fields_ = [
    ("next", POINTER(EngineInfoRecord)),
    ("protocol", c_int),
    ("file_name", c_char_p),
    ("version", c_char_p),
    ("req_version", c_char_p),
    ("home_dir", c_char_p),
]


# (name, restype, argtypes)
_SIGNATURES: tuple[tuple[str, object, list], ...] = (
    ("gpgme_check_version", c_char_p, [c_char_p]),
    ("gpgme_engine_check_version", gpgme_error_t, [c_int]),
    ("gpgme_get_engine_info", gpgme_error_t, [POINTER(POINTER(EngineInfoRecord))]),
    ("gpgme_strerror", c_char_p, [gpgme_error_t]),
    ("gpgme_err_code_to_errno", c_int, [c_uint]),
    ("gpgme_new", gpgme_error_t, [POINTER(c_void_p)]),
    ("gpgme_release", None, [c_void_p]),
    ("gpgme_set_protocol", gpgme_error_t, [c_void_p, c_int]),
    ("gpgme_get_protocol", c_int, [c_void_p]),
    ("gpgme_set_armor", None, [c_void_p, c_int]),
    ("gpgme_get_armor", c_int, [c_void_p]),
    ("gpgme_set_keylist_mode", gpgme_error_t, [c_void_p, c_uint]),
    ("gpgme_get_keylist_mode", c_uint, [c_void_p]),
    ("gpgme_set_pinentry_mode", gpgme_error_t, [c_void_p, c_int]),
    ("gpgme_get_pinentry_mode", c_int, [c_void_p]),
    ("gpgme_set_passphrase_cb", None, [c_void_p, c_void_p, c_void_p]),
    ("gpgme_ctx_get_engine_info", POINTER(EngineInfoRecord), [c_void_p]),
    ("gpgme_ctx_set_engine_info", gpgme_error_t, [c_void_p, c_int, c_char_p, c_char_p]),
    ("gpgme_op_keylist_start", gpgme_error_t, [c_void_p, c_char_p, c_int]),
    ("gpgme_op_keylist_next", gpgme_error_t, [c_void_p, POINTER(c_void_p)]),
    ("gpgme_op_keylist_end", gpgme_error_t, [c_void_p]),
    ("gpgme_op_decrypt", gpgme_error_t, [c_void_p, c_void_p, c_void_p]),
    ("gpgme_op_decrypt_verify", gpgme_error_t, [c_void_p, c_void_p, c_void_p]),
    ("gpgme_op_encrypt", gpgme_error_t, [c_void_p, c_void_p, c_uint, c_void_p, c_void_p]),
    ("gpgme_key_unref", None, [c_void_p]),
    ("gpgme_data_new", gpgme_error_t, [POINTER(c_void_p)]),
    ("gpgme_data_new_from_mem", gpgme_error_t, [POINTER(c_void_p), c_char_p, c_size_t, c_int]),
    ("gpgme_data_new_from_fd", gpgme_error_t, [POINTER(c_void_p), c_int]),
    (
        "gpgme_data_new_from_cbs",
        gpgme_error_t,
        [POINTER(c_void_p), POINTER(DataCallbacks), c_void_p],
    ),
    ("gpgme_data_release", None, [c_void_p]),
    ("gpgme_data_read", c_ssize_t, [c_void_p, c_void_p, c_size_t]),
    ("gpgme_data_write", c_ssize_t, [c_void_p, c_void_p, c_size_t]),
    ("gpgme_data_seek", off_t, [c_void_p, off_t, c_int]),
    ("gpgme_data_get_file_name", c_char_p, [c_void_p]),
)

_library: ctypes.CDLL | None = None


def _candidate_paths(path: str | None) -> list[str]:
    if path is not None:
        return [path]
    found = ctypes.util.find_library("gpgme")
    candidates = [found] if found else []
    candidates.extend(_FALLBACK_NAMES.get(_PLATFORM, ()))
    return candidates


def _declare(lib: ctypes.CDLL) -> None:
    for name, restype, argtypes in _SIGNATURES:
        try:
            func = getattr(lib, name)
        except AttributeError as e:
            msg = f"GPGME library lacks symbol {name}"
            raise LibraryNotFoundError(msg) from e
        func.restype = restype
        func.argtypes = argtypes


def load_library(path: str | None = None) -> ctypes.CDLL:
    """
    Load and initialize libgpgme once per process.

    Args:
        path: Explicit library path. Discovered with ctypes.util when None.

    Returns:
        The loaded library with argument and result types declared.

    Raises:
        LibraryNotFoundError: If no candidate can be loaded.
    """
    global _library
    if _library is not None:
        return _library

    errors: list[str] = []
    for candidate in _candidate_paths(path):
        try:
            lib = ctypes.CDLL(candidate, use_errno=True)
        except OSError as e:
            errors.append(f"{candidate}: {e}")
            continue
        _declare(lib)
        # Mandatory before any other call: initializes the library's subsystems.
        runtime_version = lib.gpgme_check_version(None)
        logger.debug(
            "GPGME library loaded",
            path=candidate,
            version=runtime_version.decode() if runtime_version else None,
        )
        _library = lib
        return lib

    msg = "GPGME library not found"
    raise LibraryNotFoundError(msg, tried=errors or ["<none>"])


def is_loaded() -> bool:
    return _library is not None


def decode(value: bytes | None) -> str:
    """Decode a C string, mapping NULL to an empty string."""
    if value is None:
        return ""
    return value.decode("utf-8", errors="replace")


def strerror(err: int) -> str:
    return decode(load_library().gpgme_strerror(err))


def set_errno(code: int) -> None:
    """Set errno for the engine. Only effective inside a stream callback."""
    ctypes.set_errno(code)


def errno_from_code(code: int) -> int:
    return load_library().gpgme_err_code_to_errno(code)


def key_unref(key: int) -> None:
    load_library().gpgme_key_unref(key)


def data_release(data: int) -> None:
    load_library().gpgme_data_release(data)


def context_release(ctx: int) -> None:
    load_library().gpgme_release(ctx)
