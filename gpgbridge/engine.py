"""Process-wide engine queries."""

import ctypes

from gpgbridge.config import GpgBridgeConfig
from gpgbridge.core import native
from gpgbridge.exceptions import check_error
from gpgbridge.models.constants import Protocol
from gpgbridge.models.keys import EngineInfo


def version(config: GpgBridgeConfig | None = None) -> str:
    """Version of the loaded GPGME library."""
    lib = native.load_library(config.library_path if config else None)
    return native.decode(lib.gpgme_check_version(None))


def engine_check_version(protocol: Protocol, config: GpgBridgeConfig | None = None) -> None:
    """
    Check that an engine for protocol is installed and recent enough.

    Raises:
        EngineError: If the engine is missing or too old.
    """
    lib = native.load_library(config.library_path if config else None)
    check_error(lib.gpgme_engine_check_version(int(protocol)), "engine_check_version")


def get_engine_info(config: GpgBridgeConfig | None = None) -> EngineInfo | None:
    """Snapshot of the process-wide engine list."""
    lib = native.load_library(config.library_path if config else None)
    head = ctypes.POINTER(native.EngineInfoRecord)()
    check_error(lib.gpgme_get_engine_info(ctypes.byref(head)), "get_engine_info")
    return EngineInfo.chain_from_native(head)
