"""
gpgbridge configuration.
"""

from dataclasses import dataclass

from gpgbridge.models.constants import KeyListMode, PinEntryMode, Protocol


@dataclass(frozen=True, kw_only=True)
class GpgBridgeConfig:
    """
    Attributes:
        library_path: Explicit path of the libgpgme shared library.
            Discovered with ctypes.util.find_library when None.
        engine_path: Engine binary (e.g. gpg) used by new contexts. Engine default when None.
        home_dir: Engine home directory (GNUPGHOME). Engine default when None.
        protocol: Protocol selected for new contexts.
        armor: Produce ASCII-armored output.
        keylist_mode: Key enumeration scope.
        pinentry_mode: How the engine asks for secrets.
        read_chunk_size: Chunk size used when reading a data object to its end.
    """

    library_path: str | None = None
    engine_path: str | None = None
    home_dir: str | None = None
    protocol: Protocol = Protocol.OPENPGP
    armor: bool = False
    keylist_mode: KeyListMode = KeyListMode.LOCAL
    pinentry_mode: PinEntryMode = PinEntryMode.DEFAULT
    read_chunk_size: int = 8192

    def __post_init__(self) -> None:
        if self.read_chunk_size <= 0:
            msg = "read_chunk_size must be positive"
            raise ValueError(msg)
        if self.protocol in (Protocol.UNKNOWN, Protocol.DEFAULT):
            msg = "protocol must name a concrete engine protocol"
            raise ValueError(msg)
        if self.library_path is not None and not self.library_path:
            msg = "library_path must not be empty"
            raise ValueError(msg)
        if self.home_dir is not None and not self.home_dir:
            msg = "home_dir must not be empty"
            raise ValueError(msg)
        if self.engine_path is not None and not self.engine_path:
            msg = "engine_path must not be empty"
            raise ValueError(msg)

    @property
    def needs_engine_info(self) -> bool:
        """True when contexts must be pointed at a non-default engine or home."""
        return self.engine_path is not None or self.home_dir is not None
