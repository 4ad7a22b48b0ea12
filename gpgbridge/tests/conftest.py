import gc
import itertools
from collections.abc import Iterator
from unittest.mock import Mock

import pytest

from gpgbridge.core import native

_ALLOCATORS = (
    "gpgme_new",
    "gpgme_data_new",
    "gpgme_data_new_from_mem",
    "gpgme_data_new_from_fd",
    "gpgme_data_new_from_cbs",
)

_SUCCEEDING = (
    "gpgme_set_protocol",
    "gpgme_set_keylist_mode",
    "gpgme_set_pinentry_mode",
    "gpgme_ctx_set_engine_info",
    "gpgme_engine_check_version",
    "gpgme_op_keylist_start",
    "gpgme_op_keylist_end",
    "gpgme_op_decrypt",
    "gpgme_op_decrypt_verify",
    "gpgme_op_encrypt",
)


@pytest.fixture
def fake_lib(monkeypatch: pytest.MonkeyPatch) -> Iterator[Mock]:
    """
    Stand-in for libgpgme.

    Allocators hand out distinct fake handles, setters and operations
    succeed. Tests override individual functions as needed.
    """
    lib = Mock(name="libgpgme")
    handles = itertools.count(0x1000, 0x10)

    def allocate(out: object, *_: object) -> int:
        out._obj.value = next(handles)
        return 0

    for name in _ALLOCATORS:
        getattr(lib, name).side_effect = allocate
    for name in _SUCCEEDING:
        getattr(lib, name).return_value = 0
    lib.gpgme_get_armor.return_value = 0
    lib.gpgme_get_protocol.return_value = 0
    lib.gpgme_get_keylist_mode.return_value = 1
    lib.gpgme_get_pinentry_mode.return_value = 0
    lib.gpgme_strerror.return_value = b"Fake engine error"
    lib.gpgme_check_version.return_value = b"1.23.2"

    monkeypatch.setattr(native, "_library", lib)
    yield lib
    # Run pending finalizers while the fake is still installed.
    gc.collect()
