import os
import shutil
import subprocess
import tempfile
from collections.abc import Iterator
from pathlib import Path

import gnupg
import pgpy
import pytest
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

from gpgbridge.config import GpgBridgeConfig
from gpgbridge.core import native
from gpgbridge.exceptions import LibraryNotFoundError
from gpgbridge.models import PinEntryMode

TEST_EMAIL = "test@example.com"
TEST_PASSPHRASE = "password"
SIGNED_PLAINTEXT = b"Test message\n"
TESTDATA = Path(__file__).parent / "testdata"


def _engine_available() -> bool:
    if shutil.which("gpg") is None:
        return False
    try:
        native.load_library()
    except LibraryNotFoundError:
        return False
    return True


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    if _engine_available():
        return
    skip = pytest.mark.skip(reason="libgpgme or gpg not available")
    for item in items:
        if item.get_closest_marker("integration"):
            item.add_marker(skip)


def _create_test_key(passphrase: str) -> pgpy.PGPKey:
    key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    uid = pgpy.PGPUID.new("Test User", comment="test", email=TEST_EMAIL)
    key.add_uid(
        uid,
        usage={
            KeyFlags.Sign,
            KeyFlags.Certify,
            KeyFlags.EncryptCommunications,
            KeyFlags.EncryptStorage,
        },
        hashes=[HashAlgorithm.SHA256],
        ciphers=[SymmetricKeyAlgorithm.AES256],
        compression=[CompressionAlgorithm.Uncompressed],
    )
    key.protect(passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    return key


@pytest.fixture(scope="session")
def test_key() -> pgpy.PGPKey:
    return _create_test_key(TEST_PASSPHRASE)


@pytest.fixture(scope="session")
def gnupg_home(test_key: pgpy.PGPKey) -> Iterator[str]:
    """Throwaway engine home holding the test key, with secret caching disabled."""
    # Short prefix keeps the agent socket path under the platform limit.
    home = tempfile.mkdtemp(prefix="gpgb_")
    with open(os.path.join(home, "gpg-agent.conf"), "w") as f:
        f.write("allow-loopback-pinentry\ndefault-cache-ttl 0\nmax-cache-ttl 0\n")

    gpg = gnupg.GPG(gnupghome=home)
    fixture_key = (TESTDATA / "fixture-secret-key.asc").read_text()
    for armored in (str(test_key), fixture_key):
        result = gpg.import_keys(armored, passphrase=TEST_PASSPHRASE)
        if not result.fingerprints:
            pytest.fail(f"Test key import failed: {result.stderr}")

    yield home

    gpgconf = shutil.which("gpgconf")
    if gpgconf:
        subprocess.run(
            [gpgconf, "--homedir", home, "--kill", "gpg-agent"],
            check=False,
            capture_output=True,
        )
    shutil.rmtree(home, ignore_errors=True)


@pytest.fixture(scope="session")
def engine_config(gnupg_home: str) -> GpgBridgeConfig:
    return GpgBridgeConfig(home_dir=gnupg_home, pinentry_mode=PinEntryMode.LOOPBACK)


@pytest.fixture(scope="session")
def signed_message() -> str:
    """Armored message signed by and encrypted to the fixture key, made with stock gpg."""
    return (TESTDATA / "signed-message.asc").read_text()
