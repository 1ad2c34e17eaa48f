# Symmetric payload encryption. Ciphers return None instead of raising when
# they cannot do their job; callers then send the payload in plaintext.
import logging
import os
import shutil
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from .identity import passphrase_fingerprint
from .timeutil import elapsed_ms

log = logging.getLogger(__name__)

GPG_TIMEOUT_S = 60


@dataclass(frozen=True)
class EncryptionResult:
    ciphertext: bytes
    method: str
    fingerprint: str
    duration_ms: float


class Cipher(Protocol):
    method: str

    def encrypt(self, plaintext: bytes, passphrase: str, working_dir) -> EncryptionResult | None:
        ...

    def decrypt(self, ciphertext: bytes, passphrase: str, working_dir=None) -> bytes | None:
        ...


class GpgCipher:
    """GnuPG symmetric mode (AES256), passphrase fed over stdin.

    Plaintext and ciphertext go through a private temp directory created
    inside ``working_dir``; it is removed on every path out.
    """

    method = "gpg-symmetric"

    def __init__(self, binary="gpg"):
        self.binary = binary

    def available(self):
        return shutil.which(self.binary) is not None

    def _run(self, args, passphrase, cwd):
        # subprocess.run drains and closes all three pipes before returning
        return subprocess.run(
            [self.binary, "--batch", "--yes", "--passphrase-fd", "0", *args],
            input=(passphrase + "\n").encode(),
            capture_output=True,
            cwd=cwd,
            timeout=GPG_TIMEOUT_S,
        )

    def _transform(self, data, passphrase, working_dir, args, label):
        try:
            with tempfile.TemporaryDirectory(prefix="node-agent-", dir=working_dir) as tmp:
                src = Path(tmp) / "input"
                dst = Path(tmp) / "output"
                src.write_bytes(data)
                proc = self._run([*args, "-o", str(dst), str(src)], passphrase, tmp)
                if proc.returncode != 0 or not dst.is_file():
                    stderr = proc.stderr.decode(errors="replace").strip()
                    if stderr:
                        log.warning("gpg %s failed: %s", label, stderr)
                    return None
                return dst.read_bytes()
        except (OSError, subprocess.SubprocessError) as exc:
            log.debug("gpg %s unavailable: %s", label, exc)
            return None

    def encrypt(self, plaintext, passphrase, working_dir):
        if not self.available():
            return None
        started = time.perf_counter()
        ciphertext = self._transform(
            plaintext, passphrase, working_dir, ["--symmetric", "--cipher-algo", "AES256"], "encryption"
        )
        if ciphertext is None:
            return None
        return EncryptionResult(
            ciphertext=ciphertext,
            method=self.method,
            fingerprint=passphrase_fingerprint(passphrase),
            duration_ms=elapsed_ms(started),
        )

    def decrypt(self, ciphertext, passphrase, working_dir=None):
        if not self.available():
            return None
        return self._transform(ciphertext, passphrase, working_dir, ["--decrypt"], "decryption")


class AeadCipher:
    # ChaCha20-Poly1305 keyed with the 32 bytes of the hex passphrase; nonce || ct.

    method = "chacha20poly1305"
    nonce_size = 12

    @staticmethod
    def _key(passphrase):
        try:
            key = bytes.fromhex(passphrase)
        except ValueError:
            return None
        return key if len(key) == 32 else None

    def encrypt(self, plaintext, passphrase, working_dir=None):
        key = self._key(passphrase)
        if key is None:
            return None
        started = time.perf_counter()
        nonce = os.urandom(self.nonce_size)
        ciphertext = nonce + ChaCha20Poly1305(key).encrypt(nonce, plaintext, None)
        return EncryptionResult(
            ciphertext=ciphertext,
            method=self.method,
            fingerprint=passphrase_fingerprint(passphrase),
            duration_ms=elapsed_ms(started),
        )

    def decrypt(self, ciphertext, passphrase, working_dir=None):
        key = self._key(passphrase)
        if key is None or len(ciphertext) <= self.nonce_size:
            return None
        nonce, body = ciphertext[: self.nonce_size], ciphertext[self.nonce_size :]
        try:
            return ChaCha20Poly1305(key).decrypt(nonce, body, None)
        except InvalidTag:
            return None


CIPHERS = {"gpg": GpgCipher, "aead": AeadCipher}
METHODS = {GpgCipher.method: GpgCipher, AeadCipher.method: AeadCipher}


def get_cipher(name="gpg") -> Cipher:
    key = (name or "gpg").strip().lower()
    if key not in CIPHERS:
        log.warning("Unknown encryption %r; using gpg", name)
        key = "gpg"
    return CIPHERS[key]()


def cipher_for_method(method) -> Cipher | None:
    factory = METHODS.get(method)
    return factory() if factory else None
