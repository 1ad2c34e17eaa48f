# Submission envelope: the payload either encrypted with the host-identity
# passphrase or, when no cipher works on this host, carried in plaintext.
import base64
import binascii
import json
import logging

from .cipher import cipher_for_method, get_cipher
from .errors import EnvelopeError
from .identity import derive_passphrase, passphrase_fingerprint, resolve_identity

log = logging.getLogger(__name__)

ENVELOPE_VERSION = "1.0"
KEY_HINT = "sha256(ip+mac)"


def _decode_payload(json_payload: str):
    try:
        decoded = json.loads(json_payload)
    except ValueError:
        decoded = None
    if not isinstance(decoded, (dict, list)):
        decoded = {"raw": base64.b64encode(json_payload.encode()).decode()}
    return decoded


def build_envelope(context, json_payload: str, identity=None, cipher=None) -> dict:
    identity = identity or resolve_identity()
    passphrase = derive_passphrase(identity.ip, identity.mac)
    cipher = cipher or get_cipher(context.config.encryption)

    encryption = cipher.encrypt(json_payload.encode(), passphrase, context.state_dir)

    if encryption is None:
        log.warning("Encryption unavailable; sending payload in plaintext")
        return {
            "version": ENVELOPE_VERSION,
            "encrypted": False,
            "payload": _decode_payload(json_payload),
            "meta": {"profiling": {"encryption_ms": 0.0}},
        }

    return {
        "version": ENVELOPE_VERSION,
        "encrypted": True,
        "encryption": {
            "method": encryption.method,
            "key_hint": KEY_HINT,
            "fingerprint": encryption.fingerprint,
        },
        "ciphertext": base64.b64encode(encryption.ciphertext).decode(),
        "meta": {"profiling": {"encryption_ms": encryption.duration_ms}},
    }


def open_envelope(envelope, passphrases, working_dir=None):
    """Return the payload carried by ``envelope``.

    ``passphrases`` are the candidate keys (one per known host identity);
    the one whose fingerprint matches the envelope is used.
    """
    if not isinstance(envelope, dict) or "encrypted" not in envelope:
        raise EnvelopeError("not a submission envelope")
    if not envelope["encrypted"]:
        if "payload" not in envelope:
            raise EnvelopeError("plaintext envelope without payload")
        return envelope["payload"]

    info = envelope.get("encryption") or {}
    fingerprint = info.get("fingerprint")
    passphrase = next((p for p in passphrases if passphrase_fingerprint(p) == fingerprint), None)
    if passphrase is None:
        raise EnvelopeError(f"no known identity for fingerprint {fingerprint!r}")

    cipher = cipher_for_method(info.get("method"))
    if cipher is None:
        raise EnvelopeError(f"unsupported encryption method {info.get('method')!r}")

    try:
        ciphertext = base64.b64decode(envelope.get("ciphertext") or "", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EnvelopeError("ciphertext is not valid base64") from exc

    plaintext = cipher.decrypt(ciphertext, passphrase, working_dir)
    if plaintext is None:
        raise EnvelopeError("ciphertext could not be decrypted")
    try:
        return json.loads(plaintext)
    except ValueError as exc:
        raise EnvelopeError("decrypted payload is not JSON") from exc
