import hashlib
import re

from node_agent import identity
from node_agent.identity import Identity, derive_passphrase, passphrase_fingerprint


def test_missing_identity_uses_documented_defaults():
    assert derive_passphrase(None, None) == derive_passphrase("0.0.0.0", "00:00:00:00:00:00")


def test_passphrase_is_64_lowercase_hex():
    for ip, mac in [(None, None), ("10.0.0.1", None), ("192.168.1.7", "AA:BB:CC:DD:EE:FF")]:
        assert re.fullmatch(r"[0-9a-f]{64}", derive_passphrase(ip, mac))


def test_passphrase_matches_sha256_of_lowercased_identity():
    expected = hashlib.sha256(b"10.0.0.1|aa:bb:cc:dd:ee:ff").hexdigest()
    assert derive_passphrase("10.0.0.1", "AA:BB:CC:DD:EE:FF") == expected


def test_fingerprint_is_prefix_of_passphrase_hash():
    passphrase = derive_passphrase("10.0.0.1", "aa:bb:cc:dd:ee:ff")
    fingerprint = passphrase_fingerprint(passphrase)
    assert len(fingerprint) == 16
    assert fingerprint != passphrase[:16]
    assert hashlib.sha256(passphrase.encode()).hexdigest().startswith(fingerprint)


def test_resolve_identity_from_route_and_sysfs(monkeypatch):
    outputs = {
        ("ip", "route", "get", "1"): "1.0.0.0 via 10.0.0.1 dev eth0 src 10.0.0.42 uid 0",
    }
    monkeypatch.setattr(identity, "sh", lambda cmd: outputs.get(tuple(cmd), ""))
    monkeypatch.setattr(
        identity, "read", lambda path, default="": "52:54:00:AB:CD:EF" if path.endswith("eth0/address") else default
    )

    assert identity.resolve_identity() == Identity(ip="10.0.0.42", mac="52:54:00:ab:cd:ef")


def test_resolve_identity_without_network_tools(monkeypatch):
    monkeypatch.setattr(identity, "sh", lambda cmd: "")
    assert identity.resolve_identity() == Identity(ip=None, mac=None)


def test_sh_returns_empty_for_missing_binary():
    assert identity.sh(["definitely-not-a-real-binary-xyz"]) == ""
