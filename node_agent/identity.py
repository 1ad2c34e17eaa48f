# Host network identity (primary IPv4 + MAC) and the passphrase derived from it.
import hashlib
import re
import subprocess
from dataclasses import dataclass

DEFAULT_IP = "0.0.0.0"
DEFAULT_MAC = "00:00:00:00:00:00"


@dataclass(frozen=True)
class Identity:
    ip: str | None = None
    mac: str | None = None


def sh(cmd_list):
    # Run a command and return stdout, "" when it is missing or fails
    try:
        return subprocess.check_output(cmd_list, stderr=subprocess.DEVNULL).decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return ""


def read(path, default=""):
    try:
        with open(path) as f:
            return f.read().strip()
    except OSError:
        return default


def _route_field(output, field, pattern=r"\S+"):
    m = re.search(rf"\b{field}\s+({pattern})", output)
    return m.group(1) if m else None


def primary_interface():
    # Interface carrying the default outbound route
    for cmd in (["ip", "route", "get", "1"], ["ip", "route", "show", "default"]):
        iface = _route_field(sh(cmd), "dev")
        if iface:
            return iface
    return None


def ip_of(iface):
    if not iface:
        return None
    out = sh(["ip", "-o", "-4", "addr", "show", "dev", iface])
    parts = out.split()
    return parts[3].split("/")[0] if len(parts) > 3 else None


def primary_ipv4():
    ipv4 = r"\d+\.\d+\.\d+\.\d+"
    for target in ("1", "8.8.8.8"):
        ip = _route_field(sh(["ip", "route", "get", target]), "src", ipv4)
        if ip:
            return ip
    return ip_of(primary_interface())


def mac_address(iface):
    if not iface:
        return None
    mac = read(f"/sys/class/net/{iface}/address")
    return mac.lower() if mac else None


def resolve_identity() -> Identity:
    return Identity(ip=primary_ipv4(), mac=mac_address(primary_interface()))


def derive_passphrase(ip: str | None, mac: str | None) -> str:
    # Both ends derive the same key from the same identity, no handshake.
    ip_part = DEFAULT_IP if ip is None else ip
    mac_part = DEFAULT_MAC if mac is None else mac
    return hashlib.sha256(f"{ip_part}|{mac_part}".lower().encode()).hexdigest()


def passphrase_fingerprint(passphrase: str) -> str:
    return hashlib.sha256(passphrase.encode()).hexdigest()[:16]
