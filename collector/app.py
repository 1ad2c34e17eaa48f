# Reference collector endpoint: accepts node-agent envelopes and keeps the
# latest payload per host in memory.
import gzip
import json
import os
import time
import zlib

from flask import Flask, jsonify, request

from node_agent.config import DEFAULT_COLLECTOR_PATH
from node_agent.envelope import open_envelope
from node_agent.errors import EnvelopeError
from node_agent.identity import derive_passphrase

REPORT_INTERVAL_DEFAULT = 300  # seconds, the agent's default submit cron


def mark_online_state(now: int, last_seen: int, interval: int) -> bool:
    # Consider a host online if it reported within ~2x its submission interval
    return (now - last_seen) <= (2 * max(interval, 1))


def human_ago(seconds: int) -> str:
    # Compact "x ago" string
    if seconds < 60:
        return f"{seconds}s ago"
    mins = seconds // 60
    if mins < 60:
        return f"{mins}m ago"
    hrs = mins // 60
    if hrs < 24:
        return f"{hrs}h {mins % 60}m ago"
    days = hrs // 24
    return f"{days}d ago"


def identities_from_env(environ=None):
    # NODE_AGENT_IDENTITIES='[{"ip": "10.0.0.5", "mac": "52:54:00:12:34:56"}]'
    environ = os.environ if environ is None else environ
    raw = environ.get("NODE_AGENT_IDENTITIES", "")
    if not raw.strip():
        return []
    try:
        entries = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(entries, list):
        return []
    return [(e.get("ip"), e.get("mac")) for e in entries if isinstance(e, dict)]


def decode_body(raw: bytes, encoding: str):
    if encoding.strip().lower() == "gzip":
        raw = gzip.decompress(raw)
    return json.loads(raw)


def build_rows(hosts, interval, now=None):
    # Flatten stored payloads for the JSON listing
    now = int(now if now is not None else time.time())
    rows = []
    for hostname, rec in sorted(hosts.items()):
        last_seen = int(rec["last_seen"])
        meta = rec["payload"].get("meta", {})
        rows.append({
            "hostname": hostname,
            "online": mark_online_state(now, last_seen, interval),
            "last_seen": last_seen,
            "last_seen_ago": human_ago(max(0, now - last_seen)),
            "sequence": rec["sequence"],
            "encrypted": rec["encrypted"],
            "agent_version": meta.get("agent", {}).get("version"),
            "disabled_metrics": meta.get("disabled_metrics", []),
            "metrics": sorted(rec["payload"].get("metrics", {})),
        })
    return rows, now


def create_app(identities=None, interval=REPORT_INTERVAL_DEFAULT, path=DEFAULT_COLLECTOR_PATH):
    app = Flask(__name__)
    if identities is None:
        identities = identities_from_env()
    passphrases = [derive_passphrase(ip, mac) for ip, mac in identities]
    # Latest state per host: {hostname: {"payload", "sequence", "last_seen", "encrypted"}}
    hosts = app.config.setdefault("HOSTS", {})

    @app.route(path, methods=["POST"])
    def ingest():
        try:
            envelope = decode_body(request.get_data(), request.headers.get("Content-Encoding", ""))
        except (OSError, EOFError, zlib.error, ValueError):
            return jsonify({"error": "invalid body"}), 400

        try:
            payload = open_envelope(envelope, passphrases)
        except EnvelopeError as e:
            return jsonify({"error": str(e)}), 422

        if not isinstance(payload, dict):
            return jsonify({"error": "payload must be an object"}), 400
        for k in ("hostname", "metrics", "meta"):
            if k not in payload:
                return jsonify({"error": f"missing field: {k}"}), 400
        if not isinstance(payload["meta"], dict):
            return jsonify({"error": "meta must be an object"}), 400

        hostname = str(payload["hostname"])
        sequence = payload["meta"].get("sequence")
        previous = hosts.get(hostname)
        # Agents retry, so the same payload can arrive more than once
        if previous is not None and sequence is not None and previous["sequence"] == sequence:
            return jsonify({"status": "duplicate", "sequence": sequence})

        hosts[hostname] = {
            "payload": payload,
            "sequence": sequence,
            "last_seen": int(time.time()),
            "encrypted": bool(envelope.get("encrypted")),
        }
        return jsonify({"status": "ok", "sequence": sequence})

    @app.route("/hosts")
    def list_hosts():
        rows, now = build_rows(hosts, interval)
        return jsonify(rows=rows, now=now)

    @app.route("/hosts/<hostname>")
    def host_detail(hostname):
        rec = hosts.get(hostname)
        if rec is None:
            return jsonify({"error": "unknown host"}), 404
        return jsonify(rec["payload"])

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    return app


if __name__ == "__main__":
    # Port 8080 and path /nodeAgentCollector/ match the agent's auto endpoint
    create_app().run(host="0.0.0.0", port=8080)
