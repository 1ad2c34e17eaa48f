# Payload aggregation: merge the per-metric snapshot files into one document.
import socket
import time
from datetime import datetime, timezone

from . import __version__
from .config import DEFAULT_METRIC_FLAGS, ROOT_DIR
from .state import CounterStore, read_json_or_empty, read_text, write_json
from .timeutil import elapsed_ms, utc_timestamp

PAYLOAD_FILE = "payload.json"
SEQUENCE_FILE = "payload.seq"

METRIC_FILES = {name: f"{name}.json" for name in DEFAULT_METRIC_FLAGS}


def next_sequence(state_dir, persist: bool) -> int:
    # persist=False previews the next number without advancing the counter
    counter = CounterStore(state_dir, SEQUENCE_FILE)
    nxt = counter.read() + 1
    if persist:
        counter.write(nxt)
    return nxt


def current_hostname():
    return socket.gethostname() or "unknown-host"


def agent_version(root=ROOT_DIR):
    version = read_text(root / "VERSION").strip()
    if version:
        return version
    head = read_text(root / ".git" / "HEAD").strip()
    if head.startswith("ref:"):
        commit = read_text(root / ".git" / head[4:].strip()).strip()
        if commit:
            return "git-" + commit[:7]
    elif head:
        return "git-" + head[:7]
    return __version__


def agent_build_timestamp(root=ROOT_DIR):
    for candidate in (root / "VERSION", root / ".git" / "HEAD"):
        try:
            mtime = candidate.stat().st_mtime
        except OSError:
            continue
        return utc_timestamp(datetime.fromtimestamp(mtime, timezone.utc))
    return utc_timestamp()


def _duration_ms(snapshot):
    profiling = snapshot.get("profiling")
    if not isinstance(profiling, dict):
        return None
    value = profiling.get("duration_ms")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def assemble(context, persist_sequence=False) -> dict:
    started = time.perf_counter()

    metrics = {}
    disabled = []
    for metric, filename in METRIC_FILES.items():
        if not context.metric_enabled(metric):
            disabled.append(metric)
            continue
        metrics[metric] = read_json_or_empty(context.path(filename))

    durations = {}
    for metric, snapshot in metrics.items():
        duration = _duration_ms(snapshot)
        if duration is not None:
            durations[metric] = duration

    sequence = next_sequence(context.state_dir, persist_sequence)

    return {
        "timestamp": utc_timestamp(),
        "hostname": current_hostname(),
        "metrics": metrics,
        "meta": {
            "profiling": {
                "build_duration_ms": elapsed_ms(started),
                "collectors": durations,
            },
            "disabled_metrics": disabled,
            "agent": {
                "version": agent_version(),
                "build_timestamp": agent_build_timestamp(),
            },
            "sequence": sequence,
        },
    }


def build_payload(context) -> dict:
    payload = assemble(context, persist_sequence=True)
    write_json(context.path(PAYLOAD_FILE), payload)
    return payload
