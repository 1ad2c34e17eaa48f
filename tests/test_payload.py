import json
import re

from node_agent import __version__
from node_agent.payload import (
    METRIC_FILES,
    PAYLOAD_FILE,
    SEQUENCE_FILE,
    agent_build_timestamp,
    agent_version,
    assemble,
    build_payload,
    next_sequence,
)
from node_agent.config import DEFAULT_METRIC_FLAGS


def test_persisting_assemblies_count_up_from_one(context):
    sequences = [assemble(context, persist_sequence=True)["meta"]["sequence"] for _ in range(3)]
    assert sequences == [1, 2, 3]


def test_preview_does_not_advance_sequence(context):
    assert assemble(context, persist_sequence=True)["meta"]["sequence"] == 1
    assert assemble(context, persist_sequence=True)["meta"]["sequence"] == 2

    assert assemble(context, persist_sequence=False)["meta"]["sequence"] == 3
    assert context.path(SEQUENCE_FILE).read_text() == "2"

    assert assemble(context, persist_sequence=True)["meta"]["sequence"] == 3


def test_next_sequence_without_persist_leaves_no_file(tmp_path):
    assert next_sequence(tmp_path, persist=False) == 1
    assert not (tmp_path / SEQUENCE_FILE).exists()


def test_disabled_metric_is_listed_and_omitted(make_context):
    ctx = make_context(metrics={**DEFAULT_METRIC_FLAGS, "network": False})

    payload = assemble(ctx)

    assert "network" in payload["meta"]["disabled_metrics"]
    assert "network" not in payload["metrics"]
    assert "cpu" in payload["metrics"]


def test_disabled_metrics_keep_metric_order(make_context):
    flags = {name: False for name in DEFAULT_METRIC_FLAGS}
    flags["memory"] = True
    payload = assemble(make_context(metrics=flags))

    assert payload["meta"]["disabled_metrics"] == [m for m in METRIC_FILES if m != "memory"]
    assert list(payload["metrics"]) == ["memory"]


def test_missing_and_corrupt_snapshots_become_empty(context, write_snapshot):
    write_snapshot("cpu", {"usage_percent": 12.5, "profiling": {"duration_ms": 1003.2}})
    context.path("memory.json").write_text("{truncated")

    payload = assemble(context)

    assert payload["metrics"]["cpu"]["usage_percent"] == 12.5
    assert payload["metrics"]["memory"] == {}
    assert payload["metrics"]["storage_health"] == {}
    assert set(payload["metrics"]) == set(METRIC_FILES)


def test_collector_durations_gathered_from_profiling(context, write_snapshot):
    write_snapshot("cpu", {"profiling": {"duration_ms": 1001}})
    write_snapshot("network", {"profiling": {"duration_ms": "fast"}})
    write_snapshot("filesystem", {"profiling": "n/a"})

    collectors = assemble(context)["meta"]["profiling"]["collectors"]

    assert collectors == {"cpu": 1001.0}


def test_raw_snapshot_structure_is_preserved(context, write_snapshot):
    write_snapshot("cpu", {
        "usage_percent": 10,
        "raw_counters": {"before": {"total": 100, "idle": 80}, "after": {"total": 200, "idle": 150}},
    })

    payload = assemble(context)

    assert payload["metrics"]["cpu"]["raw_counters"]["before"]["total"] == 100


def test_payload_metadata_shape(context):
    payload = assemble(context)

    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", payload["timestamp"])
    assert payload["hostname"]
    assert payload["meta"]["profiling"]["build_duration_ms"] >= 0
    assert set(payload["meta"]["agent"]) == {"version", "build_timestamp"}


def test_build_payload_writes_state_file(context):
    payload = build_payload(context)

    on_disk = json.loads(context.path(PAYLOAD_FILE).read_text())
    assert on_disk == payload
    assert on_disk["meta"]["sequence"] == 1


def test_agent_version_prefers_version_file(tmp_path):
    (tmp_path / "VERSION").write_text("2.3.1\n")
    assert agent_version(tmp_path) == "2.3.1"
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", agent_build_timestamp(tmp_path))


def test_agent_version_from_git_ref(tmp_path):
    git = tmp_path / ".git"
    (git / "refs" / "heads").mkdir(parents=True)
    (git / "HEAD").write_text("ref: refs/heads/main\n")
    (git / "refs" / "heads" / "main").write_text("0123456789abcdef\n")

    assert agent_version(tmp_path) == "git-0123456"


def test_agent_version_detached_head_and_fallback(tmp_path):
    assert agent_version(tmp_path) == __version__

    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "HEAD").write_text("fedcba9876543210")
    assert agent_version(tmp_path) == "git-fedcba9"
