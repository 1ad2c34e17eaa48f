import logging

from node_agent.health import check_health


def test_healthy_context_has_no_warnings(context):
    assert check_health(context) == []


def test_missing_gpg_is_reported(make_context, tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path / "empty-bin"))
    ctx = make_context(encryption="gpg")

    warnings = check_health(ctx)

    assert any("gpg not found" in w for w in warnings)


def test_missing_gpg_is_ignored_for_aead(context, tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path / "empty-bin"))

    assert check_health(context) == []


def test_unwritable_state_dir_and_empty_endpoint(make_context, tmp_path, caplog):
    ctx = make_context(collector_endpoint="")
    ctx.state_dir = tmp_path / "gone"

    with caplog.at_level(logging.WARNING, logger="node_agent"):
        warnings = check_health(ctx)

    assert len(warnings) == 2
    assert warnings[0].startswith("State directory not writable")
    assert warnings[1] == "Collector endpoint is not configured"
    assert "Collector endpoint is not configured" in caplog.text
