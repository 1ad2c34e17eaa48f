#!/usr/bin/env python3
# node-agent entry point, meant to be run from cron:
#   node-agent collect         every minute
#   node-agent run             every few minutes (build + submit)
import argparse
import json
import logging
import sys

from .collectors import BUILTIN_METRICS, collect
from .config import build_context
from .envelope import build_envelope
from .errors import AgentError
from .health import check_health
from .log import setup_logging
from .payload import assemble, build_payload
from .submission import SubmissionOptions, prepare_submission, submit_payload
from .summary import render_summary

log = logging.getLogger("node_agent")


def parser():
    ap = argparse.ArgumentParser(prog="node-agent")
    sub = ap.add_subparsers(dest="command", required=True)

    c = sub.add_parser("collect", help="write snapshots for the built-in metrics")
    c.add_argument("metrics", nargs="*", help="subset of: " + ", ".join(BUILTIN_METRICS))

    sub.add_parser("build", help="aggregate snapshots into payload.json")

    for name in ("submit", "run"):
        s = sub.add_parser(name, help="submit payload.json" if name == "submit" else "build, then submit")
        s.add_argument("--dry-run", action="store_true", help="print the payload, no network")
        s.add_argument("--preview", action="store_true", help="print the envelope, no network")
        s.add_argument("--force", action="store_true", help="submit even if enable_submission is off")
        s.add_argument("--retries", type=int, default=None)
        s.add_argument("--backoff", type=int, default=None, help="first retry delay, seconds")
        s.add_argument("--debug", action="store_true")

    sub.add_parser("health", help="check encryption tooling, state directory and endpoint")

    i = sub.add_parser("inspect", help="summarise the current snapshots")
    i.add_argument("--raw", action="store_true")
    i.add_argument("--metric", default=None)
    i.add_argument("--format", choices=["text", "markdown"], default="text")
    return ap


def cmd_collect(ctx, a):
    written = collect(ctx, a.metrics or None)
    log.info("Collected %s", ", ".join(written) or "nothing")
    return 0


def cmd_build(ctx, a):
    log.info("Building submission payload")
    payload = build_payload(ctx)
    log.info("Payload %d assembled successfully", payload["meta"]["sequence"])
    return 0


def cmd_submit(ctx, a):
    if a.dry_run or a.preview:
        prepared = prepare_submission(ctx, force=a.force)
        if prepared is None:
            return 0
        _, payload_json = prepared
        if a.dry_run:
            log.info("[dry-run] Printing payload (no network call)")
            print(json.dumps(json.loads(payload_json), indent=4))
        else:
            print("Envelope preview:")
            print(json.dumps(build_envelope(ctx, payload_json), indent=4))
        return 0

    options = SubmissionOptions(retries=a.retries, backoff=a.backoff, debug=a.debug)
    submit_payload(ctx, options, force=a.force)
    return 0


def cmd_run(ctx, a):
    if a.dry_run or a.preview:
        # read-only: neither payload.seq nor payload.json is touched
        payload = assemble(ctx, persist_sequence=False)
        if a.dry_run:
            log.info("[dry-run] Printing payload (no network call)")
            print(json.dumps(payload, indent=4))
        else:
            print("Envelope preview:")
            print(json.dumps(build_envelope(ctx, json.dumps(payload)), indent=4))
        return 0

    log.info("Submission cycle started")
    try:
        build_payload(ctx)
    except (AgentError, OSError) as e:
        log.error("Payload assembly failed: %s", e)
        return 1
    code = cmd_submit(ctx, a)
    log.info("Submission cycle complete")
    return code


def cmd_health(ctx, a):
    check_health(ctx)
    return 0


def cmd_inspect(ctx, a):
    payload = assemble(ctx, persist_sequence=False)
    if a.raw:
        print(json.dumps(payload, indent=4))
    else:
        sys.stdout.write(render_summary(payload, a.metric, a.format))
    return 0


COMMANDS = {
    "collect": cmd_collect,
    "build": cmd_build,
    "submit": cmd_submit,
    "run": cmd_run,
    "inspect": cmd_inspect,
    "health": cmd_health,
}


def main(argv=None):
    a = parser().parse_args(argv)
    try:
        ctx = build_context()
    except (AgentError, OSError) as e:
        print(f"node-agent: {e}", file=sys.stderr)
        return 1
    setup_logging(ctx, level=logging.DEBUG if getattr(a, "debug", False) else logging.INFO)

    try:
        return COMMANDS[a.command](ctx, a)
    except (AgentError, OSError) as e:
        log.error("%s failed: %s", a.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
