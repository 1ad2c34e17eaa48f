# Human-readable rendering of an assembled payload (the `inspect` command).
import json


def _block(data, indent):
    pad = " " * indent
    return "\n".join(pad + line for line in json.dumps(data, indent=2, sort_keys=True).splitlines())


def render_summary(payload, metric=None, fmt="text") -> str:
    meta = payload.get("meta", {})
    disabled = meta.get("disabled_metrics") or []
    durations = meta.get("profiling", {}).get("collectors") or {}
    markdown = fmt == "markdown"
    lines = []

    if markdown:
        lines.append("# node-agent Metric Snapshot")
        lines.append("")
        lines.append(f"*Timestamp:* {payload.get('timestamp', 'unknown')}")
        lines.append(f"*Hostname:* {payload.get('hostname', 'unknown')}")
        lines.append(f"*Sequence:* {meta.get('sequence', 'unknown')}")
        if disabled:
            lines.append("*Disabled:* " + ", ".join(disabled))
        if durations:
            lines.append("")
            lines.append("## Collector Durations (ms)")
            lines.extend(f"- **{name}:** {ms}" for name, ms in durations.items())
        lines.append("")
        lines.append("## Metrics")
    else:
        lines.append("node-agent Metric Snapshot")
        lines.append(f"Timestamp: {payload.get('timestamp', 'unknown')}")
        lines.append(f"Hostname : {payload.get('hostname', 'unknown')}")
        lines.append(f"Sequence : {meta.get('sequence', 'unknown')}")
        if disabled:
            lines.append("Disabled : " + ", ".join(disabled))
        if durations:
            lines.append("Collector durations (ms):")
            lines.extend(f"  - {name:<18} {ms}" for name, ms in durations.items())
        lines.append("")
        lines.append("Metrics:")

    for name, data in payload.get("metrics", {}).items():
        if metric is not None and name != metric:
            continue
        if markdown:
            lines.append("")
            lines.append(f"### {name}")
            lines.append("```json")
            lines.append(_block(data or {}, 0))
            lines.append("```")
        else:
            lines.append(f"[{name}]")
            lines.append(_block(data, 2) if data else "  (no data)")
    return "\n".join(lines) + "\n"
