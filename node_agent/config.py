# Agent configuration: defaults, then conf/agent.json (or $CONFIG_FILE),
# then NODE_AGENT_<KEY> environment overrides.
import json
import os
import sys
import tempfile
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Mapping

from .hooks import Hooks, load_hooks
from .identity import primary_ipv4

ROOT_DIR = Path(__file__).resolve().parent.parent
ENV_PREFIX = "NODE_AGENT_"
DEFAULT_CONFIG_FILE = ROOT_DIR / "conf" / "agent.json"
DEFAULT_STATE_DIR = "/var/lib/node-agent"
DEFAULT_LOG_DIR = "/var/log/node-agent"
DEFAULT_COLLECTOR_PORT = 8080
DEFAULT_COLLECTOR_PATH = "/nodeAgentCollector/"
FALLBACK_COLLECTOR_IP = "192.0.2.2"
LOG_FORMATS = ("text", "json", "json_file")

# Metrics known to the agent, in payload order; any of them can be switched off.
DEFAULT_METRIC_FLAGS = {
    "cpu": True,
    "memory": True,
    "network": True,
    "storage": True,
    "storage_latency": True,
    "storage_health": True,
    "filesystem": True,
}


@dataclass
class AgentConfig:
    collector_endpoint: str = "auto"
    collector_port: int = DEFAULT_COLLECTOR_PORT
    collector_path: str = DEFAULT_COLLECTOR_PATH
    enable_submission: bool = True
    submission_retries: int = 3
    submission_backoff_base: int = 1
    submission_backoff_max: int = 0
    submission_compress: bool = False
    failure_alert_threshold: int = 5
    encryption: str = "gpg"
    state_dir: str = DEFAULT_STATE_DIR
    log_dir: str = DEFAULT_LOG_DIR
    log_format: str = "text"
    cpu_sampling_interval: float = 1.0
    net_sampling_interval: float = 1.0
    metrics: dict = field(default_factory=lambda: dict(DEFAULT_METRIC_FLAGS))
    pre_submit_hook: str | None = None
    failure_hook: str | None = None


def _parse_bool(value, default):
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off", ""}:
        return False
    return default


def _coerce(raw, default):
    # Coerce a file or env value to the type of the default; None keeps the default
    if raw is None:
        return None
    if isinstance(default, bool):
        return _parse_bool(raw, default)
    if isinstance(default, (int, float)):
        try:
            return type(default)(raw)
        except (TypeError, ValueError):
            return None
    if isinstance(default, dict):
        if isinstance(raw, Mapping):
            return dict(raw)
        try:
            decoded = json.loads(raw)
        except (TypeError, ValueError):
            return None
        return decoded if isinstance(decoded, dict) else None
    return str(raw)


def normalize_metrics(metrics) -> dict:
    normalized = dict(DEFAULT_METRIC_FLAGS)
    if not isinstance(metrics, Mapping):
        return normalized
    for name in normalized:
        if name in metrics:
            normalized[name] = _parse_bool(metrics[name], bool(metrics[name]))
    return normalized


def normalize_log_format(fmt) -> str:
    fmt = str(fmt or "").strip().lower()
    return fmt if fmt in LOG_FORMATS else "text"


def _read_config_file(path):
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError:
        return {}
    if not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except ValueError as exc:
        # logging is not configured yet at this point
        print(f"node-agent: invalid configuration JSON in {path}: {exc}", file=sys.stderr)
        return {}
    if not isinstance(decoded, dict):
        return {}
    return {str(k).lower(): v for k, v in decoded.items()}


def load_config(path=None, environ=None) -> AgentConfig:
    environ = os.environ if environ is None else environ
    defaults = AgentConfig()
    known = {f.name for f in fields(AgentConfig)}

    config_path = path or environ.get("CONFIG_FILE") or DEFAULT_CONFIG_FILE
    file_values = _read_config_file(config_path)
    env_values = {name: environ.get(ENV_PREFIX + name.upper()) for name in known}

    values = {}
    for layer in (file_values, env_values):
        for name, raw in layer.items():
            if name not in known:
                continue
            coerced = _coerce(raw, getattr(defaults, name))
            if coerced is not None:
                values[name] = coerced

    config = replace(defaults, **values)
    config.metrics = normalize_metrics(config.metrics)
    config.log_format = normalize_log_format(config.log_format)
    if not config.collector_endpoint or config.collector_endpoint == "auto":
        config.collector_endpoint = determine_collector_endpoint(config)
    return config


def determine_collector_endpoint(config, ip=None) -> str:
    # The collector conventionally lives at .2 of the node's /24
    port = int(config.collector_port or DEFAULT_COLLECTOR_PORT)
    path = "/" + (config.collector_path or DEFAULT_COLLECTOR_PATH).lstrip("/")
    if not path.endswith("/"):
        path += "/"
    ip = ip if ip is not None else primary_ipv4()
    segments = ip.split(".") if ip else []
    if len(segments) != 4:
        return f"http://{FALLBACK_COLLECTOR_IP}:{port}{path}"
    segments[3] = "2"
    return f"http://{'.'.join(segments)}:{port}{path}"


@dataclass
class AgentContext:
    config: AgentConfig
    state_dir: Path
    log_dir: Path
    hooks: Hooks = field(default_factory=Hooks)

    @property
    def log_file(self) -> Path:
        return self.log_dir / "agent.log"

    def path(self, name) -> Path:
        return self.state_dir / name

    def metric_enabled(self, metric) -> bool:
        return bool(self.config.metrics.get(metric, False))


def _ensure_dir(path):
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    return path.is_dir()


def build_context(config=None, state_dir=None, log_dir=None, hooks=None, environ=None) -> AgentContext:
    environ = os.environ if environ is None else environ
    config = config or load_config(environ=environ)

    state = Path(state_dir or environ.get("STATE_DIR") or config.state_dir)
    if not _ensure_dir(state):
        fallback = Path(tempfile.gettempdir()) / "node-agent-state"
        if not _ensure_dir(fallback):
            raise OSError(f"Unable to create state directory: {state}")
        state = fallback

    logs = Path(log_dir or environ.get("LOG_DIR") or config.log_dir)
    if not _ensure_dir(logs):
        logs = state

    config = replace(config, state_dir=str(state), log_dir=str(logs))
    return AgentContext(
        config=config,
        state_dir=state,
        log_dir=logs,
        hooks=hooks if hooks is not None else load_hooks(config),
    )
