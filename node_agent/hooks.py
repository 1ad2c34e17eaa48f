# Pre-submit gate and failure observer. Hosts plug these in as callables, or
# name them in the config as "package.module:function"; both are resolved
# once when the context is built.
import importlib
import json
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import ConfigError
from .timeutil import utc_timestamp

# (decoded payload, context) -> allow?
PreSubmitGate = Callable[[Any, Any], bool]
# ({count, message, timestamp}, context) -> None
FailureObserver = Callable[[dict, Any], None]


@dataclass
class Hooks:
    pre_submit: Optional[PreSubmitGate] = None
    on_failure: Optional[FailureObserver] = None


def load_hook(ref):
    if not ref:
        return None
    module_name, sep, attr = str(ref).partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Hook reference must look like 'module:function', got {ref!r}")
    try:
        target = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"Cannot import hook module {module_name!r}: {exc}") from exc
    for part in attr.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise ConfigError(f"Hook {ref!r} not found")
    if not callable(target):
        raise ConfigError(f"Hook {ref!r} is not callable")
    return target


def load_hooks(config) -> Hooks:
    return Hooks(
        pre_submit=load_hook(config.pre_submit_hook),
        on_failure=load_hook(config.failure_hook),
    )


def allow_submission(context, payload_json) -> bool:
    gate = context.hooks.pre_submit
    if gate is None:
        return True
    try:
        decoded = json.loads(payload_json)
    except ValueError:
        decoded = None
    return bool(gate(decoded, context))


def notify_failure(context, count: int, message: str) -> None:
    observer = context.hooks.on_failure
    if observer is None:
        return
    observer({"count": count, "message": message, "timestamp": utc_timestamp()}, context)
