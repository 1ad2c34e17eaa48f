"""Shared fixtures: isolated agent contexts, fake transports, recorded sleeps."""

import json
import logging

import pytest

from node_agent.config import AgentConfig, build_context
from node_agent.errors import TransportError
from node_agent.hooks import Hooks
from node_agent.identity import Identity
from node_agent.transport import HttpResult

ENDPOINT = "http://collector.test/nodeAgentCollector/"
IDENTITY = Identity(ip="10.20.30.40", mac="52:54:00:ab:cd:ef")


class FakeTransport:
    """Replays a scripted list of HttpResult objects or exceptions."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, body, headers, timeout):
        self.calls.append({"url": url, "body": body, "headers": dict(headers), "timeout": timeout})
        response = self.responses.pop(0) if self.responses else HttpResult(200, "ok")
        if isinstance(response, Exception):
            raise response
        return response


def ok(body="accepted"):
    return HttpResult(200, body)


def error(status=503, body="unavailable"):
    return HttpResult(status, body)


def refused():
    return TransportError("connection refused")


@pytest.fixture
def make_context(tmp_path):
    def _make(hooks=None, **overrides):
        values = {
            "collector_endpoint": ENDPOINT,
            "state_dir": str(tmp_path / "state"),
            "log_dir": str(tmp_path / "log"),
            "encryption": "aead",
        }
        values.update(overrides)
        return build_context(config=AgentConfig(**values), hooks=hooks or Hooks(), environ={})

    return _make


@pytest.fixture
def context(make_context):
    return make_context()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def write_snapshot(context):
    def _write(metric, data, ctx=None):
        path = (ctx or context).path(f"{metric}.json")
        path.write_text(json.dumps(data))
        return path

    return _write


@pytest.fixture(autouse=True)
def reset_agent_logger():
    yield
    logger = logging.getLogger("node_agent")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
