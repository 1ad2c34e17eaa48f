# HTTP transport for submissions. Error statuses come back as results so the
# submission engine owns the retry decision; connection and protocol
# failures raise TransportError.
import http.client
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Mapping, Protocol

from .errors import TransportError


@dataclass(frozen=True)
class HttpResult:
    status: int
    body: str


class Transport(Protocol):
    def post(self, url: str, body: bytes, headers: Mapping[str, str], timeout: float) -> HttpResult:
        ...


class UrllibTransport:
    def post(self, url, body, headers, timeout):
        req = urllib.request.Request(url, data=body, headers=dict(headers), method="POST")
        try:
            with urllib.request.urlopen(req, timeout=timeout) as r:
                return HttpResult(r.status, r.read().decode("utf-8", errors="replace"))
        except urllib.error.HTTPError as e:
            text = e.read().decode("utf-8", errors="replace") if e.fp else ""
            return HttpResult(e.code, text)
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            reason = getattr(e, "reason", e)
            raise TransportError(f"POST {url} failed: {reason}") from e
