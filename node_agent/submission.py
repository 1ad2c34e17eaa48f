# Submission engine: pre-submit gate, optional gzip, POST with retries and
# exponential backoff, consecutive-failure accounting and threshold alerts.
#
# Delivery is at-least-once: nothing here deduplicates across calls, a retried
# or re-run submission may reach the collector twice.
import json
import logging
import time
from dataclasses import dataclass
from typing import Sequence

from .envelope import build_envelope
from .errors import DeliveryError, SubmissionError, TransportError
from .hooks import allow_submission, notify_failure
from .payload import PAYLOAD_FILE
from .state import CounterStore, read_text, write_text
from .transport import UrllibTransport

try:
    import gzip
except ImportError:  # interpreters built without zlib
    gzip = None

log = logging.getLogger(__name__)

FAILURE_FILE = "submit.failures"
RESPONSE_FILE = "submit.response"
REQUEST_TIMEOUT_S = 15
GZIP_LEVEL = 6


@dataclass
class SubmissionOptions:
    retries: int | None = None
    backoff: int | None = None
    debug: bool = False
    compress: bool | None = None
    headers: Sequence[str] = ()


@dataclass(frozen=True)
class SubmissionResult:
    status: int
    body: str

    @property
    def skipped(self):
        return self.status == 0


SKIPPED = SubmissionResult(0, "skipped")


def request_headers(extra=()):
    # "Name: value" lines, Content-Type first; later duplicates of a name are dropped
    headers = {}
    for line in ("Content-Type: application/json", *extra):
        name, sep, value = str(line).partition(":")
        name = name.strip()
        if not sep or not name:
            log.warning("Ignoring malformed header %r", line)
            continue
        if name.lower() not in {k.lower() for k in headers}:
            headers[name] = value.strip()
    return headers


def failure_counter(context):
    return CounterStore(context.state_dir, FAILURE_FILE)


def record_success(context):
    failure_counter(context).reset()


def record_failure(context, message):
    counter = failure_counter(context)
    count = counter.increment()
    threshold = int(context.config.failure_alert_threshold or 0)
    if threshold > 0 and count >= threshold:
        log.error("Submission failed %d times in a row: %s", count, message)
        try:
            notify_failure(context, count, message)
        except Exception:
            log.exception("Failure hook raised")
        finally:
            counter.reset()
    return count


def send(endpoint, body, context, options=None, *, transport=None, sleep=time.sleep) -> SubmissionResult:
    options = options or SubmissionOptions()
    config = context.config
    if isinstance(body, str):
        body = body.encode()

    if not allow_submission(context, body):
        log.warning("Submission skipped by pre-submit hook")
        return SKIPPED

    retries = config.submission_retries if options.retries is None else options.retries
    backoff = config.submission_backoff_base if options.backoff is None else options.backoff
    compress = config.submission_compress if options.compress is None else options.compress
    headers = list(options.headers)

    if compress and gzip is not None:
        body = gzip.compress(body, compresslevel=GZIP_LEVEL)
        headers.append("Content-Encoding: gzip")
    elif compress:
        log.warning("gzip compression requested but unavailable; sending uncompressed")

    return submit_with_retries(
        endpoint,
        body,
        context,
        retries=retries,
        backoff=backoff,
        headers=headers,
        debug=options.debug,
        transport=transport,
        sleep=sleep,
    )


def submit_with_retries(endpoint, body, context, *, retries=3, backoff=1, headers=(), debug=False,
                        transport=None, sleep=time.sleep) -> SubmissionResult:
    transport = transport or UrllibTransport()
    max_attempts = max(1, int(retries or 0))
    delay = max(1, int(backoff or 0))
    cap = int(context.config.submission_backoff_max or 0)
    hdrs = request_headers(headers)

    for attempt in range(1, max_attempts + 1):
        status = None
        try:
            result = transport.post(endpoint, body, hdrs, REQUEST_TIMEOUT_S)
        except (TransportError, OSError) as exc:
            failure = str(exc) or exc.__class__.__name__
        else:
            if debug:
                log.info("[submit] status=%d body=%s", result.status, result.body)
            if 200 <= result.status < 300:
                record_success(context)
                return SubmissionResult(result.status, result.body)
            status = result.status
            failure = f"HTTP status {status}"

        if attempt >= max_attempts:
            record_failure(context, failure)
            log.error("Submission failed (%s) after %d attempts", failure, attempt)
            raise DeliveryError(f"Submission failed after {attempt} attempts: {failure}", status, attempt)

        wait = min(delay, cap) if cap > 0 else delay
        log.warning("Submission attempt %d failed: %s; retrying in %ds", attempt, failure, wait)
        sleep(wait)
        delay *= 2

    raise DeliveryError("Submission retries exhausted", None, max_attempts)


def prepare_submission(context, force=False):
    """Check the submit preconditions and return ``(endpoint, payload_json)``.

    Returns None when submission is switched off in the config and not forced.
    Raises SubmissionError for a missing, empty or invalid payload file and
    for an unconfigured endpoint.
    """
    if not context.config.enable_submission and not force:
        log.warning("Submission disabled by configuration; exiting")
        return None

    payload_json = read_text(context.path(PAYLOAD_FILE))
    if not payload_json.strip():
        raise SubmissionError("Payload file missing or empty; cannot submit")

    endpoint = (context.config.collector_endpoint or "").strip()
    if not endpoint:
        raise SubmissionError("Collector endpoint is not configured")

    try:
        decoded = json.loads(payload_json)
    except ValueError as exc:
        raise SubmissionError("Payload file contains invalid JSON") from exc
    if not isinstance(decoded, dict):
        raise SubmissionError("Payload file contains invalid JSON")
    return endpoint, payload_json


def encode_envelope(envelope) -> bytes:
    try:
        return json.dumps(envelope).encode()
    except (TypeError, ValueError) as exc:
        raise SubmissionError(f"Unable to encode submission envelope: {exc}") from exc


def submit_payload(context, options=None, *, force=False, transport=None, sleep=time.sleep):
    started = time.perf_counter()
    prepared = prepare_submission(context, force=force)
    if prepared is None:
        return None
    endpoint, payload_json = prepared

    body = encode_envelope(build_envelope(context, payload_json))
    result = send(endpoint, body, context, options, transport=transport, sleep=sleep)
    write_text(context.path(RESPONSE_FILE), result.body)
    if not result.skipped:
        log.info(
            "Submission succeeded with HTTP status %d (%.3f ms)",
            result.status,
            (time.perf_counter() - started) * 1000,
        )
    return result
