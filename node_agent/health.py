# Pre-flight checks for `node-agent health`. Problems are reported as
# warnings; none of them stops the agent from running.
import logging
import tempfile

from .cipher import GpgCipher

log = logging.getLogger(__name__)


def check_health(context) -> list:
    warnings = []
    config = context.config

    if (config.encryption or "gpg").strip().lower() == "gpg" and not GpgCipher().available():
        warnings.append("gpg not found on PATH; payloads will be sent in plaintext")

    try:
        with tempfile.TemporaryFile(dir=context.state_dir):
            pass
    except OSError as exc:
        warnings.append(f"State directory not writable: {context.state_dir} ({exc})")

    if not (config.collector_endpoint or "").strip():
        warnings.append("Collector endpoint is not configured")

    for message in warnings:
        log.warning(message)
    log.info("Health check completed. Inspect warnings above if present.")
    return warnings
