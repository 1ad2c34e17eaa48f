# Logging for cron runs: lines go to stdout (cron mail / journal) and are
# appended to <log_dir>/agent.log.
import json
import logging
import sys
import time

LOGGER_NAME = "node_agent"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class TextFormatter(logging.Formatter):
    converter = time.gmtime

    def __init__(self):
        super().__init__(TEXT_FORMAT, DATE_FORMAT)


class JsonFormatter(logging.Formatter):
    converter = time.gmtime

    def format(self, record):
        entry = {
            "timestamp": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _formatters(log_format):
    # (file, console)
    if log_format == "json":
        return JsonFormatter(), JsonFormatter()
    if log_format == "json_file":
        return JsonFormatter(), TextFormatter()
    return TextFormatter(), TextFormatter()


def setup_logging(context, level=logging.INFO, stream=None):
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    file_fmt, console_fmt = _formatters(context.config.log_format)
    console = logging.StreamHandler(stream or sys.stdout)
    console.setFormatter(console_fmt)
    logger.addHandler(console)

    try:
        file_handler = logging.FileHandler(context.log_file, encoding="utf-8")
    except OSError as exc:
        logger.warning("Cannot open log file %s: %s", context.log_file, exc)
    else:
        file_handler.setFormatter(file_fmt)
        logger.addHandler(file_handler)

    logger.setLevel(level)
    logger.propagate = False
    return logger
