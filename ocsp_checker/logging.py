import base64
import logging
import sys
import uuid
from contextlib import contextmanager

import structlog


@contextmanager
def check_context(**values):
    # Every public operation gets its own id, so interleaved
    # checks can be told apart in the log.
    check_id = str(uuid.uuid4())
    with structlog.contextvars.bound_contextvars(check_id=check_id, **values):
        yield check_id


def bytes_to_base64(logger, method_name, event_dict):
    """Renders nonces, hashes and DER blobs as base64 text."""
    for key, value in event_dict.items():
        if isinstance(value, (bytes, bytearray)):
            event_dict[key] = base64.b64encode(value).decode("ascii")
    return event_dict


def setup_logging(debug: bool):
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            bytes_to_base64,
            structlog.processors.ExceptionPrettyPrinter(),
            structlog.processors.KeyValueRenderer(
                key_order=["timestamp", "logger", "level", "event", "check_id"]
            ),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
