import logging
import logging.handlers
import queue
import sys
from typing import Optional

import structlog

from secmon.config import settings

_log_queue: "queue.SimpleQueue[logging.LogRecord]" = queue.SimpleQueue()
_listener: Optional[logging.handlers.QueueListener] = None


def configure_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """Route structlog through stdlib logging with a queue in front of the stream.

    Request handlers only enqueue records; the listener thread does the writes.
    """
    global _listener

    level_name = (level or settings.log_level).upper()
    use_json = settings.log_json if json_logs is None else json_logs

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, logging.handlers.QueueHandler):
            root.removeHandler(handler)
    root.addHandler(logging.handlers.QueueHandler(_log_queue))
    root.setLevel(level_name)

    if _listener is None:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(logging.Formatter("%(message)s"))
        _listener = logging.handlers.QueueListener(
            _log_queue, stream_handler, respect_handler_level=True
        )
        _listener.start()

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def stop_logging() -> None:
    global _listener
    if _listener is not None:
        _listener.stop()
        _listener = None


configure_logging()

logger = structlog.get_logger("secmon")
