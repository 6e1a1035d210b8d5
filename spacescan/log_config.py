"""Console logging behind a queue so scan workers never block on log I/O.

Call ``setup_logging()`` once at startup. Records from any thread are put on
an in-memory queue by a ``QueueHandler``; a ``QueueListener`` thread writes
them to the console.
"""

from __future__ import annotations

import logging
import logging.handlers
import queue
from typing import IO, Optional

_listener: Optional[logging.handlers.QueueListener] = None
_handler: Optional[logging.handlers.QueueHandler] = None


def setup_logging(level: int = logging.INFO, stream: Optional[IO[str]] = None):
    """Configure the root logger; safe to call more than once."""
    global _listener, _handler
    root = logging.getLogger()
    root.setLevel(level)
    if _handler is not None and _handler in root.handlers:
        return _listener

    fmt = logging.Formatter(
        "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    console = logging.StreamHandler(stream)
    console.setFormatter(fmt)

    records: "queue.SimpleQueue[logging.LogRecord]" = queue.SimpleQueue()
    _handler = logging.handlers.QueueHandler(records)
    root.addHandler(_handler)
    _listener = logging.handlers.QueueListener(records, console, respect_handler_level=False)
    _listener.start()
    return _listener


def shutdown_logging():
    """Flush pending records and detach the queue handler."""
    global _listener, _handler
    if _listener is not None:
        _listener.stop()
        _listener = None
    if _handler is not None:
        logging.getLogger().removeHandler(_handler)
        _handler = None
