# src/pageocr/logger.py

import logging
import sys
from pathlib import Path
from queue import Queue
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from typing import Union, Optional

# --- Custom Log Level for Progress ---
PROGRESS = 25
logging.addLevelName(PROGRESS, "PROGRESS")

def progress(self, msg, *args, **kwargs):
    if self.isEnabledFor(PROGRESS):
        self._log(PROGRESS, msg, args, **kwargs)

logging.Logger.progress = progress

# --- Custom Handlers (for the Listener) ---
class ProgressEventHandler(logging.Handler):
    """Emits structured progress events to a queue for progress bars, etc."""
    def __init__(self, q: Queue):
        super().__init__()
        self.q = q
    def emit(self, record: logging.LogRecord):
        try:
            evt = {
                "level": record.levelname,
                "msg": record.getMessage(),
                "job_id": getattr(record, "job_id", None),
                "stage": getattr(record, "stage", None),
                "pct": getattr(record, "pct", None),
                "page": getattr(record, "page", None),
            }
            self.q.put(evt)
        except Exception:
            self.handleError(record)

# --- Custom Filters ---
class OnlyLevelFilter(logging.Filter):
    def __init__(self, levelno: int):
        super().__init__()
        self.levelno = levelno
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno == self.levelno

class ExcludeLevelFilter(logging.Filter):
    def __init__(self, levelno: int):
        super().__init__()
        self.levelno = levelno
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno != self.levelno

# --- Main Configuration Function ---
def setup_logging(
    log_queue: Queue,
    *,
    console: bool = True,
    event_queue: Optional[Queue] = None,
    level: int = logging.INFO,
    file_path: Optional[Union[str, Path]] = None,
    file_level: Optional[int] = None,
) -> QueueListener:
    """
    Sets up the logging listener architecture.

    Args:
        log_queue: The queue the "pageocr" logger writes to.
        console: Whether to echo log lines to stderr.
        event_queue: Optional queue receiving PROGRESS records as dicts.
        level: The base logging level for console output.
        file_path: Path to the persistent log file.
        file_level: The logging level for the file.

    Returns:
        A QueueListener instance. You must call .start() on it.
    """
    handlers = []

    # File handler
    if file_path:
        fp = Path(file_path)
        fp.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(fp, maxBytes=5*1024*1024, backupCount=2, encoding="utf-8")
        fh.setLevel(file_level if file_level is not None else level)
        fh.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-8s | %(message)s"))
        fh.addFilter(ExcludeLevelFilter(PROGRESS))
        handlers.append(fh)

    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(level)
        ch.setFormatter(logging.Formatter("%(levelname)-8s %(message)s"))
        ch.addFilter(ExcludeLevelFilter(PROGRESS))
        handlers.append(ch)

    if event_queue is not None:
        eh = ProgressEventHandler(event_queue)
        eh.setLevel(PROGRESS)
        eh.addFilter(OnlyLevelFilter(PROGRESS))
        handlers.append(eh)

    attach_queue_handler(log_queue)
    return QueueListener(log_queue, *handlers, respect_handler_level=True)

def attach_queue_handler(log_queue: Queue, level: int = logging.DEBUG) -> logging.Logger:
    """
    Routes the "pageocr" logger into log_queue.
    Removes any previously attached handlers so records are not duplicated.
    """
    logger = logging.getLogger("pageocr")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(QueueHandler(log_queue))
    logger.propagate = False
    return logger
