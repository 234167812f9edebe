"""
Worker Log Buffer - Buffers logs per worker so concurrent workers do not interleave
"""
import logging
import threading
from typing import List

logger = logging.getLogger(__name__)

_flush_lock = threading.Lock()


class WorkerLogBuffer:
    """Buffers logs for a single worker and flushes atomically"""

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        self.buffer: List[tuple] = []  # (level, message)

    def info(self, msg: str):
        self.buffer.append((logging.INFO, msg))

    def debug(self, msg: str):
        self.buffer.append((logging.DEBUG, msg))

    def warning(self, msg: str):
        self.buffer.append((logging.WARNING, msg))

    def error(self, msg: str):
        self.buffer.append((logging.ERROR, msg))

    def flush(self):
        """Flush all buffered logs atomically to the module logger"""
        with _flush_lock:
            if not self.buffer:
                return

            logger.info(f"=== WORKER {self.worker_id} ===")

            for level, msg in self.buffer:
                logger.log(level, msg)

            logger.info(f"=== END WORKER {self.worker_id} ===")
            self.buffer.clear()
