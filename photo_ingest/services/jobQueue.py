import queue
import threading
from dataclasses import dataclass
from ..errors import QueueClosedError
from ..utils.logging import logger

_CLOSED = object()


@dataclass(frozen=True)
class ImageProcessingJob:
    image_id: str
    account_id: str
    original_object_name: str


class PendingJob:
    """Producer-side handle of a queued job.

    Consumers only receive the job once it is released; a discarded job is
    dropped when it reaches the head of the queue.
    """

    def __init__(self, job):
        self.job = job
        self._resolved = threading.Event()
        self._released = False

    def release(self):
        self._released = True
        self._resolved.set()

    def discard(self):
        self._released = False
        self._resolved.set()

    @property
    def resolved(self):
        return self._resolved.is_set()

    def wait(self, timeout=None):
        """True once released, False if discarded or still pending after ``timeout``."""
        self._resolved.wait(timeout)
        return self._released


class JobQueue:
    """Unbounded in-memory channel of ImageProcessingJob, one consumer per job."""

    def __init__(self):
        self._queue = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self):
        return self._closed

    def qsize(self):
        return self._queue.qsize()

    def put(self, job):
        with self._lock:
            if self._closed:
                raise QueueClosedError(f"Cannot enqueue image {job.image_id}: job queue is closed")
            pending = PendingJob(job)
            self._queue.put(pending)
        logger.debug(f"Staged job for image {job.image_id}")
        return pending

    def get(self, timeout=None):
        """Next released job, or None once the queue is closed and drained."""
        while True:
            item = self._queue.get(timeout=timeout)
            try:
                if item is _CLOSED:
                    # let the other consumers see it too
                    self._queue.put(_CLOSED)
                    return None
                if item.wait():
                    return item.job
                logger.debug(f"Dropping discarded job for image {item.job.image_id}")
            finally:
                self._queue.task_done()

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_CLOSED)
        logger.info("Job queue closed")
