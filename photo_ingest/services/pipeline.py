from dataclasses import dataclass
from .jobQueue import JobQueue
from .uploadCoordinator import UploadCoordinator
from .worker import WorkerPool
from ..models.imageModel import QUALITY_MEDIUM, QUALITY_SMALL
from ..utils.logging import logger


@dataclass
class Pipeline:
    """Handles shared by the request handlers and the workers, built once per app."""

    object_store: object
    session_factory: object
    job_queue: JobQueue
    coordinator: UploadCoordinator
    workers: WorkerPool

    @classmethod
    def build(cls, config, object_store, session_factory):
        job_queue = JobQueue()
        qualities = {QUALITY_MEDIUM: config["MEDIUM_QUALITY"], QUALITY_SMALL: config["SMALL_QUALITY"]}
        return cls(
            object_store=object_store,
            session_factory=session_factory,
            job_queue=job_queue,
            coordinator=UploadCoordinator(object_store, session_factory, job_queue),
            workers=WorkerPool(
                config["WORKER_COUNT"],
                job_queue,
                object_store,
                session_factory,
                qualities=qualities,
                restart_delay=config["WORKER_RESTART_DELAY_SECONDS"],
            ),
        )

    def start(self):
        self.workers.start()

    def shutdown(self, timeout=None):
        logger.info(f"Shutting down pipeline, {self.job_queue.qsize()} job(s) still queued")
        self.workers.stop(timeout)
