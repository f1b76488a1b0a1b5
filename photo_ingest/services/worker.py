import enum
import threading
from concurrent.futures import ThreadPoolExecutor
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from .cleanup import delete_many
from .imageProcessing import generate_variants
from ..models.imageModel import Image, Variant, QUALITY_MEDIUM, QUALITY_SMALL
from ..utils.ids import new_id, new_object_key
from ..utils.logging import logger


class JobState(enum.Enum):
    RECEIVED = "received"
    DOWNLOADING = "downloading"
    UPLOADING_VARIANTS = "uploading-variants"
    DB_TRANSACTION = "db-transaction"
    COMMITTED = "committed"
    FAILED = "failed"


class JobFailed(Exception):
    pass


class Worker:
    """Turns one ImageProcessingJob at a time into stored medium/small variants."""

    def __init__(self, worker_id, job_queue, object_store, session_factory, qualities=None):
        self.worker_id = worker_id
        self._queue = job_queue
        self._store = object_store
        self._session_factory = session_factory
        self._qualities = qualities or {QUALITY_MEDIUM: 80, QUALITY_SMALL: 80}
        self._uploads = ThreadPoolExecutor(max_workers=len(self._qualities),
                                           thread_name_prefix=f"worker-{worker_id}-upload")
        self.processed = 0
        self.failed = 0

    def run(self):
        """Consume until the queue is closed."""
        logger.info(f"Worker {self.worker_id} started")
        while True:
            job = self._queue.get()
            if job is None:
                logger.info(f"Worker {self.worker_id} stopping, queue closed")
                return
            logger.info(f"Worker {self.worker_id} processing image {job.image_id} (account {job.account_id})")
            self.process_job(job)

    def process_job(self, job):
        log = logger.bind(worker_id=self.worker_id, image_id=job.image_id)
        state = self._enter(log, job, JobState.RECEIVED)
        try:
            state = self._enter(log, job, JobState.DOWNLOADING)
            original = self._store.get(job.original_object_name)
            variants = generate_variants(original, self._qualities)

            state = self._enter(log, job, JobState.UPLOADING_VARIANTS)
            keys = self._upload_variants(variants, log)

            state = self._enter(log, job, JobState.DB_TRANSACTION)
            self._record_variants(job, variants, keys, log)
        except Exception as e:
            self.failed += 1
            log.error(f"Job for image {job.image_id} failed during {state.value}: {e}")
            return self._enter(log, job, JobState.FAILED)

        self.processed += 1
        log.info(f"Job success {job.image_id}: {', '.join(v.quality for v in variants)} stored")
        return self._enter(log, job, JobState.COMMITTED)

    @staticmethod
    def _enter(log, job, state):
        log.debug(f"Image {job.image_id}: {state.value}")
        return state

    def _upload_variants(self, variants, log):
        keys = {v.quality: new_object_key() for v in variants}
        futures = {
            v.quality: self._uploads.submit(self._store.put, keys[v.quality], v.data, v.content_type)
            for v in variants
        }
        errors = {}
        for quality, future in futures.items():
            try:
                future.result()
            except Exception as e:
                errors[quality] = e

        if errors:
            uploaded = [keys[q] for q in futures if q not in errors]
            log.error(f"Variant upload failed for {', '.join(errors)}; removing {len(uploaded)} uploaded variant(s)")
            delete_many(self._store, uploaded)
            raise JobFailed("; ".join(f"{q}: {e}" for q, e in errors.items()))
        return keys

    def _record_variants(self, job, variants, keys, log):
        db = self._session_factory()
        try:
            try:
                if db.get(Image, job.image_id) is None:
                    raise JobFailed(f"Image {job.image_id} no longer exists")
                for v in variants:
                    db.add(Variant(
                        id=new_id(),
                        image_id=job.image_id,
                        object_name=keys[v.quality],
                        width=v.width,
                        height=v.height,
                        compression_quality=v.compression_quality,
                        quality=v.quality,
                        version=self._next_version(db, job.image_id, v.quality),
                    ))
                db.flush()
            except (SQLAlchemyError, JobFailed) as e:
                log.error(f"Variant insert failed, rolling back: {e}")
                db.rollback()
                delete_many(self._store, list(keys.values()))
                raise

            try:
                db.commit()
            except SQLAlchemyError as e:
                log.error(f"Variant commit failed: {e}")
                db.rollback()
                delete_many(self._store, list(keys.values()))
                raise
        finally:
            db.close()

    @staticmethod
    def _next_version(db, image_id, quality):
        stmt = select(func.max(Variant.version)).where(Variant.image_id == image_id, Variant.quality == quality)
        return (db.execute(stmt).scalar() or 0) + 1

    def shutdown(self):
        self._uploads.shutdown(wait=True)


class WorkerPool:
    """N supervised worker threads sharing one JobQueue."""

    def __init__(self, size, job_queue, object_store, session_factory, qualities=None, restart_delay=5.0):
        self.size = size
        self._queue = job_queue
        self._restart_delay = restart_delay
        self._stopping = threading.Event()
        self.workers = [
            Worker(i, job_queue, object_store, session_factory, qualities) for i in range(size)
        ]
        self.restarts = {w.worker_id: 0 for w in self.workers}
        self._threads = []

    @property
    def running(self):
        return any(t.is_alive() for t in self._threads)

    def start(self):
        if self._threads:
            return
        for worker in self.workers:
            t = threading.Thread(target=self._supervise, args=(worker,), daemon=True, name=f"Worker-{worker.worker_id}")
            t.start()
            self._threads.append(t)
        logger.info(f"Started {self.size} workers")

    def _supervise(self, worker):
        while not self._stopping.is_set():
            try:
                worker.run()
            except Exception as e:
                logger.exception(f"Worker {worker.worker_id} loop error: {e}")
            if self._stopping.is_set():
                break
            if self._queue.closed:
                logger.info(f"Worker {worker.worker_id} exiting, queue closed")
                break
            self.restarts[worker.worker_id] += 1
            logger.warning(f"Worker {worker.worker_id} stopped, restarting in {self._restart_delay}s")
            self._stopping.wait(self._restart_delay)
        worker.shutdown()

    def stop(self, timeout=None):
        self._stopping.set()
        self._queue.close()
        for t in self._threads:
            t.join(timeout)
        logger.info("Worker pool stopped")
