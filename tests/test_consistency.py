"""
Randomised mixes of uploads and variant jobs with failures injected at every
write step. After each run the bucket and the database must agree.
"""
import queue
import random
from contextlib import contextmanager
import pytest
from sqlalchemy import event, select
from sqlalchemy.exc import OperationalError
from photo_ingest.errors import PhotoIngestError, QueueClosedError
from photo_ingest.models.imageModel import Image, Variant
from photo_ingest.services.worker import JobState, Worker
from conftest import jpeg_width, make_jpeg

UPLOAD_FAULTS = ["none", "put", "flush", "commit", "enqueue"]
JOB_FAULTS = ["none", "small-put", "flush", "commit", "download"]
FILENAMES = [f"img-{i}.jpg" for i in range(6)]


def _fail(*args, **kwargs):
    raise OperationalError("INSERT", {}, Exception("database is locked"))


def _closed_put(job):
    raise QueueClosedError("job queue is closed")


@contextmanager
def inject(fault, store, session_factory, job_queue):
    if fault in ("flush", "commit"):
        name = "before_flush" if fault == "flush" else "before_commit"
        event.listen(session_factory, name, _fail)
    elif fault == "put":
        store.fail_put = lambda key, data: True
    elif fault == "small-put":
        # 64x48 originals give 16 px wide small variants
        store.fail_put = lambda key, data: jpeg_width(data) == 16
    elif fault == "download":
        store.fail_get = True
    elif fault == "enqueue":
        job_queue.put = _closed_put
    try:
        yield
    finally:
        if fault in ("flush", "commit"):
            event.remove(session_factory, name, _fail)
        store.fail_put = None
        store.fail_get = False
        if fault == "enqueue":
            del job_queue.put


def _next_job(job_queue):
    try:
        return job_queue.get(timeout=0.05)
    except queue.Empty:
        return None


@pytest.mark.parametrize("seed", range(8))
def test_store_and_database_agree_after_mixed_failures(seed, upload, job_queue, store, session_factory):
    rng = random.Random(seed)
    worker = Worker(0, job_queue, store, session_factory)
    uploaded = 0
    failed_jobs = 0
    try:
        for _ in range(30):
            if rng.random() < 0.6:
                fault = rng.choice(UPLOAD_FAULTS)
                data = make_jpeg(64, 48, color=(rng.randrange(256), 0, 0))
                with inject(fault, store, session_factory, job_queue):
                    try:
                        upload(filename=rng.choice(FILENAMES), data=data)
                        uploaded += 1
                    except PhotoIngestError:
                        pass
            else:
                job = _next_job(job_queue)
                if job is None:
                    continue
                with inject(rng.choice(JOB_FAULTS), store, session_factory, job_queue):
                    if worker.process_job(job) is JobState.FAILED:
                        failed_jobs += 1

        while True:
            job = _next_job(job_queue)
            if job is None:
                break
            assert worker.process_job(job) is JobState.COMMITTED
    finally:
        worker.shutdown()

    with session_factory() as db:
        images = db.execute(select(Image)).scalars().all()
        variants = db.execute(select(Variant)).scalars().all()

        assert len(images) == uploaded
        # every row has its blob and every blob has its row
        assert {v.object_name for v in variants} == set(store.objects)
        assert len(variants) == len(store.objects)

        without_variants = 0
        for image in images:
            qualities = [v.quality for v in image.variants]
            assert qualities.count("original") == 1
            assert qualities.count("medium") == qualities.count("small") <= 1
            if "medium" not in qualities:
                without_variants += 1
        assert without_variants == failed_jobs
