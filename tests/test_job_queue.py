import queue
import threading
import pytest
from photo_ingest.errors import QueueClosedError
from photo_ingest.services.jobQueue import ImageProcessingJob, JobQueue


def _job(n):
    return ImageProcessingJob(image_id=f"img-{n}", account_id="acct-1", original_object_name=f"key-{n}")


def test_released_job_is_delivered(job_queue):
    job_queue.put(_job(1)).release()
    assert job_queue.get(timeout=1) == _job(1)


def test_discarded_job_is_dropped(job_queue):
    job_queue.put(_job(1)).discard()
    job_queue.put(_job(2)).release()

    assert job_queue.get(timeout=1) == _job(2)
    assert job_queue.qsize() == 0


def test_consumer_waits_for_release(job_queue):
    pending = job_queue.put(_job(1))
    received = []
    consumer = threading.Thread(target=lambda: received.append(job_queue.get()))
    consumer.start()

    consumer.join(0.2)
    assert consumer.is_alive()
    assert received == []

    pending.release()
    consumer.join(2)
    assert received == [_job(1)]


def test_idle_consumer_blocks(job_queue):
    with pytest.raises(queue.Empty):
        job_queue.get(timeout=0.05)


def test_put_after_close_fails(job_queue):
    job_queue.close()
    assert job_queue.closed
    with pytest.raises(QueueClosedError):
        job_queue.put(_job(1))


def test_close_drains_then_stops_every_consumer(job_queue):
    job_queue.put(_job(1)).release()
    job_queue.close()

    assert job_queue.get(timeout=1) == _job(1)
    assert job_queue.get(timeout=1) is None
    assert job_queue.get(timeout=1) is None


def test_each_job_delivered_once():
    jobs = JobQueue()
    for n in range(50):
        jobs.put(_job(n)).release()
    jobs.close()

    seen = []
    lock = threading.Lock()

    def consume():
        while True:
            job = jobs.get(timeout=2)
            if job is None:
                return
            with lock:
                seen.append(job.image_id)

    consumers = [threading.Thread(target=consume) for _ in range(4)]
    for t in consumers:
        t.start()
    for t in consumers:
        t.join(5)

    assert sorted(seen) == sorted(f"img-{n}" for n in range(50))
