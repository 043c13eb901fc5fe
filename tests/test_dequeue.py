import time
from datetime import datetime, timezone, timedelta

from deferral import JobQueue
from .fixtures import queue_sqlite


def test_basic_dequeue(queue_sqlite: JobQueue):
    queue_sqlite.enqueue("default", {"foo": "bar"})

    with queue_sqlite.dequeue() as job:
        assert job.queue == "default"
        assert job.payload == {"foo": "bar"}
        assert job.status == queue_sqlite.CLAIMED
        assert job.attempts == 0
        assert job.claimed_at <= datetime.now(timezone.utc)
        assert job.finished_at == None

    # Make sure the job is not in the queue
    assert not queue_sqlite.claim("default")
    assert queue_sqlite.count("default", queue_sqlite.SUCCESS) == 1


def test_no_job_dequeue(queue_sqlite: JobQueue):
    with queue_sqlite.dequeue("default") as job:
        assert job is None


def test_dequeue_in_order(queue_sqlite: JobQueue):
    queue_sqlite.enqueue("default", {"foo": 1})
    queue_sqlite.enqueue("default", {"foo": 2})

    with queue_sqlite.dequeue("default") as job:
        assert job.payload == {"foo": 1}

    with queue_sqlite.dequeue("default") as job:
        assert job.payload == {"foo": 2}

    with queue_sqlite.dequeue("default") as job:
        assert job is None


def test_dequeue_from_selected_queues(queue_sqlite: JobQueue):
    queue_sqlite.enqueue("mail", 1)
    queue_sqlite.enqueue("reports", 2)

    with queue_sqlite.dequeue("reports", claim_as="worker-1") as job:
        assert job.payload == 2
        assert job.claimed_by == "worker-1"

    assert queue_sqlite.count("mail", queue_sqlite.QUEUED) == 1


def test_reject(queue_sqlite: JobQueue):
    enqueued_job = queue_sqlite.enqueue("default", {"foo": "bar"})

    with queue_sqlite.dequeue("default") as job:
        job.reject()

    updated_job = queue_sqlite.get(enqueued_job.id)
    assert updated_job.attempts == 1
    assert updated_job.status == queue_sqlite.QUEUED
    assert updated_job.claimed_at == None


def test_reschedule(queue_sqlite: JobQueue):
    enqueued_job = queue_sqlite.enqueue("default", {"foo": "bar"})

    with queue_sqlite.dequeue("default") as job:
        job.reschedule(delay=timedelta(minutes=1))

    updated_job = queue_sqlite.get(enqueued_job.id)
    assert updated_job.attempts == 1
    assert updated_job.status == queue_sqlite.QUEUED
    assert updated_job.scheduled_at > datetime.now(timezone.utc)
    assert queue_sqlite.scheduled_size("default") == 1


def test_exception(queue_sqlite: JobQueue):
    enqueued_job = queue_sqlite.enqueue("default", {"foo": "bar"})

    with queue_sqlite.dequeue("default") as job:
        assert job.attempts == 0
        raise ValueError("Won't do")

    assert queue_sqlite.count("default", status="failed") == 1

    updated_job = queue_sqlite.get(enqueued_job.id)
    assert updated_job.attempts == 1
    assert updated_job.status == queue_sqlite.FAILED
    assert updated_job.error == "Won't do"
    assert "ValueError" in updated_job.error_trace
    assert updated_job.scheduled_at > enqueued_job.scheduled_at


def test_manual_fail(queue_sqlite: JobQueue):
    enqueued_job = queue_sqlite.enqueue("default", {"foo": "bar"})

    with queue_sqlite.dequeue("default") as job:
        job.fail("Won't do")

    updated_job = queue_sqlite.get(enqueued_job.id)
    assert updated_job.attempts == 1
    assert updated_job.status == queue_sqlite.FAILED
    assert updated_job.error == "Won't do"
    assert updated_job.error_trace is None


def test_manual_catch_exception_no_fail(queue_sqlite: JobQueue):
    enqueued_job = queue_sqlite.enqueue("default", {"foo": "bar"})

    with queue_sqlite.dequeue("default") as job:
        try:
            raise ValueError("Won't do")
        except ValueError:
            pass

    updated_job = queue_sqlite.get(enqueued_job.id)
    assert updated_job.status == queue_sqlite.SUCCESS
    assert updated_job.error is None


def test_min_retry_delay_int_dequeue(queue_sqlite: JobQueue):
    queue_sqlite.enqueue(
        payload={"foo": "bar"},
        min_retry_delay=100,
        backoff_base=100,
    )

    with queue_sqlite.dequeue() as job:
        # Simulate a job failure
        raise RuntimeError("Something went wrong")

    # Make sure the job is not immediately in the queue
    assert not queue_sqlite.claim()

    # Wait for the job to be ready for processing
    time.sleep(0.2)

    with queue_sqlite.dequeue("default") as job:
        assert job.payload == {"foo": "bar"}
        assert job.status == queue_sqlite.CLAIMED
        assert job.attempts == 1


def test_min_max_retry_delay_timedelta_dequeue(queue_sqlite: JobQueue):
    queue_sqlite.enqueue(
        payload={"foo": "bar"},
        min_retry_delay=timedelta(milliseconds=100),
        max_retry_delay=timedelta(milliseconds=100),
    )

    with queue_sqlite.dequeue("default") as job:
        raise RuntimeError("Something went wrong")

    assert not queue_sqlite.claim("default")

    time.sleep(0.2)

    with queue_sqlite.dequeue("default") as job:
        assert job.attempts == 1


def test_exhausted_after_max_retry_count(queue_sqlite: JobQueue):
    enqueued_job = queue_sqlite.enqueue(
        payload={"foo": "bar"},
        max_retry_count=1,
        min_retry_delay=10,
        max_retry_delay=10,
    )

    with queue_sqlite.dequeue("default") as job:
        raise RuntimeError("First attempt")

    assert queue_sqlite.get(enqueued_job.id).status == queue_sqlite.FAILED

    time.sleep(0.05)

    with queue_sqlite.dequeue("default") as job:
        assert job.attempts == 1
        raise RuntimeError("Second attempt")

    updated_job = queue_sqlite.get(enqueued_job.id)
    assert updated_job.status == queue_sqlite.EXHAUSTED
    assert updated_job.attempts == 2
    assert updated_job.error == "Second attempt"
    assert updated_job.finished_at is not None

    # Exhausted jobs are never claimed again
    time.sleep(0.05)
    assert not queue_sqlite.claim("default")


def test_reclaim_abandoned_job(queue_sqlite: JobQueue):
    enqueued_job = queue_sqlite.enqueue("default", {"foo": "bar"})

    # The first worker dies without finishing the job
    assert queue_sqlite.claim("default", claim_as="worker-1").id == enqueued_job.id
    assert not queue_sqlite.claim("default", claim_as="worker-2")

    time.sleep(0.02)

    with queue_sqlite.dequeue("default", claim_as="worker-2", reclaim_after=10) as job:
        assert job.id == enqueued_job.id
        assert job.claimed_by == "worker-2"

    assert queue_sqlite.get(enqueued_job.id).status == queue_sqlite.SUCCESS
