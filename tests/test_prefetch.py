from __future__ import annotations

import threading

import pytest

from feed.prefetch import PrefetchScheduler


@pytest.fixture()
def scheduler():
    scheduler = PrefetchScheduler()
    yield scheduler
    scheduler.shutdown()


def test_task_runs_and_returns(scheduler):
    future = scheduler.submit("u:1", lambda: "done")

    assert future.result(timeout=5) == "done"


def test_same_key_is_not_submitted_twice(scheduler):
    release = threading.Event()
    runs = []

    def task():
        runs.append(1)
        release.wait(timeout=5)

    first = scheduler.submit("u:1", task)
    second = scheduler.submit("u:1", task)
    assert scheduler.in_flight("u:1")

    release.set()
    first.result(timeout=5)

    assert second is None
    assert runs == [1]
    assert not scheduler.in_flight("u:1")


def test_key_can_be_resubmitted_after_completion(scheduler):
    scheduler.submit("u:1", lambda: None).result(timeout=5)

    assert scheduler.submit("u:1", lambda: None) is not None


def test_failures_go_to_failure_channel():
    failures = []
    scheduler = PrefetchScheduler(on_failure=lambda key, error: failures.append((key, str(error))))

    def boom():
        raise RuntimeError("blend exploded")

    future = scheduler.submit("u:2", boom)
    scheduler.drain(timeout=5)
    scheduler.shutdown()

    assert isinstance(future.exception(timeout=5), RuntimeError)
    assert failures == [("u:2", "blend exploded")]
    assert not scheduler.in_flight("u:2")


def test_failing_handler_does_not_mask_task_error():
    def bad_handler(key, error):
        raise ValueError("handler broke")

    scheduler = PrefetchScheduler(on_failure=bad_handler)

    def boom():
        raise RuntimeError("blend exploded")

    future = scheduler.submit("u:3", boom)
    scheduler.shutdown()

    assert isinstance(future.exception(timeout=5), RuntimeError)


def test_pending_returns_in_flight_future(scheduler):
    release = threading.Event()

    future = scheduler.submit("u:1", lambda: release.wait(timeout=5))

    assert scheduler.pending("u:1") is future
    assert scheduler.pending("u:2") is None

    release.set()
    future.result(timeout=5)

    assert scheduler.pending("u:1") is None
