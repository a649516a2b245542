from __future__ import annotations

import threading

from karuku_sizer.errors import EncodeFailureError, SearchCancelledError
from karuku_sizer.operation_flow import BackgroundJob, JobResult


def test_job_result_success_flag() -> None:
    assert JobResult(value=1).success is True
    assert JobResult(error=ValueError("x")).success is False
    assert JobResult(cancelled=True).success is False


def test_background_job_returns_value_and_calls_on_done() -> None:
    seen = []
    job = BackgroundJob(lambda cancel: 42, on_done=seen.append)

    result = job.start().wait(timeout=5)

    assert result is not None
    assert result.success
    assert result.value == 42
    assert seen == [result]
    assert job.active is False


def test_background_job_captures_errors() -> None:
    failure = EncodeFailureError("boom")

    def work(cancel):
        raise failure

    result = BackgroundJob(work).start().wait(timeout=5)

    assert result is not None
    assert result.error is failure
    assert result.success is False


def test_background_job_cancel_stops_work() -> None:
    started = threading.Event()

    def work(cancel):
        started.set()
        while not cancel():
            threading.Event().wait(0.01)
        raise SearchCancelledError("stop")

    job = BackgroundJob(work)
    job.start()
    assert started.wait(timeout=5)
    assert job.active is True

    job.cancel()
    result = job.wait(timeout=5)

    assert job.cancelled is True
    assert result is not None
    assert result.cancelled is True
    assert result.value is None


def test_cancel_after_work_finished_marks_result_cancelled() -> None:
    holder = {}

    def work(cancel):
        holder["job"].cancel()
        return "late"

    job = BackgroundJob(work)
    holder["job"] = job

    result = job.run_inline()

    assert result.cancelled is True
    assert result.value is None


def test_run_inline_runs_synchronously() -> None:
    calls = []
    job = BackgroundJob(lambda cancel: calls.append(cancel()) or "done")

    result = job.run_inline()

    assert calls == [False]
    assert result.value == "done"
    assert job.result is result


def test_start_twice_does_not_spawn_second_thread() -> None:
    count = {"runs": 0}

    def work(cancel):
        count["runs"] += 1
        return count["runs"]

    job = BackgroundJob(work)
    job.start()
    job.start()
    job.wait(timeout=5)

    assert count["runs"] == 1
