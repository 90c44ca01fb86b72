"""Unit tests for the background worker."""

import threading

import pytest

from anime_admin.services.worker import BackgroundWorker


@pytest.fixture
def worker():
    worker = BackgroundWorker(name="test-worker")
    yield worker
    worker.stop(timeout=5)


class TestBackgroundWorker:
    """Tests for job submission and lifecycle."""

    def test_runs_jobs_in_order_off_thread(self, worker) -> None:
        results = []

        worker.submit(lambda: results.append(("a", threading.current_thread().name)))
        worker.submit(lambda: results.append(("b", threading.current_thread().name)))
        worker.join()

        assert results == [("a", "test-worker"), ("b", "test-worker")]
        assert worker.is_running

    def test_passes_arguments(self, worker) -> None:
        results = []

        worker.submit(lambda x, y=0: results.append(x + y), 1, y=2)
        worker.join()

        assert results == [3]

    def test_runs_coroutine_jobs(self, worker) -> None:
        results = []

        async def job(value):
            results.append(value)

        worker.submit(job, "async")
        worker.join()

        assert results == ["async"]

    def test_failing_job_does_not_stop_worker(self, worker, caplog) -> None:
        results = []

        def boom():
            raise RuntimeError("boom")

        worker.submit(boom)
        worker.submit(lambda: results.append("after"))
        worker.join()

        assert results == ["after"]
        assert worker.is_running
        assert "boom" in caplog.text

    def test_stop_drains_queue(self) -> None:
        worker = BackgroundWorker()
        results = []
        worker.start()
        worker.start()
        for i in range(5):
            worker.submit(results.append, i)

        worker.stop(timeout=5)

        assert results == [0, 1, 2, 3, 4]
        assert not worker.is_running

    def test_stop_without_start(self) -> None:
        BackgroundWorker().stop()
