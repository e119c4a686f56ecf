"""Unit tests for the deployment guard."""

import threading

from vpsdeploy.core.guard import DeploymentGuard


class TestDeploymentGuard:
    """Tests for DeploymentGuard."""

    def test_starts_clear(self, guard: DeploymentGuard):
        assert guard.in_progress is False
        assert guard.owner is None

    def test_second_acquire_rejected(self, guard: DeploymentGuard):
        assert guard.try_acquire("run-1") is True
        assert guard.try_acquire("run-2") is False
        assert guard.owner == "run-1"

    def test_release_clears(self, guard: DeploymentGuard):
        guard.try_acquire("run-1")
        guard.release("run-1")

        assert guard.in_progress is False
        assert guard.try_acquire("run-2") is True

    def test_reset_is_idempotent(self, guard: DeploymentGuard):
        guard.reset()
        guard.try_acquire("run-1")
        guard.reset()
        guard.reset()

        assert guard.in_progress is False

    def test_stale_release_after_reset(self, guard: DeploymentGuard):
        guard.try_acquire("run-1")
        guard.reset()
        guard.try_acquire("run-2")

        guard.release("run-1")

        assert guard.in_progress is True
        assert guard.owner == "run-2"

    def test_only_one_thread_wins(self, guard: DeploymentGuard):
        barrier = threading.Barrier(8)
        results: list[bool] = []
        lock = threading.Lock()

        def contend(owner: str) -> None:
            barrier.wait()
            acquired = guard.try_acquire(owner)
            with lock:
                results.append(acquired)

        threads = [threading.Thread(target=contend, args=(f"run-{i}",)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
