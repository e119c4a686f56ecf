"""Process-wide guard serializing deployment-class runs."""

import threading
from functools import lru_cache

from vpsdeploy.utils.logging import get_logger

logger = get_logger("guard")


class DeploymentGuard:
    """A lock-protected "in progress" flag.

    Only try_acquire/release/reset touch the flag, so at most one run holds
    it at any time even when requests arrive on different threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_progress = False
        self._owner: str | None = None

    @property
    def in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    @property
    def owner(self) -> str | None:
        with self._lock:
            return self._owner

    def try_acquire(self, owner: str) -> bool:
        """Set the flag if clear. Returns False if another run holds it."""
        with self._lock:
            if self._in_progress:
                return False
            self._in_progress = True
            self._owner = owner
        logger.info("guard.acquired", owner=owner)
        return True

    def release(self, owner: str) -> None:
        """Clear the flag if ``owner`` still holds it.

        A run that was force-reset must not clear a flag taken by a newer run.
        """
        with self._lock:
            if self._owner != owner:
                return
            self._in_progress = False
            self._owner = None
        logger.info("guard.released", owner=owner)

    def reset(self) -> None:
        """Force-clear the flag. Live remote sessions are left untouched."""
        with self._lock:
            previous = self._owner
            self._in_progress = False
            self._owner = None
        if previous:
            logger.warning("guard.reset", owner=previous)


_guard: DeploymentGuard | None = None


@lru_cache
def get_deployment_guard() -> DeploymentGuard:
    """Get the deployment guard singleton."""
    global _guard
    if _guard is None:
        _guard = DeploymentGuard()
    return _guard
