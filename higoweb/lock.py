"""Non-blocking keyed locks with optional expiry and retry."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class Locker:
    """Lock request: key, expiry in seconds, retry interval and retry count."""

    key: str
    timeout: float = 0.0
    interval: float = 0.0
    retry: int = 0
    counter: int = field(default=0, compare=False)


class Mutex:
    """A set of held keys; a key is held while its task runs or until it expires."""

    def __init__(self) -> None:
        self._held: set[str] = set()
        self._guard = threading.Lock()

    def _try_acquire(self, key: str) -> bool:
        with self._guard:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def lock(self, locker: Locker, task: Callable[[], None]) -> bool:
        """Run ``task`` if the key is free; return whether it ran."""
        if not self._try_acquire(locker.key):
            return False
        timer = None
        if locker.timeout > 0:
            timer = threading.Timer(locker.timeout, self.unlock, args=(locker.key,))
            timer.daemon = True
            timer.start()
        try:
            task()
        finally:
            if timer is not None:
                timer.cancel()
            self.unlock(locker.key)
        return True

    def retry(self, locker: Locker, task: Callable[[], None]) -> bool:
        """Try to lock, sleeping ``interval`` between up to ``retry`` further attempts."""
        while not self.lock(locker, task):
            locker.counter += 1
            time.sleep(locker.interval)
            if locker.counter > locker.retry:
                return False
        return True

    def unlock(self, key: str) -> None:
        with self._guard:
            self._held.discard(key)


_mutex = Mutex()


def lock(locker: Locker, task: Callable[[], None]) -> bool:
    """Lock with the shared mutex, retrying when ``locker.retry`` is positive."""
    if locker.retry > 0:
        return _mutex.retry(locker, task)
    return _mutex.lock(locker, task)


def unlock(key: str) -> None:
    _mutex.unlock(key)