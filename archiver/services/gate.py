import asyncio
import threading

from archiver.core.errors import ServerBusyError


class AdmissionGate:
    """Counting gate bounding how many archive runs may hold a slot at once."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._semaphore = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self._held = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def available(self) -> int:
        with self._lock:
            return self._capacity - self._held

    def try_acquire(self) -> None:
        if not self._semaphore.acquire(blocking=False):
            raise ServerBusyError()
        self._mark_acquired()

    async def acquire(self) -> None:
        if self._semaphore.acquire(blocking=False):
            self._mark_acquired()
            return
        await asyncio.to_thread(self._semaphore.acquire)
        self._mark_acquired()

    def release(self) -> None:
        with self._lock:
            if self._held == 0:
                raise ValueError("release called without a held slot")
            self._held -= 1
        self._semaphore.release()

    def _mark_acquired(self) -> None:
        with self._lock:
            self._held += 1
