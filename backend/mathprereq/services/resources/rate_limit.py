import asyncio
import time


class TokenBucket:
    """
    Async token bucket.

    ``rate`` tokens are added per second up to ``burst``. ``acquire()`` waits
    until a token is available; cancelling the waiting task (e.g. through an
    enclosing ``asyncio.wait_for``) abandons the wait without taking a token.
    """

    def __init__(self, rate: float, burst: int = 1, clock=time.monotonic):
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.burst = max(1, burst)
        self._clock = clock
        self._tokens = float(self.burst)
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = min(self.burst, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    async def acquire(self) -> None:
        # Waiters queue on the lock, so tokens are handed out in FIFO order
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await asyncio.sleep((1 - self._tokens) / self.rate)
