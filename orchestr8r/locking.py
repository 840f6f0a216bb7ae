"""Write serialization for working-context mutations.

``ContextLock`` serializes read-modify-write cycles inside one process.
``ProcessFileLock`` is an optional advisory lock marker shared between
processes that use the same storage directory; without it, independent
processes writing the same record race with last-writer-wins.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from collections import deque
from pathlib import Path
from typing import Any, Awaitable, Callable, Deque, Optional, TypeVar

from .errors import ContextLockError

logger = logging.getLogger("orchestr8r.locking")

T = TypeVar("T")


class ContextLock:
    """In-process FIFO critical section.

    Operations run one at a time in the order ``with_lock`` was called. Each
    caller gets its own result or exception back; a failing operation still
    hands the lock to the next one in line.
    """

    def __init__(self):
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def locked(self) -> bool:
        return bool(self._waiters) and self._waiters[0].done()

    @property
    def pending(self) -> int:
        """Number of operations queued or running."""
        return len(self._waiters)

    async def with_lock(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation()`` once every earlier submission has finished."""
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        if len(self._waiters) == 1:
            waiter.set_result(None)

        try:
            await waiter
            return await operation()
        finally:
            was_head = self._waiters[0] is waiter
            self._waiters.remove(waiter)
            if was_head and self._waiters:
                successor = self._waiters[0]
                if not successor.done():
                    successor.set_result(None)


class ProcessFileLock:
    """Advisory cross-process lock held as an exclusively created marker file.

    The marker records the holder's pid and acquisition time. A marker whose
    holder is no longer running, or that is older than ``stale_after``
    seconds, is removed and acquisition retried.
    """

    POLL_INTERVAL = 0.05

    def __init__(
        self,
        lock_path: Path | str,
        *,
        timeout: float = 5.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        stale_after: float = 60.0,
    ):
        self.lock_path = Path(lock_path)
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.stale_after = stale_after
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    async def acquire(self) -> None:
        """Acquire the marker or raise ContextLockError after ``max_retries`` attempts."""
        if self._held:
            raise ContextLockError(f"Lock already held by this process: {self.lock_path}")

        for attempt in range(1, self.max_retries + 1):
            deadline = time.monotonic() + self.timeout
            while True:
                if await asyncio.to_thread(self._try_create):
                    self._held = True
                    logger.debug(f"Acquired context lock {self.lock_path} on attempt {attempt}")
                    return
                if await asyncio.to_thread(self._remove_if_stale):
                    continue
                if time.monotonic() >= deadline:
                    break
                await asyncio.sleep(self.POLL_INTERVAL)

            logger.warning(
                f"Context lock {self.lock_path} busy after {self.timeout:.1f}s "
                f"(attempt {attempt}/{self.max_retries})"
            )
            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay)

        raise ContextLockError(
            f"Could not acquire context lock {self.lock_path} after {self.max_retries} attempts"
        )

    async def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            await asyncio.to_thread(self.lock_path.unlink)
        except FileNotFoundError:
            logger.warning(f"Context lock {self.lock_path} vanished before release")

    async def __aenter__(self) -> "ProcessFileLock":
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.release()

    def _try_create(self) -> bool:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump({"pid": os.getpid(), "acquired_at": time.time()}, handle)
        return True

    def _remove_if_stale(self) -> bool:
        holder = self._read_holder()
        if holder is None:
            return False
        pid = holder.get("pid")
        acquired_at = holder.get("acquired_at")

        stale = False
        if not isinstance(pid, int) or not isinstance(acquired_at, (int, float)):
            stale = True
        elif time.time() - acquired_at > self.stale_after:
            stale = True
        elif not _process_alive(pid):
            stale = True

        if not stale:
            return False

        logger.warning(f"Removing stale context lock {self.lock_path} held by {holder}")
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass
        return True

    def _read_holder(self) -> Optional[dict]:
        try:
            content = self.lock_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        if not content:
            # Holder may be between create and write; only an old marker is stale.
            try:
                age = time.time() - self.lock_path.stat().st_mtime
            except FileNotFoundError:
                return None
            return {} if age > self.stale_after else None
        try:
            holder = json.loads(content)
        except json.JSONDecodeError:
            return {}
        return holder if isinstance(holder, dict) else {}


def _process_alive(pid: int) -> bool:
    if pid == os.getpid():
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
