import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class SummaryScheduler:
    """Runs per-identity background jobs outside any request's lifetime.

    At most one job runs per identity. Scheduling an identity that is already
    running marks it dirty so exactly one follow-up run happens afterwards.
    Job failures are logged and never propagate to whoever scheduled them.
    """

    def __init__(self, job: Callable[[str], Awaitable[object]]) -> None:
        self._job = job
        self._running: dict[str, asyncio.Task] = {}
        self._dirty: set[str] = set()

    def schedule(self, identity: str) -> None:
        if identity in self._running:
            self._dirty.add(identity)
            return
        task = asyncio.create_task(self._run(identity), name=f"summary:{identity}")
        self._running[identity] = task

    async def _run(self, identity: str) -> None:
        try:
            while True:
                self._dirty.discard(identity)
                try:
                    await self._job(identity)
                except Exception:
                    logger.exception("Background summary recomputation failed for %s", identity)
                if identity not in self._dirty:
                    break
        finally:
            self._running.pop(identity, None)

    def pending(self) -> int:
        return len(self._running)

    async def drain(self) -> None:
        """Wait until no job is running, including follow-up runs."""
        while self._running:
            await asyncio.gather(*list(self._running.values()), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._running.values()):
            task.cancel()
        await asyncio.gather(*list(self._running.values()), return_exceptions=True)
        self._running.clear()
        self._dirty.clear()


__all__ = ["SummaryScheduler"]
