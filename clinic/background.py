"""
Fire-and-forget task tracking.

Outbound sends, notification deliveries and repository writes run as
background tasks with a bounded timeout. Failures are logged and counted,
never retried inline, and never propagate back into the conversation.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional, Set

from shared.observability import record_background_failure

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Tracks spawned tasks so shutdown and tests can wait for them"""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable[Any], label: str, timeout: float, kind: str = "task") -> asyncio.Task:
        """
        Schedule `coro` on the running loop.

        Args:
            coro: Work to run
            label: Human-readable name used in logs
            timeout: Seconds before the work is abandoned
            kind: Metric label for failures (send, sink, persistence)
        """
        task = asyncio.create_task(self._run(coro, label, timeout, kind), name=label)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Awaitable[Any], label: str, timeout: float, kind: str) -> Optional[Any]:
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"️ {label} timed out after {timeout}s")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"️ {label} failed: {e}")
        record_background_failure(kind)
        return None

    async def drain(self) -> None:
        """Wait until every pending task (including ones spawned meanwhile) is done"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._tasks)
