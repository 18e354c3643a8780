"""In-process run supervision — at most one active run per study pack."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from studypack.core.config import get_settings

logger = logging.getLogger(__name__)


class PackRunRegistry:
    """Tracks the background task currently processing each study pack.

    The registry is process-local: it does not survive a restart and does
    not coordinate between replicas.
    """

    def __init__(self, run_timeout: float | None = None) -> None:
        self._running: dict[str, asyncio.Task] = {}
        self.run_timeout = run_timeout

    def is_running(self, pack_id: str) -> bool:
        return pack_id in self._running

    @property
    def active(self) -> list[str]:
        return list(self._running)

    def try_start(self, pack_id: str, run: Callable[[], Awaitable[object]]) -> bool:
        """Start ``run`` in the background unless ``pack_id`` is already active.

        Returns:
            True if a new run was started, False if one is already running.
        """
        if pack_id in self._running:
            return False
        self._running[pack_id] = asyncio.create_task(
            self._supervise(pack_id, run), name=f"study-pack:{pack_id}",
        )
        return True

    async def _supervise(self, pack_id: str, run: Callable[[], Awaitable[object]]) -> None:
        try:
            await asyncio.wait_for(run(), timeout=self.run_timeout)
        except asyncio.TimeoutError:
            logger.error("Run for study pack %s exceeded %ss", pack_id, self.run_timeout)
        except asyncio.CancelledError:
            logger.info("Run for study pack %s cancelled", pack_id)
            raise
        except Exception:
            logger.exception("Run for study pack %s crashed", pack_id)
        finally:
            self._running.pop(pack_id, None)

    async def wait(self, pack_id: str) -> None:
        """Wait until the active run for ``pack_id`` (if any) has finished."""
        task = self._running.get(pack_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every active run and wait for them to unwind."""
        running = dict(self._running)
        for task in running.values():
            task.cancel()
        if running:
            await asyncio.gather(*running.values(), return_exceptions=True)
        # Tasks cancelled before their first step never reach their finally block
        for pack_id in running:
            self._running.pop(pack_id, None)


run_registry = PackRunRegistry(run_timeout=get_settings().run_timeout_seconds)
