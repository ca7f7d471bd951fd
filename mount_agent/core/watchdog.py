import asyncio
import logging
from typing import Awaitable, Callable, Optional


class MountWatchdog:
    """
    Single-shot, restartable timer for a mount attempt.

    arm() always cancels a pending timer and starts a new one, so the deadline
    moves to now + interval. The timeout handler may re-arm the watchdog from
    inside its own fire. A pending fire that is still waiting to run its
    handler is cancelled by arm()/cancel() as well.
    """

    def __init__(
        self,
        interval_provider: Callable[[], float],
        on_timeout: Callable[[], Awaitable[None]],
        name: str = "mount-watchdog",
    ):
        self._interval_provider = interval_provider
        self._on_timeout = on_timeout
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self._deadline: Optional[float] = None

    @property
    def is_armed(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def deadline(self) -> Optional[float]:
        """Loop time at which the pending timer fires, or None."""
        return self._deadline if self.is_armed else None

    def arm(self) -> None:
        self.cancel()
        interval = float(self._interval_provider())
        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + interval
        self._task = loop.create_task(self._run(interval), name=self._name)
        logging.debug(f"{self._name} armed for {interval:.1f}s")

    def cancel(self) -> None:
        task = self._task
        self._task = None
        self._deadline = None
        # A firing handler may re-arm from inside its own task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self, interval: float) -> None:
        await asyncio.sleep(interval)
        logging.debug(f"{self._name} fired after {interval:.1f}s")
        try:
            await self._on_timeout()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logging.error(f"Error in {self._name} timeout handler: {e}", exc_info=True)
        finally:
            # Unless the handler re-armed, nothing is pending any more
            if self._task is asyncio.current_task():
                self._task = None
                self._deadline = None
