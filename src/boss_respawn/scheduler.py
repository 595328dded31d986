"""Single-flight periodic jobs and bounded retries for external calls."""
import asyncio
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from discord.ext import tasks

from .errors import BossTrackerError
from .logger import get_logger

logger = get_logger(__name__)


class SingleFlight:
    """Lets at most one guarded job run at a time; others are skipped, not queued."""

    def __init__(self):
        self.running: Optional[str] = None

    async def run(self, name: str, job: Callable[[], Awaitable[Any]]) -> Tuple[bool, Any]:
        """
        Run job unless another guarded job is in flight.

        Returns:
            (ran, result): ran is False when the job was skipped
        """
        if self.running is not None:
            logger.debug(f"Skipping '{name}': '{self.running}' still in progress")
            return False, None
        self.running = name
        try:
            return True, await job()
        finally:
            self.running = None


async def run_tick(name: str, job: Callable[[], Awaitable[Any]], guard: SingleFlight) -> bool:
    """
    One guarded iteration of a periodic job. Errors are logged, never raised,
    so the loop keeps running.

    Returns:
        False if the tick was skipped because another job held the guard
    """
    try:
        ran, _ = await guard.run(name, job)
        return ran
    except BossTrackerError as e:
        logger.error(f"Periodic job '{name}' failed: {e}", exc_info=True)
    except Exception as e:
        logger.error(f"Unexpected error in periodic job '{name}': {e}", exc_info=True)
    return True


def periodic_loop(name: str, seconds: float, job: Callable[[], Awaitable[Any]],
                  guard: SingleFlight, initial_delay: float = 0.0) -> tasks.Loop:
    """
    Build a discord.py task loop that runs job every `seconds` under guard.

    Start it with .start() once the client is ready and stop it with stop_loop().
    """
    async def tick():
        await run_tick(name, job, guard)

    loop = tasks.loop(seconds=seconds)(tick)

    if initial_delay:
        @loop.before_loop
        async def wait_first():
            await asyncio.sleep(initial_delay)

    @loop.after_loop
    async def stopped():
        logger.info(f"Stopped periodic job '{name}'")

    logger.debug(f"Periodic job '{name}' set up (every {seconds:g}s)")
    return loop


def stop_loop(loop: tasks.Loop, name: str, guard: SingleFlight) -> None:
    """
    Stop a periodic loop. A job that is in flight finishes first; a loop that
    is only waiting for its next iteration is cancelled right away.
    """
    if not loop.is_running():
        return
    loop.stop()
    if guard.running != name:
        loop.cancel()


async def call_with_retry(func: Callable[[], Awaitable[Any]], attempts: int = 3, timeout: Optional[float] = 10.0,
                          base_delay: float = 0.5,
                          retry_on: Tuple[Type[BaseException], ...] = (BossTrackerError, asyncio.TimeoutError, OSError),
                          description: str = "external call") -> Any:
    """
    Await func() with a per-attempt timeout and exponential backoff between attempts.

    Raises:
        The last error once all attempts fail
    """
    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            if timeout is None:
                return await func()
            return await asyncio.wait_for(func(), timeout=timeout)
        except retry_on as e:
            last_error = e
            if attempt >= attempts:
                break
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"{description} failed (attempt {attempt}/{attempts}): {e!r}; retrying in {delay:g}s")
            await asyncio.sleep(delay)
    logger.error(f"{description} failed after {attempts} attempts: {last_error!r}")
    raise last_error
