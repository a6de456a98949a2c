import asyncio
from datetime import datetime, timedelta, timezone
import logging
from typing import Awaitable, Callable, Optional, Protocol

from croniter import croniter
import humanize

from branchtrack.model import InvalidConfig

logger = logging.getLogger("branchtrack")


class Scheduler(Protocol):
    async def wait_for_next_tick(self) -> None:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CronGate:
    """Suspends callers until the next instant allowed by a cron expression.

    Every caller computes its own next tick, there is no coalescing between
    callers waiting on the same gate.
    """

    def __init__(
        self,
        expression: str,
        *,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not croniter.is_valid(expression):
            raise InvalidConfig(f"Invalid cron expression {expression!r}")
        self.expression = expression
        self._clock = clock
        self._sleep = sleep

    def next_tick(self, now: Optional[datetime] = None) -> datetime:
        now = now if now is not None else self._clock()
        return croniter(self.expression, now).get_next(datetime)

    async def wait_for_next_tick(self) -> None:
        now = self._clock()
        tick = self.next_tick(now)
        delay = max(timedelta(0), tick - now)
        logger.debug(
            "Next tick at %s (%s from now)", tick, humanize.naturaldelta(delay)
        )
        await self._sleep(delay.total_seconds())
