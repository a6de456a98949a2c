import asyncio
import functools
import logging
from typing import Any, Dict, List, Protocol, Sequence

import notifiers
import typer

from branchtrack import config

logger = logging.getLogger("branchtrack")


class NotificationFailed(Exception):
    pass


class NotificationSink(Protocol):
    async def notify(self, text: str) -> None:
        ...


class LogSink:
    async def notify(self, text: str) -> None:
        logger.info("Notification: %s", text)


class EchoSink:
    async def notify(self, text: str) -> None:
        typer.echo(text)


class NotifiersSink:
    """Deliver announcements through any provider supported by ``notifiers``."""

    def __init__(self, provider: str, **defaults: Any):
        self.notifier = notifiers.get_notifier(provider)
        self.defaults: Dict[str, Any] = defaults

    async def notify(self, text: str) -> None:
        loop = asyncio.get_running_loop()
        rsp = await loop.run_in_executor(
            None,
            functools.partial(self.notifier.notify, message=text, **self.defaults),
        )
        if not rsp.ok:
            raise NotificationFailed(
                f"{self.notifier.name} rejected notification: {rsp.errors}"
            )


def default_sink(echo: bool = False) -> NotificationSink:
    sinks: List[NotificationSink] = [EchoSink() if echo else LogSink()]
    if config.TELEGRAM_TOKEN is not None and config.TELEGRAM_CHAT_ID is not None:
        sinks.append(
            NotifiersSink(
                "telegram",
                token=config.TELEGRAM_TOKEN,
                chat_id=config.TELEGRAM_CHAT_ID,
            )
        )
    if len(sinks) == 1:
        return sinks[0]
    return MultiSink(sinks)


class MultiSink:
    def __init__(self, sinks: Sequence[NotificationSink]):
        self.sinks = list(sinks)

    async def notify(self, text: str) -> None:
        results = await asyncio.gather(
            *(s.notify(text) for s in self.sinks), return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, Exception)]
        if errors:
            raise NotificationFailed(
                f"{len(errors)} of {len(self.sinks)} sinks failed: "
                + "; ".join(str(e) for e in errors)
            )
