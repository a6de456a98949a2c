import logging

from branchtrack.metric import notification_counter
from branchtrack.notify import NotificationSink

logger = logging.getLogger("branchtrack")


def in_branch(pr_number: int, branch: str) -> str:
    return f"PR #{pr_number} is now in branch {branch}!"


def merged(pr_number: int) -> str:
    return f"PR #{pr_number} is now merged!"


def closed(pr_number: int) -> str:
    return f"PR #{pr_number} is closed! 😞"


def in_all_branches(pr_number: int) -> str:
    return f"PR #{pr_number} is now in all branches!"


async def announce(sink: NotificationSink, text: str) -> bool:
    """Best effort delivery, a failure is logged and otherwise ignored."""
    try:
        await sink.notify(text)
    except Exception:
        notification_counter.labels(result="failed").inc()
        logger.warning("Failed to deliver notification %r", text, exc_info=True)
        return False
    notification_counter.labels(result="sent").inc()
    return True
