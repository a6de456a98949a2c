from __future__ import annotations

import asyncio
import logging
from typing import Dict, Mapping, Optional, Sequence

from branchtrack.github.api import ComparisonOracle, SnapshotSource
from branchtrack.github.model import (
    PullRequestSnapshot,
    PullRequestState,
    RepositoryId,
)
from branchtrack.metric import poll_counter
from branchtrack.notify import NotificationSink
from branchtrack.schedule import Scheduler
from branchtrack.tracker import messages

logger = logging.getLogger("branchtrack")


def newly_included_branch(
    current: Mapping[str, bool],
    previous: Mapping[str, bool],
    branches: Sequence[str],
) -> Optional[str]:
    """Pick the branch to announce after a poll.

    ``branches`` is ordered along the propagation direction, later branches
    take priority. Only the furthest included branch is considered: it is
    returned if it was not included at the previous poll, otherwise nothing
    is announced.
    """
    for branch in reversed(branches):
        if current.get(branch, False):
            if previous.get(branch, False):
                return None
            return branch
    return None


class LinearTracker:
    """Tracks a pull request against a fixed list of branches.

    Unlike the fan-out tracker this one starts from the pull request itself and
    also notices it being merged or closed.
    """

    def __init__(
        self,
        *,
        source: SnapshotSource,
        oracle: ComparisonOracle,
        scheduler: Scheduler,
        sink: NotificationSink,
        branches: Sequence[str],
    ):
        self.source = source
        self.oracle = oracle
        self.scheduler = scheduler
        self.sink = sink
        self.branches = list(branches)

    async def inclusion(
        self, repository: RepositoryId, head_commit: str
    ) -> Dict[str, bool]:
        statuses = await asyncio.gather(
            *(self.oracle.compare(repository, b, head_commit) for b in self.branches)
        )
        return {b: s.included for b, s in zip(self.branches, statuses)}

    async def run(
        self,
        repository: RepositoryId,
        snapshot: PullRequestSnapshot,
        included: Optional[Mapping[str, bool]] = None,
    ) -> None:
        """Poll until every branch includes the pull request.

        ``included`` holds the inclusion flags already known when tracking
        starts, a branch included there is not announced again.
        """
        pr_number = snapshot.number
        included = dict(included or {})
        logger.info("Start linear tracking of %s#%d", repository, pr_number)

        while True:
            await self.scheduler.wait_for_next_tick()

            if snapshot.is_closed:
                await messages.announce(self.sink, messages.closed(pr_number))
                return

            if not snapshot.is_merged or snapshot.merge_commit is None:
                was_open = snapshot.state == PullRequestState.OPEN
                try:
                    snapshot = await self.source.fetch_snapshot(repository, pr_number)
                except Exception:
                    logger.warning(
                        "Failed to fetch %s#%d", repository, pr_number, exc_info=True
                    )
                    continue
                if snapshot.is_closed:
                    await messages.announce(self.sink, messages.closed(pr_number))
                    return
                if not snapshot.is_merged:
                    continue
                if was_open:
                    await messages.announce(self.sink, messages.merged(pr_number))
                if snapshot.merge_commit is None:
                    logger.warning(
                        "%s#%d is merged but has no merge commit yet",
                        repository,
                        pr_number,
                    )
                    continue

            try:
                current = await self.inclusion(repository, snapshot.merge_commit)
            except Exception:
                poll_counter.labels(result="error").inc()
                logger.warning(
                    "Failed to compare %s#%d against %s",
                    repository,
                    pr_number,
                    self.branches,
                    exc_info=True,
                )
                continue

            new_branch = newly_included_branch(current, included, self.branches)
            included = current
            if new_branch is not None:
                poll_counter.labels(result="included").inc()
                await messages.announce(
                    self.sink, messages.in_branch(pr_number, new_branch)
                )
            else:
                poll_counter.labels(result="pending").inc()

            if all(current.values()):
                await messages.announce(self.sink, messages.in_all_branches(pr_number))
                return
