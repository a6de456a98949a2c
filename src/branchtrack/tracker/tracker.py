from __future__ import annotations

import asyncio
import logging
from typing import Optional

from branchtrack.github.api import ComparisonOracle
from branchtrack.github.model import RepositoryId
from branchtrack.metric import edges_started_counter, poll_counter
from branchtrack.notify import NotificationSink
from branchtrack.rules import PropagationRuleSet
from branchtrack.schedule import Scheduler
from branchtrack.tracker import messages
from branchtrack.tracker.supervisor import Supervisor
from branchtrack.tracker.types import TrackingEdge

logger = logging.getLogger("branchtrack")


class PropagationTracker:
    """Follows a commit along the propagation graph of a repository.

    Every edge polls its branch on the scheduler's cadence until the commit is
    included, announces the branch and starts one new edge per downstream
    branch. Edges never give up: failed comparisons are retried on the next
    tick.
    """

    def __init__(
        self,
        *,
        rules: PropagationRuleSet,
        oracle: ComparisonOracle,
        scheduler: Scheduler,
        sink: NotificationSink,
        supervisor: Optional[Supervisor] = None,
    ):
        self.rules = rules
        self.oracle = oracle
        self.scheduler = scheduler
        self.sink = sink
        self.supervisor = supervisor if supervisor is not None else Supervisor()

    def start(
        self,
        repository: RepositoryId,
        pr_number: int,
        base_branch: str,
        head_commit: str,
    ) -> asyncio.Task:
        return self.spawn(
            TrackingEdge(
                repository=repository,
                pr_number=pr_number,
                head_commit=head_commit,
                branch=base_branch,
            )
        )

    def spawn(self, edge: TrackingEdge) -> asyncio.Task:
        if self.supervisor.is_active(edge):
            # reachable along more than one path, both edges will announce
            logger.warning("%s is already being tracked, tracking it again", edge)
        edges_started_counter.labels(strategy="fanout").inc()
        return self.supervisor.spawn(self.track(edge), edge)

    async def poll(self, edge: TrackingEdge) -> bool:
        try:
            status = await self.oracle.compare(
                edge.repository, edge.branch, edge.head_commit
            )
        except Exception:
            poll_counter.labels(result="error").inc()
            logger.warning(
                "Failed to compare %s/%s...%s",
                edge.repository,
                edge.branch,
                edge.head_commit,
                exc_info=True,
            )
            return False

        if status.included:
            poll_counter.labels(result="included").inc()
            return True

        poll_counter.labels(result="pending").inc()
        logger.debug("%s not included yet (%s)", edge, status.value)
        return False

    async def track(self, edge: TrackingEdge) -> None:
        logger.info("Start tracking %s", edge)
        while True:
            await self.scheduler.wait_for_next_tick()
            if await self.poll(edge):
                break

        logger.info("%s reached", edge)
        await messages.announce(
            self.sink, messages.in_branch(edge.pr_number, edge.branch)
        )

        next_branches = self.rules.next_branches(edge.repository, edge.branch)
        if len(next_branches) == 0:
            logger.debug("%s is a leaf branch", edge)
        for branch in next_branches:
            self.spawn(edge.downstream(branch))
