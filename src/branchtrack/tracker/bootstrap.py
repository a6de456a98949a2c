from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from branchtrack.github.api import API, RemoteQueryFailed, SnapshotSource
from branchtrack.github.model import PullRequestSnapshot, RepositoryId
from branchtrack.metric import bootstrap_error_counter, edges_started_counter
from branchtrack.model import TrackerConfig
from branchtrack.notify import NotificationSink
from branchtrack.rules import PropagationRuleSet
from branchtrack.schedule import CronGate
from branchtrack.tracker import messages
from branchtrack.tracker.linear import LinearTracker
from branchtrack.tracker.status import branch_status
from branchtrack.tracker.tracker import PropagationTracker
from branchtrack.tracker.types import LinearWatch, PendingMerge

logger = logging.getLogger("branchtrack")


class TrackingRefused(Exception):
    snapshot: PullRequestSnapshot

    def __init__(self, *args, **kwargs):
        self.snapshot = kwargs.pop("snapshot")
        super().__init__(*args, **kwargs)


async def fetch_snapshot(
    source: SnapshotSource, repository: RepositoryId, pr_number: int
) -> PullRequestSnapshot:
    try:
        snapshot = await source.fetch_snapshot(repository, pr_number)
    except RemoteQueryFailed:
        bootstrap_error_counter.labels(reason="query").inc()
        raise
    if snapshot.is_merged and snapshot.merge_commit is None:
        bootstrap_error_counter.labels(reason="query").inc()
        raise RemoteQueryFailed(
            f"{repository}#{pr_number} is merged but has no merge commit"
        )
    logger.debug("Fetched %s of %s: %s", snapshot, repository, snapshot.title)
    return snapshot


class Bootstrap:
    def __init__(
        self,
        *,
        source: SnapshotSource,
        tracker: PropagationTracker,
        config: TrackerConfig,
    ):
        self.source = source
        self.tracker = tracker
        self.config = config

    @classmethod
    def create(
        cls,
        api: API,
        config: TrackerConfig,
        sink: NotificationSink,
        cron: Optional[str] = None,
    ) -> "Bootstrap":
        # invalid rules or cron expressions fail here, before anything is tracked
        tracker = PropagationTracker(
            rules=PropagationRuleSet.from_config(config),
            oracle=api,
            scheduler=CronGate(cron or config.cron),
            sink=sink,
        )
        return cls(source=api, tracker=tracker, config=config)

    def base_branch(self, repository: RepositoryId, snapshot: PullRequestSnapshot) -> str:
        return self.config.repository(repository).base_branch or snapshot.base_branch

    async def status(
        self, repository: RepositoryId, snapshot: PullRequestSnapshot
    ) -> List[Tuple[str, bool]]:
        return await branch_status(
            self.tracker.oracle,
            self.tracker.rules,
            repository,
            snapshot,
            self.base_branch(repository, snapshot),
        )

    async def start(
        self,
        repository: RepositoryId,
        pr_number: int,
        strategy: Optional[str] = None,
    ) -> PullRequestSnapshot:
        strategy = strategy or self.config.strategy
        snapshot = await fetch_snapshot(self.source, repository, pr_number)

        if snapshot.is_closed:
            bootstrap_error_counter.labels(reason="closed").inc()
            raise TrackingRefused(
                f"{repository}#{pr_number} was closed without being merged",
                snapshot=snapshot,
            )

        if strategy == "linear":
            await self.start_linear(repository, snapshot)
        elif snapshot.is_merged:
            self.tracker.start(
                repository,
                pr_number,
                self.base_branch(repository, snapshot),
                snapshot.merge_commit,
            )
        else:
            logger.info("%s#%d is still open, waiting for merge", repository, pr_number)
            self.tracker.supervisor.spawn(
                self.await_merge(repository, snapshot),
                PendingMerge(repository, pr_number),
            )
        return snapshot

    async def start_linear(
        self, repository: RepositoryId, snapshot: PullRequestSnapshot
    ) -> asyncio.Task:
        base = self.base_branch(repository, snapshot)
        branches = self.config.repository(
            repository
        ).linear_branches or self.tracker.rules.all_branches(repository, base)
        linear = LinearTracker(
            source=self.source,
            oracle=self.tracker.oracle,
            scheduler=self.tracker.scheduler,
            sink=self.tracker.sink,
            branches=branches,
        )

        included: Dict[str, bool] = {}
        if snapshot.merge_commit is not None:
            try:
                included = await linear.inclusion(repository, snapshot.merge_commit)
            except RemoteQueryFailed:
                logger.warning(
                    "Could not determine initial branches of %s#%d",
                    repository,
                    snapshot.number,
                    exc_info=True,
                )

        edges_started_counter.labels(strategy="linear").inc()
        return self.tracker.supervisor.spawn(
            linear.run(repository, snapshot, included),
            LinearWatch(repository, snapshot.number, tuple(branches)),
        )

    async def await_merge(
        self, repository: RepositoryId, snapshot: PullRequestSnapshot
    ) -> None:
        pr_number = snapshot.number
        while True:
            await self.tracker.scheduler.wait_for_next_tick()
            try:
                snapshot = await self.source.fetch_snapshot(repository, pr_number)
            except Exception:
                logger.warning(
                    "Failed to fetch %s#%d", repository, pr_number, exc_info=True
                )
                continue

            if snapshot.is_closed:
                await messages.announce(self.tracker.sink, messages.closed(pr_number))
                return
            if not snapshot.is_merged:
                continue
            if snapshot.merge_commit is None:
                logger.warning(
                    "%s#%d is merged but has no merge commit yet", repository, pr_number
                )
                continue

            await messages.announce(self.tracker.sink, messages.merged(pr_number))
            self.tracker.start(
                repository,
                pr_number,
                self.base_branch(repository, snapshot),
                snapshot.merge_commit,
            )
            return
