from __future__ import annotations

import asyncio
from typing import List, Tuple

from branchtrack.github.api import ComparisonOracle
from branchtrack.github.model import PullRequestSnapshot, RepositoryId
from branchtrack.rules import PropagationRuleSet


async def branch_status(
    oracle: ComparisonOracle,
    rules: PropagationRuleSet,
    repository: RepositoryId,
    snapshot: PullRequestSnapshot,
    base_branch: str,
) -> List[Tuple[str, bool]]:
    if snapshot.merge_commit is None:
        return []
    branches = rules.all_branches(repository, base_branch)
    statuses = await asyncio.gather(
        *(oracle.compare(repository, b, snapshot.merge_commit) for b in branches)
    )
    return [(b, s.included) for b, s in zip(branches, statuses)]


def format_status(
    repository: RepositoryId,
    snapshot: PullRequestSnapshot,
    branches: List[Tuple[str, bool]],
    tracking: bool = False,
) -> str:
    text = (
        f"{'Tracking ' if tracking else ''}PR #{snapshot.number}: {snapshot.title} "
        f"{snapshot.html_url(repository)}"
    )
    for branch, included in branches:
        text += f"\n{branch} {'✅' if included else '-'}"
    return text
