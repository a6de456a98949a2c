from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Tuple

from branchtrack.github.model import RepositoryId


@dataclass(frozen=True)
class TrackingEdge:
    repository: RepositoryId
    pr_number: int
    head_commit: str
    branch: str

    @property
    def key(self) -> Tuple[RepositoryId, int, str]:
        return (self.repository, self.pr_number, self.branch)

    def downstream(self, branch: str) -> TrackingEdge:
        return replace(self, branch=branch)

    def describe(self) -> Dict[str, Any]:
        return {
            "kind": "edge",
            "repository": self.repository.full_name,
            "pr_number": self.pr_number,
            "head_commit": self.head_commit,
            "branch": self.branch,
        }

    def __str__(self) -> str:
        return f"{self.repository}#{self.pr_number}@{self.branch}"


@dataclass(frozen=True)
class PendingMerge:
    repository: RepositoryId
    pr_number: int

    def describe(self) -> Dict[str, Any]:
        return {
            "kind": "pending-merge",
            "repository": self.repository.full_name,
            "pr_number": self.pr_number,
        }

    def __str__(self) -> str:
        return f"{self.repository}#{self.pr_number} (waiting for merge)"


@dataclass(frozen=True)
class LinearWatch:
    repository: RepositoryId
    pr_number: int
    branches: Tuple[str, ...]

    def describe(self) -> Dict[str, Any]:
        return {
            "kind": "linear",
            "repository": self.repository.full_name,
            "pr_number": self.pr_number,
            "branches": list(self.branches),
        }

    def __str__(self) -> str:
        return f"{self.repository}#{self.pr_number} (linear)"
