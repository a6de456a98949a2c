from enum import Enum
from typing import Any, Dict, Optional

import pydantic


class Model(pydantic.BaseModel):
    pass


class RepositoryId(Model):
    model_config = pydantic.ConfigDict(frozen=True)

    owner: str
    name: str

    @classmethod
    def parse(cls, value: str) -> "RepositoryId":
        owner, sep, name = value.strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Repository must be given as 'owner/name', got {value!r}")
        return cls(owner=owner, name=name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def html_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


class ComparisonStatus(str, Enum):
    AHEAD = "AHEAD"
    BEHIND = "BEHIND"
    DIVERGED = "DIVERGED"
    IDENTICAL = "IDENTICAL"

    @property
    def included(self) -> bool:
        return self in (ComparisonStatus.BEHIND, ComparisonStatus.IDENTICAL)


class PullRequestState(str, Enum):
    OPEN = "OPEN"
    MERGED = "MERGED"
    CLOSED = "CLOSED"


class PullRequestSnapshot(Model):
    number: int
    title: str
    state: PullRequestState
    base_branch: str
    head_commit: Optional[str] = None
    merge_commit: Optional[str] = None

    @pydantic.model_validator(mode="after")
    def _merge_commit_only_when_merged(self) -> "PullRequestSnapshot":
        if self.state != PullRequestState.MERGED:
            self.merge_commit = None
        return self

    @classmethod
    def from_graphql(cls, number: int, data: Dict[str, Any]) -> "PullRequestSnapshot":
        merge_commit = data.get("mergeCommit") or {}
        return cls(
            number=number,
            title=data["title"],
            state=data["state"],
            base_branch=data["baseRefName"],
            head_commit=data.get("headRefOid"),
            merge_commit=merge_commit.get("oid"),
        )

    @property
    def is_merged(self) -> bool:
        return self.state == PullRequestState.MERGED

    @property
    def is_closed(self) -> bool:
        return self.state == PullRequestState.CLOSED

    def html_url(self, repository: RepositoryId) -> str:
        return f"{repository.html_url}/pull/{self.number}"

    def __str__(self) -> str:
        return f"PR(#{self.number}, {self.state.value})"
