import asyncio
import logging
from typing import Any, Dict, Protocol

import aiohttp
import gidgethub
from gidgethub.abc import GitHubAPI

from branchtrack.github.model import (
    ComparisonStatus,
    PullRequestSnapshot,
    RepositoryId,
)
from branchtrack.metric import api_call_count

logger = logging.getLogger("branchtrack")


PULL_INFO_QUERY = """
query PullInfo($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) {
      title
      state
      baseRefName
      headRefOid
      mergeCommit {
        oid
      }
    }
  }
}
"""

COMPARE_QUERY = """
query Compare($owner: String!, $name: String!, $base: String!, $head: String!) {
  repository(owner: $owner, name: $name) {
    ref(qualifiedName: $base) {
      compare(headRef: $head) {
        status
      }
    }
  }
}
"""


class RemoteQueryFailed(Exception):
    pass


class ComparisonOracle(Protocol):
    async def compare(
        self, repository: RepositoryId, base_branch: str, head_commit: str
    ) -> ComparisonStatus:
        ...


class SnapshotSource(Protocol):
    async def fetch_snapshot(
        self, repository: RepositoryId, pr_number: int
    ) -> PullRequestSnapshot:
        ...


class API:
    gh: GitHubAPI
    graphql_url: str

    call_count: int

    def __init__(self, gh: GitHubAPI, base_url: str = "https://api.github.com"):
        self.gh = gh
        self.graphql_url = f"{base_url.rstrip('/')}/graphql"
        self.call_count = 0

    async def _query(
        self, query_name: str, query: str, **variables: Any
    ) -> Dict[str, Any]:
        self.call_count += 1
        api_call_count.labels(query=query_name).inc()
        try:
            data = await self.gh.graphql(query, endpoint=self.graphql_url, **variables)
        except (gidgethub.GitHubException, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteQueryFailed(f"{query_name} query failed: {e}") from e
        if not data:
            raise RemoteQueryFailed(f"{query_name} query returned no data")
        return data

    async def fetch_snapshot(
        self, repository: RepositoryId, pr_number: int
    ) -> PullRequestSnapshot:
        logger.debug("Get pull request %s#%d", repository, pr_number)
        data = await self._query(
            "PullInfo",
            PULL_INFO_QUERY,
            owner=repository.owner,
            name=repository.name,
            number=pr_number,
        )
        repo = data.get("repository")
        if repo is None:
            raise RemoteQueryFailed(f"Repository {repository} not found")
        pull_request = repo.get("pullRequest")
        if pull_request is None:
            raise RemoteQueryFailed(f"{repository}#{pr_number} is not a pull request")
        return PullRequestSnapshot.from_graphql(pr_number, pull_request)

    async def compare(
        self, repository: RepositoryId, base_branch: str, head_commit: str
    ) -> ComparisonStatus:
        logger.debug("Compare %s %s...%s", repository, base_branch, head_commit)
        data = await self._query(
            "Compare",
            COMPARE_QUERY,
            owner=repository.owner,
            name=repository.name,
            base=base_branch,
            head=head_commit,
        )
        ref = (data.get("repository") or {}).get("ref")
        if ref is None:
            raise RemoteQueryFailed(f"Branch {base_branch} not found in {repository}")
        compare = ref.get("compare")
        if compare is None:
            raise RemoteQueryFailed(
                f"Commit {head_commit} cannot be compared against {base_branch}"
            )
        try:
            return ComparisonStatus(compare["status"])
        except (KeyError, ValueError) as e:
            raise RemoteQueryFailed(f"Unexpected comparison result {compare!r}") from e
