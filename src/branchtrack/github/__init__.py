from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiohttp
import cachetools
from gidgethub import aiohttp as gh_aiohttp

from branchtrack import config as app_config
from branchtrack.github.api import (
    API,
    ComparisonOracle,
    RemoteQueryFailed,
    SnapshotSource,
)
from branchtrack.github.model import (
    ComparisonStatus,
    PullRequestSnapshot,
    PullRequestState,
    RepositoryId,
)

__all__ = [
    "API",
    "ComparisonOracle",
    "ComparisonStatus",
    "PullRequestSnapshot",
    "PullRequestState",
    "RemoteQueryFailed",
    "RepositoryId",
    "SnapshotSource",
    "api_for_session",
    "github_client",
]

httpcache = cachetools.LRUCache(maxsize=app_config.HTTP_CACHE_SIZE)


def api_for_session(
    session: aiohttp.ClientSession,
    token: Optional[str] = None,
    base_url: Optional[str] = None,
) -> API:
    base_url = base_url or app_config.GITHUB_API_URL
    gh = gh_aiohttp.GitHubAPI(
        session,
        "branchtrack",
        oauth_token=token if token is not None else app_config.GITHUB_TOKEN,
        cache=httpcache,
        base_url=base_url,
    )
    return API(gh, base_url=base_url)


@asynccontextmanager
async def github_client(
    token: Optional[str] = None, base_url: Optional[str] = None
) -> AsyncIterator[API]:
    async with aiohttp.ClientSession() as session:
        yield api_for_session(session, token=token, base_url=base_url)
