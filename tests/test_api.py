import gidgethub
import pytest

from branchtrack.github.api import API, RemoteQueryFailed
from branchtrack.github.model import ComparisonStatus, PullRequestState, RepositoryId
from branchtrack.rules import PropagationRuleSet
from branchtrack.tracker import PropagationTracker

from fakes import RecordingGate, RecordingSink

REPO = RepositoryId(owner="NixOS", name="nixpkgs")


class _FakeGitHub:
    def __init__(self, response):
        self.response = response
        self.requests = []

    async def graphql(self, query, *, endpoint, **variables):
        self.requests.append((endpoint, variables))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.mark.asyncio
async def test_fetch_snapshot():
    gh = _FakeGitHub(
        {
            "repository": {
                "pullRequest": {
                    "title": "hello: 1.0 -> 1.1",
                    "state": "MERGED",
                    "baseRefName": "staging",
                    "headRefOid": "b" * 40,
                    "mergeCommit": {"oid": "a" * 40},
                }
            }
        }
    )
    api = API(gh, base_url="https://ghe.example.com/api/")

    snapshot = await api.fetch_snapshot(REPO, 123)

    assert snapshot.number == 123
    assert snapshot.state == PullRequestState.MERGED
    assert snapshot.merge_commit == "a" * 40
    assert gh.requests == [
        (
            "https://ghe.example.com/api/graphql",
            {"owner": "NixOS", "name": "nixpkgs", "number": 123},
        )
    ]
    assert api.call_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        {},
        None,
        {"repository": None},
        {"repository": {"pullRequest": None}},
        gidgethub.GitHubException("bad credentials"),
    ],
)
async def test_fetch_snapshot_failures(response):
    api = API(_FakeGitHub(response))
    with pytest.raises(RemoteQueryFailed):
        await api.fetch_snapshot(REPO, 1)


@pytest.mark.asyncio
async def test_compare():
    gh = _FakeGitHub({"repository": {"ref": {"compare": {"status": "BEHIND"}}}})
    api = API(gh)

    status = await api.compare(REPO, "nixos-unstable", "a" * 40)

    assert status == ComparisonStatus.BEHIND
    assert status.included
    endpoint, variables = gh.requests[0]
    assert endpoint == "https://api.github.com/graphql"
    assert variables == {
        "owner": "NixOS",
        "name": "nixpkgs",
        "base": "nixos-unstable",
        "head": "a" * 40,
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        {"repository": {"ref": None}},
        {"repository": {"ref": {"compare": None}}},
        {"repository": {"ref": {"compare": {"status": "SIDEWAYS"}}}},
        {"repository": None},
        gidgethub.GitHubException("rate limited"),
    ],
)
async def test_compare_failures(response):
    api = API(_FakeGitHub(response))
    with pytest.raises(RemoteQueryFailed):
        await api.compare(REPO, "master", "a" * 40)


@pytest.mark.asyncio
async def test_tracker_walks_through_api():
    gh = _FakeGitHub({"repository": {"ref": {"compare": {"status": "IDENTICAL"}}}})
    api = API(gh)
    sink = RecordingSink()
    tracker = PropagationTracker(
        rules=PropagationRuleSet.from_targets({REPO: {"^staging$": ["master"]}}),
        oracle=api,
        scheduler=RecordingGate(),
        sink=sink,
    )

    tracker.start(REPO, 7, "staging", "a" * 40)
    await tracker.supervisor.join()

    assert sink.messages == [
        "PR #7 is now in branch staging!",
        "PR #7 is now in branch master!",
    ]
    assert [v["base"] for _, v in gh.requests] == ["staging", "master"]
    assert api.call_count == 2
