import asyncio
import logging
from typing import Optional

import typer
from tabulate import tabulate

from branchtrack import config
from branchtrack.github import RemoteQueryFailed, RepositoryId, github_client
from branchtrack.logger import configure_logging
from branchtrack.model import InvalidConfig, TrackerConfig, load_config
from branchtrack.notify import default_sink
from branchtrack.rules import PropagationRuleSet
from branchtrack.tracker import Bootstrap, TrackingRefused, fetch_snapshot, format_status

logger = logging.getLogger("branchtrack")

app = typer.Typer()


def _repository(value: str) -> RepositoryId:
    try:
        return RepositoryId.parse(value)
    except ValueError as e:
        raise typer.BadParameter(str(e))


def _tracker_config() -> TrackerConfig:
    try:
        return load_config(config.TRACKER_CONFIG)
    except InvalidConfig as e:
        logger.error("Invalid tracker config %s: %s", e.source, e)
        raise typer.Exit(code=2)


@app.callback()
def init():
    configure_logging()


@app.command()
def branches(repo: str, branch: str):
    """Show every branch a change landing on BRANCH propagates to."""
    repository = _repository(repo)
    try:
        rules = PropagationRuleSet.from_config(_tracker_config())
    except InvalidConfig as e:
        logger.error("%s", e)
        raise typer.Exit(code=2)

    rows = []
    for idx, name in enumerate(rules.all_branches(repository, branch)):
        rows.append((idx, name, ", ".join(rules.next_branches(repository, name))))
    typer.echo(tabulate(rows, headers=("", "Branch", "Feeds"), tablefmt="github"))


@app.command()
def status(repo: str, number: int):
    """Show which branches already contain a merged pull request."""
    repository = _repository(repo)
    tracker_config = _tracker_config()

    async def handle():
        async with github_client() as api:
            bootstrap = Bootstrap.create(
                api, tracker_config, default_sink(echo=True), cron=config.TRACKER_CRON
            )
            snapshot = await fetch_snapshot(bootstrap.source, repository, number)
            typer.echo(
                format_status(
                    repository, snapshot, await bootstrap.status(repository, snapshot)
                )
            )

    try:
        asyncio.run(handle())
    except (RemoteQueryFailed, InvalidConfig) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def track(
    repo: str,
    number: int,
    strategy: Optional[str] = typer.Option(
        None, help="fanout or linear, defaults to the configured strategy"
    ),
):
    """Announce every branch a pull request reaches until it reached them all."""
    repository = _repository(repo)
    tracker_config = _tracker_config()
    strategy = strategy or config.TRACKER_STRATEGY

    async def handle():
        async with github_client() as api:
            bootstrap = Bootstrap.create(
                api, tracker_config, default_sink(echo=True), cron=config.TRACKER_CRON
            )
            snapshot = await bootstrap.start(repository, number, strategy=strategy)
            try:
                in_branches = await bootstrap.status(repository, snapshot)
            except RemoteQueryFailed:
                logger.warning("Could not determine branch status", exc_info=True)
                in_branches = []
            typer.echo(format_status(repository, snapshot, in_branches, tracking=True))
            try:
                await bootstrap.tracker.supervisor.join()
            finally:
                await bootstrap.tracker.supervisor.shutdown()

    try:
        asyncio.run(handle())
    except (RemoteQueryFailed, TrackingRefused, InvalidConfig) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("Interrupted, abandoning remaining trackers")


@app.command()
def serve(host: str = config.WEB_HOST, port: int = config.WEB_PORT):
    from branchtrack.web import create_app

    create_app().run(host=host, port=port, single_process=True)
