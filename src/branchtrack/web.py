from typing import Any, Dict, Optional, Tuple

from sanic import Sanic, Request, response
from sanic.log import logger
import aiohttp
from prometheus_client import core
from prometheus_client.exposition import generate_latest

from branchtrack import config
from branchtrack.github import RemoteQueryFailed, RepositoryId, api_for_session
from branchtrack.logger import configure_logging, get_log_handlers
from branchtrack.metric import request_counter
from branchtrack.model import TrackerConfig, load_config
from branchtrack.notify import default_sink
from branchtrack.tracker import Bootstrap, TrackingRefused, format_status


async def handle_track_request(
    bootstrap: Bootstrap,
    repository: RepositoryId,
    number: int,
    strategy: Optional[str] = None,
) -> Tuple[int, Dict[str, Any]]:
    try:
        snapshot = await bootstrap.start(repository, number, strategy=strategy)
    except TrackingRefused as e:
        logger.info("Refusing to track %s#%d: %s", repository, number, e)
        return 409, {"error": str(e), "state": e.snapshot.state.value}
    except RemoteQueryFailed as e:
        logger.warning("Cannot track %s#%d: %s", repository, number, e)
        return 404, {"error": str(e)}

    try:
        in_branches = await bootstrap.status(repository, snapshot)
    except RemoteQueryFailed:
        logger.warning("Could not determine branch status", exc_info=True)
        in_branches = []

    return 202, {
        "message": format_status(repository, snapshot, in_branches, tracking=True),
        "state": snapshot.state.value,
        "branches": {b: included for b, included in in_branches},
    }


def describe_trackers(bootstrap: Bootstrap):
    return [owner.describe() for owner in bootstrap.tracker.supervisor.active()]


def create_app(tracker_config: Optional[TrackerConfig] = None):
    app = Sanic("branchtrack")

    configure_logging()
    get_log_handlers(logger)

    tracker_config = tracker_config or load_config(config.TRACKER_CONFIG)

    @app.listener("before_server_start")
    async def init(app, loop):
        logger.debug("Creating aiohttp session")
        app.ctx.aiohttp_session = aiohttp.ClientSession()
        app.ctx.bootstrap = Bootstrap.create(
            api_for_session(app.ctx.aiohttp_session),
            tracker_config,
            default_sink(),
            cron=config.TRACKER_CRON,
        )

    @app.listener("after_server_stop")
    async def stop(app, loop):
        await app.ctx.bootstrap.tracker.supervisor.shutdown()
        await app.ctx.aiohttp_session.close()

    @app.on_request
    async def on_request(request: Request):
        if request.path == "/metrics":
            return
        request_counter.labels(path=request.path).inc()

    @app.get("/status")
    async def status(request):
        logger.debug("status check")
        return response.text("ok")

    @app.get("/trackers")
    async def trackers(request):
        return response.json(describe_trackers(app.ctx.bootstrap))

    @app.post("/track/<owner:str>/<repo:str>/<number:int>")
    async def track(request, owner: str, repo: str, number: int):
        strategy = request.args.get("strategy") or config.TRACKER_STRATEGY
        if strategy not in (None, "fanout", "linear"):
            return response.json({"error": f"Unknown strategy {strategy}"}, status=400)
        status_code, payload = await handle_track_request(
            app.ctx.bootstrap,
            RepositoryId(owner=owner, name=repo),
            number,
            strategy=strategy,
        )
        return response.json(payload, status=status_code)

    @app.get("/metrics")
    async def metrics(request):
        data = generate_latest(core.REGISTRY)
        return response.raw(data)

    return app
