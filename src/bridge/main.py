"""FastAPI application entry point for the bridge.

Routes:
- POST /ghwebhook        GitHub webhook deliveries (pull_request, ping)
- POST /circleciwebhook  CircleCI build completion callbacks
- GET  /cache-healthcheck  liveness probe
- GET  /metrics          Prometheus metrics

Deliveries are acknowledged straight away; the orchestrator and callback
processor run as background tasks after the response is sent.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .callback import BuildCallbackProcessor
from .circleci.client import CircleCIClient
from .config import BridgeSettings, get_settings
from .events.emitter import EventSinkType, create_event_emitter
from .events.metrics import generate_metrics_output
from .github.client import GitHubClient
from .orchestrator import BuildOrchestrator
from .sync.reconciler import BranchReconciler
from .webhook.handler import WebhookHandler

logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: BridgeSettings
webhook_handler: Optional[WebhookHandler] = None
orchestrator: Optional[BuildOrchestrator] = None
callback_processor: Optional[BuildCallbackProcessor] = None
github_client: Optional[GitHubClient] = None
circleci_client: Optional[CircleCIClient] = None


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if not value:
        return "<unset>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: BridgeSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Bridge configuration:")
    logger.info(f"  Source Project: {settings.source_project_id}")
    logger.info(f"  Downstream Project: {settings.downstream_project_id}")
    logger.info(f"  Integration Branch: {settings.integration_branch}")
    logger.info(f"  Test Branch Prefix: {settings.test_branch_prefix}")
    logger.info(f"  Trigger Label: {settings.trigger_label}")
    logger.info(f"  Trusted Org Prefix: {settings.trusted_org_prefix}")
    logger.info(f"  Flow Patrol Only: {settings.restrict_to_flow_patrol}")
    logger.info(
        f"  Flow Patrol Users: {sorted(settings.flow_patrol_allow_list)}"
    )
    logger.info(f"  Commit Status Context: {settings.commit_status_context}")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub Token: {_redact_secret(settings.github_token)}")
    logger.info(f"  CircleCI Base URL: {settings.circleci_base_url}")
    logger.info(f"  CircleCI Token: {_redact_secret(settings.circleci_token)}")
    logger.info(f"  Webhook Secret: {_redact_secret(settings.webhook_secret)}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def _configure_logging(level: str) -> None:
    """Render every log record as one JSON line.

    Bridge modules log through the standard library; structlog renders the
    records, including the fields passed as ``extra``.
    """
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(default=str),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown.

    Handles:
    - Configuration loading and validation
    - Logging configuration (with secrets redacted)
    - Dependency wiring for the orchestrator and callback processor
    - Closing the HTTP clients on shutdown
    """
    global settings, webhook_handler, orchestrator, callback_processor
    global github_client, circleci_client

    settings = get_settings()
    _configure_logging(settings.log_level)
    logger.info("Bridge starting up...")
    _log_configuration(settings)

    webhook_handler = WebhookHandler(
        secret=settings.webhook_secret,
        source_project_id=settings.source_project_id,
    )
    github_client = GitHubClient(
        token=settings.github_token,
        base_url=settings.github_base_url,
        timeout=settings.http_timeout_seconds,
    )
    circleci_client = CircleCIClient(
        token=settings.circleci_token,
        base_url=settings.circleci_base_url,
        content_hash_parameter=settings.content_hash_parameter,
        timeout=settings.http_timeout_seconds,
    )
    orchestrator, callback_processor = _build_pipeline(
        settings, github_client, circleci_client, webhook_handler
    )

    logger.info("Bridge started successfully")

    yield

    logger.info("Bridge shutting down...")

    if github_client is not None:
        await github_client.close()
    if circleci_client is not None:
        await circleci_client.close()

    logger.info("Bridge shutdown complete")


def _build_pipeline(
    cfg: BridgeSettings,
    gh_client: GitHubClient,
    ci_client: CircleCIClient,
    handler: WebhookHandler,
):
    """Wire the orchestrator and callback processor.

    Returns:
        Tuple of (BuildOrchestrator, BuildCallbackProcessor) sharing one
        event emitter.
    """
    event_emitter = create_event_emitter(
        [EventSinkType.LOGGING, EventSinkType.METRICS]
    )
    reconciler = BranchReconciler(github_client=gh_client)

    build_orchestrator = BuildOrchestrator(
        settings=cfg,
        github_client=gh_client,
        circleci_client=ci_client,
        reconciler=reconciler,
        event_emitter=event_emitter,
    )
    processor = BuildCallbackProcessor(
        settings=cfg,
        github_client=gh_client,
        webhook_handler=handler,
        event_emitter=event_emitter,
    )
    return build_orchestrator, processor


app = FastAPI(
    title="PR CI Bridge",
    description="Relays pull request events to CircleCI and build results back to GitHub",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/cache-healthcheck", response_class=PlainTextResponse)
async def health():
    """Liveness probe endpoint."""
    return "OK"


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_metrics_output(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


@app.post("/ghwebhook")
async def github_webhook(request: Request, background_tasks: BackgroundTasks):
    """GitHub webhook receiver endpoint.

    Verifies the delivery signature, then schedules pull_request events
    for the orchestrator. Other event types are acknowledged and dropped.
    """
    if webhook_handler is None or orchestrator is None:
        logger.error("Bridge not initialized")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "message": "Bridge not initialized"},
        )

    body = await request.body()
    if not webhook_handler.verify_signature(
        body,
        signature_256=request.headers.get("X-Hub-Signature-256"),
        signature_sha1=request.headers.get("X-Hub-Signature"),
    ):
        logger.warning("Invalid webhook signature received")
        return JSONResponse(
            status_code=401,
            content={"status": "error", "message": "Invalid webhook signature"},
        )

    event_name = request.headers.get("X-GitHub-Event", "")
    if event_name == "ping":
        return {"status": "ok", "message": "pong"}

    if event_name != "pull_request":
        return {"status": "ignored", "message": f"Unsupported event '{event_name}'"}

    try:
        payload = json.loads(body)
    except ValueError:
        return JSONResponse(
            status_code=400,
            content={"status": "error", "message": "Invalid JSON payload"},
        )

    event = webhook_handler.parse_pull_request_event(payload)
    if event is None:
        return {"status": "ignored", "message": "Invalid pull_request payload"}

    background_tasks.add_task(orchestrator.on_pull_request_event, event)

    return {"status": "accepted", "pull_request": event.pull_request_id}


@app.post("/circleciwebhook", response_class=PlainTextResponse)
async def circleci_webhook(request: Request, background_tasks: BackgroundTasks):
    """CircleCI webhook receiver endpoint.

    Every delivery is acknowledged with 200; the callback processor decides
    whether it concerns this bridge.
    """
    logger.debug("Called from CircleCI")
    body = await request.body()

    if callback_processor is None:
        logger.error("Bridge not initialized")
    else:
        background_tasks.add_task(callback_processor.on_build_callback, body)

    return "ok"


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.bridge.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
    )
