"""FastAPI application entry point for the review relay.

Endpoints:
- POST /github-oauth: exchange an OAuth code, start a session
- POST /create-webhook: register a pull_request hook on a repository
- POST /check-webhook: report whether the relay's hook is installed
- POST /webhook: receive GitHub deliveries and publish reviews
- GET /health: liveness plus storage connectivity
- GET /metrics: Prometheus exposition
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import SecretStr

from .api.models import (
    CheckWebhookRequest,
    CheckWebhookResponse,
    CreateWebhookRequest,
    CreateWebhookResponse,
    HealthResponse,
    OAuthRequest,
    OAuthResponse,
    WebhookResponse,
)
from .config import RelaySettings, get_settings
from .events.emitter import EventEmitter, EventSinkType, create_event_emitter
from .events.metrics import generate_metrics_output
from .generation.base import GenerationBackend
from .generation.factory import create_generation_backend
from .github.client import GitHubAPIError, GitHubClient, OAuthExchangeError
from .registry.models import (
    SecretMode,
    Session,
    WebhookRegistration,
    generate_session_id,
    generate_webhook_secret,
)
from .registry.postgres import PostgresStore
from .registry.store import (
    InMemoryRegistrationStore,
    InMemorySessionStore,
    RegistrationStore,
    SessionStore,
    StorageError,
)
from .review.models import ErrorKind, ReviewResult, ReviewStage
from .review.orchestrator import ReviewOptions, ReviewOrchestrator
from .webhook.signature import WebhookAuthenticator

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: RelaySettings = get_settings()
orchestrator: Optional[ReviewOrchestrator] = None
github_client: Optional[GitHubClient] = None
generation_backend: Optional[GenerationBackend] = None
event_emitter: Optional[EventEmitter] = None
registration_store: Optional[RegistrationStore] = None
session_store: Optional[SessionStore] = None


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if not value:
        return "<unset>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: RelaySettings) -> None:
    """Log configuration values with secrets redacted."""
    min_chars, min_lines = settings.richness_thresholds
    logger.info("Relay configuration:")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  GitHub Client ID: {settings.github_client_id or '<unset>'}")
    logger.info(f"  GitHub Client Secret: {_redact_secret(settings.github_client_secret)}")
    logger.info(f"  GitHub Token: {_redact_secret(settings.github_token)}")
    logger.info(f"  Public Webhook URL: {settings.public_webhook_url}")
    logger.info(f"  Webhook Secret Mode: {settings.webhook_secret_mode}")
    logger.info(f"  Shared Webhook Secret: {_redact_secret(settings.webhook_secret)}")
    logger.info(f"  Generation Backend: {settings.generation_backend.value}")
    if settings.generation_backend.value == "openai":
        logger.info(f"  OpenAI Model: {settings.openai_model}")
        logger.info(f"  OpenAI Base URL: {settings.openai_base_url or '<default>'}")
        logger.info(f"  OpenAI API Key: {_redact_secret(settings.openai_api_key)}")
    else:
        logger.info(f"  Inference Model: {settings.huggingface_model}")
        logger.info(f"  Inference Base URL: {settings.huggingface_base_url}")
        logger.info(f"  Inference API Key: {_redact_secret(settings.huggingface_api_key)}")
    logger.info(f"  Retry: {settings.retry_max_retries} retries, {settings.retry_initial_delay_ms} ms initial delay")
    logger.info(f"  Diff Mode: {settings.diff_mode.value}")
    logger.info(f"  Max Prompt Chars: {settings.max_prompt_chars}")
    logger.info(f"  Update Pull Request: {settings.update_pull_request}")
    logger.info(f"  Richness Threshold: {min_chars} chars / {min_lines} lines")
    logger.info(f"  Database URL: {_redact_secret(settings.database_url)}")
    logger.info(f"  CORS Origin: {settings.cors_origin}")
    logger.info(f"  Session TTL: {settings.session_ttl_seconds} s")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


async def _create_stores(cfg: RelaySettings):
    """Build the registration and session stores.

    A configured database_url selects PostgreSQL for both; otherwise
    registrations and sessions live in process memory.
    """
    if cfg.database_url:
        store = PostgresStore(cfg.database_url, session_ttl_seconds=cfg.session_ttl_seconds)
        await store.connect()
        return store, store

    logger.warning("No database configured, registrations are kept in memory only")
    return InMemoryRegistrationStore(), InMemorySessionStore(cfg.session_ttl_seconds)


def _build_orchestrator(
    cfg: RelaySettings,
    gh_client: GitHubClient,
    backend: GenerationBackend,
    store: RegistrationStore,
    emitter: EventEmitter,
) -> ReviewOrchestrator:
    """Wire all review dependencies into a ReviewOrchestrator."""
    authenticator = WebhookAuthenticator(
        store=store,
        mode=SecretMode(cfg.webhook_secret_mode),
        shared_secret=cfg.webhook_secret,
    )
    return ReviewOrchestrator(
        github_client=gh_client,
        backend=backend,
        authenticator=authenticator,
        event_emitter=emitter,
        options=ReviewOptions.from_settings(cfg),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    global orchestrator, github_client, generation_backend, event_emitter
    global registration_store, session_store

    logger.info("Review relay starting up...")

    logging.getLogger().setLevel(settings.log_level.upper())
    _log_configuration(settings)

    registration_store, session_store = await _create_stores(settings)
    github_client = GitHubClient(
        base_url=settings.github_base_url,
        oauth_url=settings.github_oauth_url,
    )
    generation_backend = create_generation_backend(settings)
    event_emitter = create_event_emitter([EventSinkType.LOGGING, EventSinkType.METRICS])
    orchestrator = _build_orchestrator(
        settings, github_client, generation_backend, registration_store, event_emitter
    )

    logger.info("Review relay started successfully")

    yield

    logger.info("Review relay shutting down...")

    if github_client is not None:
        await github_client.close()
    if generation_backend is not None:
        await generation_backend.close()
    if event_emitter is not None:
        await event_emitter.close()
    if isinstance(registration_store, PostgresStore):
        await registration_store.disconnect()

    logger.info("Review relay shutdown complete")


app = FastAPI(
    title="Review Relay",
    description="Relays GitHub pull request diffs to a text-generation backend and posts the review",
    version="1.0.0",
    lifespan=lifespan,
)

def cors_options(cors_origin: str) -> dict:
    """CORSMiddleware arguments for a comma-separated origin list.

    Cookies are only allowed cross-origin when every origin is named;
    with a wildcard Starlette would echo any Origin back.
    """
    origins = [origin.strip() for origin in cors_origin.split(",") if origin.strip()]
    return {
        "allow_origins": origins,
        "allow_credentials": bool(origins) and "*" not in origins,
        "allow_methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": ["*"],
    }


app.add_middleware(CORSMiddleware, **cors_options(settings.cors_origin))


def _require_ready() -> None:
    if github_client is None or session_store is None or registration_store is None:
        logger.error("Relay not initialized")
        raise HTTPException(status_code=503, detail="Relay not initialized")


async def _require_session(session_id: Optional[str]) -> Session:
    """Resolve the caller's session or fail with 401."""
    if not session_id:
        raise HTTPException(status_code=401, detail="Not authenticated with GitHub")
    try:
        session = await session_store.get_session(session_id)
    except StorageError as e:
        logger.error("Session lookup failed", extra={"error": e.message})
        raise HTTPException(status_code=500, detail="Session storage unavailable") from e
    if session is None:
        raise HTTPException(status_code=401, detail="Session expired or unknown")
    return session


@app.post("/github-oauth", response_model=OAuthResponse)
async def github_oauth(body: OAuthRequest, response: Response):
    """Exchange a GitHub OAuth code and start a session.

    The access token stays server-side; the browser only receives an
    HTTP-only session cookie.
    """
    _require_ready()

    try:
        token = await github_client.exchange_oauth_code(
            code=body.code,
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
        )
    except OAuthExchangeError as e:
        logger.warning("OAuth exchange rejected", extra={"error": e.message})
        raise HTTPException(status_code=401, detail="Failed to authenticate with GitHub") from e

    session = Session(session_id=generate_session_id(), access_token=SecretStr(token))
    try:
        await session_store.save_session(session)
    except StorageError as e:
        logger.error("Failed to store session", extra={"error": e.message})
        raise HTTPException(status_code=500, detail="Session storage unavailable") from e

    response.set_cookie(
        key=settings.session_cookie_name,
        value=session.session_id,
        httponly=True,
        samesite="lax",
        max_age=settings.session_ttl_seconds,
    )
    return OAuthResponse(success=True)


@app.post("/create-webhook", response_model=CreateWebhookResponse)
async def create_webhook(body: CreateWebhookRequest, request: Request):
    """Register the relay's pull_request hook on a repository.

    A fresh secret is generated per repository and never returned to the
    caller. Re-registering a repository rewrites the existing hook with a
    new secret and replaces the stored registration.
    """
    _require_ready()
    session = await _require_session(request.cookies.get(settings.session_cookie_name))
    token = session.access_token.get_secret_value()

    mode = SecretMode(settings.webhook_secret_mode)
    if mode == SecretMode.PER_REPOSITORY:
        secret: Optional[str] = generate_webhook_secret()
    elif mode == SecretMode.SHARED:
        secret = settings.webhook_secret
    else:
        secret = None

    try:
        hook_id = await github_client.register_webhook(
            owner=body.owner,
            repo=body.repo,
            url=settings.public_webhook_url,
            secret=secret,
            token=token,
        )
    except GitHubAPIError as e:
        logger.error(
            "Failed to register webhook",
            extra={
                "owner": body.owner,
                "repo": body.repo,
                "status_code": e.status_code,
                "response_body": (e.response_body or "")[:500],
            },
        )
        raise HTTPException(status_code=502, detail="Failed to create webhook") from e

    registration = WebhookRegistration(
        owner=body.owner,
        name=body.repo,
        hook_id=hook_id,
        secret=SecretStr(secret) if mode == SecretMode.PER_REPOSITORY else None,
        access_token=session.access_token,
        webhook_url=settings.public_webhook_url,
    )
    try:
        await registration_store.upsert(registration)
    except StorageError as e:
        logger.error(
            "Failed to store webhook registration",
            extra={"repository": registration.full_name, "hook_id": hook_id},
        )
        raise HTTPException(status_code=500, detail="Failed to store webhook registration") from e

    return CreateWebhookResponse(success=True, hook_id=hook_id)


@app.post("/check-webhook", response_model=CheckWebhookResponse)
async def check_webhook(body: CheckWebhookRequest, request: Request):
    """Report whether a hook pointing at the given URL exists on a repository."""
    _require_ready()
    session = await _require_session(request.cookies.get(settings.session_cookie_name))

    target = (body.webhook_url or settings.public_webhook_url).rstrip("/")
    try:
        hooks = await github_client.list_webhooks(
            owner=body.owner,
            repo=body.repo,
            token=session.access_token.get_secret_value(),
        )
    except GitHubAPIError as e:
        logger.error(
            "Failed to list webhooks",
            extra={"owner": body.owner, "repo": body.repo, "status_code": e.status_code},
        )
        raise HTTPException(status_code=502, detail="Failed to check webhook") from e

    return CheckWebhookResponse(exists=any(hook.url.rstrip("/") == target for hook in hooks))


def status_code_for(result: ReviewResult) -> int:
    """HTTP status returned to GitHub for a delivery outcome."""
    if result.stage in (ReviewStage.COMPLETED, ReviewStage.IGNORED):
        return 200
    if result.stage == ReviewStage.REJECTED:
        if result.error_kind == ErrorKind.NOT_FOUND:
            return 404
        if result.error_kind == ErrorKind.MALFORMED_PAYLOAD:
            return 400
        return 401
    return 500


@app.post("/webhook", response_model=WebhookResponse)
async def github_webhook(request: Request):
    """GitHub webhook receiver.

    The signature is checked against the raw body bytes, so the body is
    read unparsed and handed to the orchestrator as-is.
    """
    if orchestrator is None:
        logger.error("Relay not initialized")
        raise HTTPException(status_code=503, detail="Relay not initialized")

    body = await request.body()
    result = await orchestrator.handle_delivery(
        body=body,
        signature=request.headers.get("X-Hub-Signature-256"),
        event_name=request.headers.get("X-GitHub-Event"),
        delivery_id=request.headers.get("X-GitHub-Delivery"),
    )

    payload = WebhookResponse(
        success=result.stage in (ReviewStage.COMPLETED, ReviewStage.IGNORED),
        status=result.stage.value,
        message=result.error,
        pr_id=result.pr_id,
        comment_id=result.comment_id,
        pr_updated=result.pr_updated,
    )
    return JSONResponse(status_code=status_code_for(result), content=payload.model_dump())


@app.get("/health", response_model=HealthResponse)
async def health():
    """Liveness probe with storage connectivity.

    Always answers 200 while the process runs; a storage outage shows up
    as status "degraded".
    """
    if registration_store is None:
        return HealthResponse(status="starting", dependencies={"storage": "unknown"})

    storage_ok = await registration_store.ping()
    return HealthResponse(
        status="healthy" if storage_ok else "degraded",
        dependencies={"storage": "healthy" if storage_ok else "unhealthy"},
    )


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_metrics_output(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.relay.main:app",
        host=settings.host,
        port=settings.port,
    )
