"""Payment relay: FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payrelay.api.deps import error_response
from payrelay.api.subscriptions import router as subscriptions_router
from payrelay.api.webhooks import router as webhooks_router
from payrelay.billing.orchestrator import SubscriptionOrchestrator
from payrelay.billing.stripe_client import StripeGateway
from payrelay.billing.webhooks import WebhookReconciler
from payrelay.config import settings
from payrelay.firebase import get_firestore_client
from payrelay.ledger import FirestoreLedger
from payrelay.schemas.billing import StatusResponse

# Configure root logger so all payrelay.* loggers output to stderr.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the Stripe and Firestore collaborators once per process."""
    gateway = StripeGateway.from_settings(settings)
    ledger = FirestoreLedger(get_firestore_client(settings))
    app.state.orchestrator = SubscriptionOrchestrator(gateway, ledger, settings)
    app.state.reconciler = WebhookReconciler(
        gateway, ledger, dedup_enabled=settings.webhook_dedup_enabled
    )
    logger.info("%s ready on port %s", settings.app_name, settings.port)
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Relays Stripe subscription calls and mirrors billing state into Firestore.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(subscriptions_router)
app.include_router(webhooks_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Answer malformed bodies with the same ``{success, error}`` shape as other failures."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    logger.info("Rejected %s %s: %s", request.method, request.url.path, problems)
    return error_response(problems)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"], response_model=StatusResponse)
async def root() -> StatusResponse:
    """Liveness check."""
    return StatusResponse(
        status="Server is running!",
        message=settings.app_name,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
