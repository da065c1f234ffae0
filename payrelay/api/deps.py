"""Shared API dependencies and helpers.

Collaborators are built at startup and read from app state. Tests replace
them with ``app.dependency_overrides``::

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from payrelay.billing.orchestrator import SubscriptionOrchestrator
from payrelay.billing.webhooks import WebhookReconciler
from payrelay.schemas.billing import ErrorResponse


def get_orchestrator(request: Request) -> SubscriptionOrchestrator:
    return request.app.state.orchestrator


def get_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.reconciler


def error_response(error: Exception | str) -> JSONResponse:
    """400 with ``{success: false, error}``; the raw message reaches the client."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error=str(error)).model_dump(by_alias=True),
    )


__all__ = ["error_response", "get_orchestrator", "get_reconciler"]
