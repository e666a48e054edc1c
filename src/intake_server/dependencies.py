"""FastAPI dependency injection — provides the form store, gateway, workflow manager, and user identity."""

import hmac

from fastapi import Depends, Header, HTTPException, Request

from intake_workflow.interfaces import PersistenceGateway
from intake_workflow.schemas import FormSchemaStore
from intake_workflow.workflow import IntakeWorkflow

from intake_server.manager import WorkflowManager


# ------------------------------------------------------------------
# Singletons: stashed on app.state during lifespan
# ------------------------------------------------------------------

def get_store(request: Request) -> FormSchemaStore:
    """Return the FormSchemaStore singleton from ``app.state``."""
    return request.app.state.store


def get_gateway(request: Request) -> PersistenceGateway:
    """Return the persistence gateway singleton from ``app.state``."""
    return request.app.state.gateway


def get_manager(request: Request) -> WorkflowManager:
    """Return the WorkflowManager singleton from ``app.state``."""
    return request.app.state.manager


# ------------------------------------------------------------------
# User identity: extracted from the X-User-ID header
# ------------------------------------------------------------------

async def get_user_id(
    request: Request,
    x_user_id: str | None = Header(None, alias="X-User-ID"),
    x_proxy_secret: str | None = Header(None, alias="X-Proxy-Secret"),
) -> str:
    """Extract user identity from the ``X-User-ID`` header.

    Returns 401 if the header is missing.  When ``TRUSTED_PROXY_SECRET``
    is configured, the request must also carry a matching
    ``X-Proxy-Secret`` header, proving the identity was injected by the
    clinic's gateway and not by the browser.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-ID header is required")

    expected_secret: str | None = request.app.state.settings.trusted_proxy_secret
    if expected_secret:
        if not x_proxy_secret:
            raise HTTPException(
                status_code=403,
                detail="X-Proxy-Secret header is required",
            )
        # Constant-time comparison
        if not hmac.compare_digest(x_proxy_secret, expected_secret):
            raise HTTPException(status_code=403, detail="Invalid proxy secret")

    return x_user_id


# ------------------------------------------------------------------
# Workflow lookup: 404 (via KeyError) for other users' workflows
# ------------------------------------------------------------------

def get_workflow(
    workflow_id: str,
    user_id: str = Depends(get_user_id),
    manager: WorkflowManager = Depends(get_manager),
) -> IntakeWorkflow:
    """Resolve the ``{workflow_id}`` path parameter for the calling user."""
    return manager.get(user_id, workflow_id)
