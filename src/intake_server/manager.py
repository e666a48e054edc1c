"""WorkflowManager — in-process registry of open workflows.

An ``IntakeWorkflow`` holds answers and captured artifacts in memory until
it is submitted, so the server keeps one instance per open form, keyed by
``(user_id, workflow_id)``.  A user can only reach their own workflows.

Workflows untouched for ``idle_minutes`` are evicted lazily on the next
``open``/``get`` call: their capture slots are released and their answers
are dropped.  Workflows with a submission in flight are never evicted.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from intake_workflow.interfaces import PersistenceGateway
from intake_workflow.media import FrameEncoder
from intake_workflow.schemas import FormSchemaStore
from intake_workflow.workflow import IntakeWorkflow

from intake_server.config import MAX_WORKFLOWS_PER_USER

logger = logging.getLogger(__name__)


class WorkflowManager:
    """Owns every open workflow of this server process.

    Args:
        store: loaded form definitions
        gateway: persistence collaborator shared by all workflows
        idle_minutes: eviction threshold; 0 disables eviction
        encoder: upload encoder shared by all workflows
    """

    def __init__(
        self,
        store: FormSchemaStore,
        gateway: PersistenceGateway,
        *,
        idle_minutes: int = 30,
        encoder: FrameEncoder | None = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._idle = timedelta(minutes=idle_minutes) if idle_minutes > 0 else None
        self._encoder = encoder or FrameEncoder()
        self._workflows: dict[tuple[str, str], IntakeWorkflow] = {}

    def __len__(self) -> int:
        return len(self._workflows)

    async def open(
        self,
        user_id: str,
        form_key: str,
        *,
        patient_id: str | None = None,
    ) -> IntakeWorkflow:
        """Start a new workflow for ``form_key``.

        Document forms load the patient's registry so a successful submit
        can mark the entry completed.

        Raises:
            KeyError: unknown form key.
            ValueError: the user already has too many open workflows.
        """
        self.evict_idle()
        schema = self._store.get(form_key)
        owned = sum(1 for uid, _ in self._workflows if uid == user_id)
        if owned >= MAX_WORKFLOWS_PER_USER:
            raise ValueError(f"Too many open workflows for user {user_id}")

        workflow = IntakeWorkflow(
            schema,
            gateway=self._gateway,
            patient_id=patient_id,
            encoder=self._encoder,
        )
        if patient_id:
            await workflow.refresh_registry()

        self._workflows[(user_id, workflow.workflow_id)] = workflow
        logger.info(
            "Opened workflow %s (form=%s) for user %s",
            workflow.workflow_id, form_key, user_id,
        )
        return workflow

    def get(self, user_id: str, workflow_id: str) -> IntakeWorkflow:
        """Return an open workflow.  Raises ``KeyError`` when unknown or evicted."""
        self.evict_idle()
        workflow = self._workflows.get((user_id, workflow_id))
        if workflow is None:
            raise KeyError(f"Workflow not found: {workflow_id}")
        return workflow

    def for_user(self, user_id: str) -> list[IntakeWorkflow]:
        self.evict_idle()
        return [wf for (uid, _), wf in self._workflows.items() if uid == user_id]

    def close(self, user_id: str, workflow_id: str) -> None:
        """Discard a workflow and release its devices.  Raises ``KeyError`` when unknown."""
        workflow = self._workflows.pop((user_id, workflow_id), None)
        if workflow is None:
            raise KeyError(f"Workflow not found: {workflow_id}")
        workflow.close()
        logger.info("Closed workflow %s for user %s", workflow_id, user_id)

    def evict_idle(self, now: datetime | None = None) -> int:
        """Drop workflows idle longer than the threshold; returns how many."""
        if self._idle is None:
            return 0
        now = now or datetime.now(timezone.utc)
        stale = [
            key for key, wf in self._workflows.items()
            if not wf.submitting and now - wf.updated_at > self._idle
        ]
        for key in stale:
            self._workflows.pop(key).close()
        if stale:
            logger.info("Evicted %d idle workflows", len(stale))
        return len(stale)

    def close_all(self) -> None:
        for workflow in self._workflows.values():
            workflow.close()
        self._workflows.clear()
