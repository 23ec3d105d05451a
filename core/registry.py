"""Workflow registry.

WorkflowRegistry is the engine's roster of response workflows. It stores
definitions by id, lets them be added or updated at runtime and answers
the one question the engine asks at execution time: which workflow applies
to this signal?

Re-adding a workflow with an existing id replaces it in place. Matching is
first-match in registration order, so the order workflows are added in is
the tie-break between overlapping triggers.
"""

import logging

from core.events import EventBus
from schemas.events import EventType, WorkflowPayload
from schemas.signal import Signal, utcnow
from schemas.workflow import ResponseWorkflow

logger = logging.getLogger(__name__)

_SOURCE = "registry"


class WorkflowRegistry:
    """Stores workflows by id and finds the one that applies to a signal.

    Internally backed by a dict keyed on workflow id. Python dicts keep
    insertion order, and replacing a value keeps its original position,
    which is what makes find_applicable() deterministic.

    Attributes:
        _workflows: Workflow id to workflow.
        _events: Bus used to announce registrations and updates.
    """

    def __init__(self, events: EventBus | None = None) -> None:
        self._workflows: dict[str, ResponseWorkflow] = {}
        self._events = events or EventBus()

    def add(self, workflow: ResponseWorkflow) -> None:
        """Register a workflow, silently replacing any with the same id."""
        replaced = workflow.id in self._workflows
        self._workflows[workflow.id] = workflow
        logger.info(
            "Workflow '%s' %s.", workflow.id, "replaced" if replaced else "registered"
        )
        self._events.emit(
            EventType.WORKFLOW_REGISTERED,
            _SOURCE,
            WorkflowPayload(
                workflow_id=workflow.id,
                name=workflow.name,
                template_id=workflow.template_id,
                detail={"replaced": replaced},
            ),
        )

    def update(self, workflow_id: str, **fields) -> ResponseWorkflow | None:
        """Merge fields into a registered workflow and bump updated_at.

        The merged workflow is re-validated, so an update that breaks an
        invariant (e.g. a dangling step dependency) raises instead of
        being stored.

        Args:
            workflow_id: Id of the workflow to update.
            **fields: Top-level ResponseWorkflow fields to replace.

        Returns:
            The updated workflow, or None if the id is not registered. A
            missing workflow is a valid query result, not an error.

        Raises:
            pydantic.ValidationError: If the merged workflow is invalid.
        """
        current = self._workflows.get(workflow_id)
        if current is None:
            return None

        data = current.model_dump()
        data.update(fields)
        data["id"] = workflow_id
        data["updated_at"] = utcnow()
        updated = ResponseWorkflow.model_validate(data)
        self._workflows[workflow_id] = updated

        self._events.emit(
            EventType.WORKFLOW_UPDATED,
            _SOURCE,
            WorkflowPayload(
                workflow_id=workflow_id,
                name=updated.name,
                template_id=updated.template_id,
                detail={"fields": sorted(fields)},
            ),
        )
        return updated

    def get(self, workflow_id: str) -> ResponseWorkflow | None:
        return self._workflows.get(workflow_id)

    def get_all(self) -> list[ResponseWorkflow]:
        """Return all workflows in registration order. A copy of the list."""
        return list(self._workflows.values())

    def find_applicable(self, signal: Signal) -> ResponseWorkflow | None:
        """Return the first active workflow whose triggers match the signal.

        A workflow matches when its trigger types contain the signal type,
        its severity levels contain the signal severity, and its asset
        filter is empty or contains the signal's asset id.

        Returns:
            The first match in registration order, or None.
        """
        for workflow in self._workflows.values():
            if workflow.active and workflow.triggers.matches(signal):
                return workflow
        return None

    def __iter__(self):
        return iter(list(self._workflows.values()))

    def __len__(self) -> int:
        return len(self._workflows)

    def __contains__(self, workflow_id: object) -> bool:
        return workflow_id in self._workflows
