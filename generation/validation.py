"""Structural workflow checks run before an automated response.

All checks are deterministic and collect every problem instead of stopping
at the first, so the caller can report them together.
"""

from dataclasses import dataclass, field

from schemas.workflow import ResponseWorkflow, StepType


@dataclass
class WorkflowValidation:
    """Verdict for one workflow.

    Attributes:
        valid: True if no check failed.
        errors: One message per failed check, in check order.
    """

    valid: bool
    errors: list[str] = field(default_factory=list)


def validate_workflow(workflow: ResponseWorkflow) -> WorkflowValidation:
    """Check that a workflow can be run step by step.

    Checks:
        1. id and name are non-empty.
        2. There is at least one step.
        3. Every step has an id and a name.
        4. ACTION steps name an action; CONDITION steps carry a condition.
        5. Dependencies only reference steps of this workflow.

    The last check repeats the schema validator because workflows built
    with model_copy(update=...) bypass validation.
    """
    errors: list[str] = []

    if not workflow.id or not workflow.name:
        errors.append("Missing required fields: id, name")

    if not workflow.steps:
        errors.append("Workflow must have at least one step")

    step_ids = {step.id for step in workflow.steps}
    for step in workflow.steps:
        if not step.id or not step.name:
            errors.append(f"Step missing required fields: {step.id or 'unknown'}")

        if step.type == StepType.ACTION and step.config.action is None:
            errors.append(f"Action step missing action: {step.id}")

        if step.type == StepType.CONDITION and not step.config.condition:
            errors.append(f"Condition step missing condition: {step.id}")

        unknown = [dep for dep in step.dependencies if dep not in step_ids]
        if unknown:
            errors.append(f"Step {step.id} depends on unknown steps: {', '.join(unknown)}")

    return WorkflowValidation(valid=not errors, errors=errors)
