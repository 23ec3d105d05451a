"""Built-in workflow templates.

A template is an ordinary ResponseWorkflow with reusable=True. The
generator scores templates against a signal and clones the best one into a
signal-specific workflow. Notification templates keep their {placeholder}
markers here; they are filled in at generation time.
"""

import re

from schemas.signal import SignalSeverity, SignalType, utcnow
from schemas.workflow import (
    EscalationStepConfig,
    ExecutionMode,
    ExecutionSettings,
    NotificationConfig,
    Priority,
    ResponseActionType,
    ResponseWorkflow,
    RetryPolicy,
    StepConfig,
    StepType,
    SuccessCriteria,
    WorkflowStep,
    WorkflowTriggers,
)

_WHITESPACE = re.compile(r"\s+")


def template_id_for(name: str) -> str:
    """template-{slug}-{epochMillis}, e.g. template-emergency-response-1718000000000."""
    slug = _WHITESPACE.sub("-", name.lower())
    return f"template-{slug}-{int(utcnow().timestamp() * 1000)}"


def create_workflow_template(
    name: str,
    description: str,
    signal_types: list[SignalType],
    severity_levels: list[SignalSeverity],
    steps: list[WorkflowStep],
) -> ResponseWorkflow:
    """Build a reusable template with the standard execution settings.

    Templates run SEQUENTIAL with a 30 s step timeout, a 300 s overall
    timeout and 3 retries 5 s apart. They match any asset.
    """
    return ResponseWorkflow(
        id=template_id_for(name),
        name=name,
        description=description,
        triggers=WorkflowTriggers(
            signal_types=list(signal_types),
            severity_levels=list(severity_levels),
        ),
        steps=steps,
        execution=ExecutionSettings(
            mode=ExecutionMode.SEQUENTIAL,
            step_timeout=30_000,
            overall_timeout=300_000,
            retry=RetryPolicy(max_retries=3, delay=5000),
        ),
        priority=Priority.MEDIUM,
        active=True,
        reusable=True,
    )


# ── Built-in templates ────────────────────────────────────────────────────────


def emergency_response_template() -> ResponseWorkflow:
    return create_workflow_template(
        "Emergency Response",
        "Automated emergency response workflow",
        [SignalType.EMERGENCY],
        [SignalSeverity.CRITICAL, SignalSeverity.HIGH],
        [
            WorkflowStep(
                id="emergency-notification",
                name="Emergency Notification",
                description="Send immediate emergency notifications",
                type=StepType.NOTIFICATION,
                config=StepConfig(
                    notification=NotificationConfig(
                        recipients=["emergency-team", "management"],
                        template="EMERGENCY: {signalType} detected for asset {assetId} at {timestamp}",
                        channels=["email", "sms", "push"],
                    )
                ),
                order=1,
                required_resources=["notification-service"],
                success_criteria=SuccessCriteria(
                    expected_outcome="Emergency notifications sent",
                    validation_rules=["notifications-sent"],
                ),
            ),
            WorkflowStep(
                id="immediate-response",
                name="Immediate Response",
                description="Execute immediate emergency response",
                type=StepType.ACTION,
                config=StepConfig(action=ResponseActionType.IMMEDIATE_RESPONSE),
                dependencies=["emergency-notification"],
                order=2,
                required_resources=["emergency-team"],
                success_criteria=SuccessCriteria(
                    expected_outcome="Emergency response initiated",
                    validation_rules=["response-initiated"],
                ),
            ),
            WorkflowStep(
                id="emergency-escalation",
                name="Emergency Escalation",
                description="Escalate to the level matching the signal severity",
                type=StepType.ESCALATION,
                config=StepConfig(escalation=EscalationStepConfig(level="HIGH")),
                dependencies=["immediate-response"],
                order=3,
                success_criteria=SuccessCriteria(
                    expected_outcome="Escalation level executed",
                    validation_rules=["escalation-executed"],
                ),
            ),
        ],
    )


def asset_condition_template() -> ResponseWorkflow:
    return create_workflow_template(
        "Asset Condition Response",
        "Automated response to asset condition signals",
        [SignalType.ASSET_CONDITION],
        [SignalSeverity.MEDIUM, SignalSeverity.HIGH],
        [
            WorkflowStep(
                id="condition-assessment",
                name="Condition Assessment",
                description="Assess asset condition",
                type=StepType.ACTION,
                config=StepConfig(action=ResponseActionType.SCHEDULE_INSPECTION),
                order=1,
                required_resources=["inspector"],
                success_criteria=SuccessCriteria(
                    expected_outcome="Condition assessment scheduled",
                    validation_rules=["inspection-scheduled"],
                ),
            ),
            WorkflowStep(
                id="condition-notification",
                name="Condition Notification",
                description="Notify relevant stakeholders",
                type=StepType.NOTIFICATION,
                config=StepConfig(
                    notification=NotificationConfig(
                        recipients=["maintenance-team", "supervisor"],
                        template="Asset condition alert: {signalType} for asset {assetId}",
                        channels=["email"],
                    )
                ),
                dependencies=["condition-assessment"],
                order=2,
                required_resources=["notification-service"],
                success_criteria=SuccessCriteria(
                    expected_outcome="Stakeholders notified",
                    validation_rules=["notifications-sent"],
                ),
            ),
        ],
    )


def maintenance_template() -> ResponseWorkflow:
    return create_workflow_template(
        "Maintenance Response",
        "Automated maintenance response workflow",
        [SignalType.MAINTENANCE],
        [SignalSeverity.LOW, SignalSeverity.MEDIUM],
        [
            WorkflowStep(
                id="maintenance-scheduling",
                name="Maintenance Scheduling",
                description="Schedule maintenance work order",
                type=StepType.ACTION,
                config=StepConfig(action=ResponseActionType.SCHEDULE_MAINTENANCE),
                order=1,
                required_resources=["maintenance-team"],
                success_criteria=SuccessCriteria(
                    expected_outcome="Maintenance scheduled",
                    validation_rules=["maintenance-scheduled"],
                ),
            ),
            WorkflowStep(
                id="maintenance-notification",
                name="Maintenance Notification",
                description="Notify maintenance team",
                type=StepType.NOTIFICATION,
                config=StepConfig(
                    notification=NotificationConfig(
                        recipients=["maintenance-team"],
                        template="Maintenance required: {signalType} for asset {assetId}",
                        channels=["email"],
                    )
                ),
                dependencies=["maintenance-scheduling"],
                order=2,
                required_resources=["notification-service"],
                success_criteria=SuccessCriteria(
                    expected_outcome="Maintenance team notified",
                    validation_rules=["notifications-sent"],
                ),
            ),
        ],
    )


def default_templates() -> list[ResponseWorkflow]:
    """The built-in templates, in registry order."""
    return [emergency_response_template(), asset_condition_template(), maintenance_template()]
