"""Response orchestration service: signal intake and execution API.

This file handles two concerns:

1. Intake: receives classified signals, runs them through signal
   intelligence, generates a workflow when no configured workflow applies,
   and starts the response in the background. The caller gets the
   execution id immediately.

2. Results API: read endpoints the frontend (or scripts/demo_signal.py)
   polls to follow an execution.

Flow after a signal arrives:
    POST /signals
        → validate body as Signal
        → SignalIntelligenceEngine.analyze_signals([signal])
        → no configured workflow applies?
            → AutomatedWorkflowGenerator.generate_workflow(signal)
            → register the generated workflow with the engine
        → ResponseOrchestrationEngine.execute_response(signal, actions)
        → return execution_id (or an admission ticket) immediately

    background task (owned by the engine):
        → run the workflow steps
        → finalise COMPLETED / FAILED, release resources, escalate

    clients poll:
        GET /executions/latest  or  GET /executions/{id}

Environment variables:
    ORCHESTRATION_CONFIG:  Path of the engine config JSON.
                           Default: fixtures/orchestration.json
    INTELLIGENCE_CONFIG:   Optional path of the intelligence config JSON.
    ACTION_WEBHOOK_URL:    Forward capability calls here. When unset the
                           simulated handler is used.
    ACTION_WEBHOOK_TOKEN:  Bearer token for ACTION_WEBHOOK_URL.
    ACTION_LATENCY_SCALE:  Latency multiplier for the simulated handler.
    ALLOWED_ORIGINS:       Comma-separated CORS origins.

Run locally:
    uv run uvicorn main:app --reload
"""

import logging
import logging.handlers
import os
import pathlib
from contextlib import asynccontextmanager
from typing import Literal

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

load_dotenv()

from actions import ActionHandler, SimulatedActionHandler, WebhookActionHandler
from core.events import EventBus
from core.orchestrator import create_engine
from generation.generator import AutomatedWorkflowGenerator
from intelligence.engine import SignalIntelligenceEngine
from schemas.config import ResponseOrchestrationConfig, SignalIntelligenceConfig
from schemas.execution import ResponseExecutionStatus
from schemas.signal import Signal
from utils.parse import load_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_FILE = pathlib.Path(__file__).parent / "orchestrator.log"
LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_file_handler = logging.handlers.RotatingFileHandler(
    LOG_FILE, maxBytes=1_000_000, backupCount=3, encoding="utf-8",
)
_file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

_root_logger = logging.getLogger()
_root_logger.setLevel(logging.INFO)
_root_logger.addHandler(_file_handler)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine setup
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG = pathlib.Path(__file__).parent / "fixtures" / "orchestration.json"


def _action_handler() -> ActionHandler:
    webhook_url = os.environ.get("ACTION_WEBHOOK_URL", "")
    if webhook_url:
        logger.info("Forwarding capability calls to %s.", webhook_url)
        return WebhookActionHandler(webhook_url, token=os.environ.get("ACTION_WEBHOOK_TOKEN") or None)
    scale = float(os.environ.get("ACTION_LATENCY_SCALE", "1.0"))
    logger.info("ACTION_WEBHOOK_URL not set. Using simulated actions (latency x%.2f).", scale)
    return SimulatedActionHandler(latency_scale=scale)


def _intelligence_config() -> SignalIntelligenceConfig:
    path = os.environ.get("INTELLIGENCE_CONFIG", "")
    if path:
        return load_config(path, SignalIntelligenceConfig)
    return SignalIntelligenceConfig(id="intelligence", name="Signal Intelligence")


events = EventBus()
handler = _action_handler()
engine = create_engine(
    load_config(os.environ.get("ORCHESTRATION_CONFIG", _DEFAULT_CONFIG), ResponseOrchestrationConfig),
    action_handler=handler,
    event_bus=events,
)
generator = AutomatedWorkflowGenerator(action_handler=handler, event_bus=events)
intelligence = SignalIntelligenceEngine(_intelligence_config(), event_bus=events)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    for name, component in (("engine", engine), ("generator", generator), ("intelligence", intelligence)):
        result = await component.initialize()
        if not result.success:
            raise RuntimeError(f"Failed to initialise {name}: {result.error}")
    logger.info("Orchestration service ready.")
    yield
    await engine.shutdown()
    logger.info("Orchestration service stopped.")


# ---------------------------------------------------------------------------
# App + CORS
# ---------------------------------------------------------------------------

app = FastAPI(title="Response Orchestration", lifespan=lifespan)

# ALLOWED_ORIGINS env var overrides the default for production deployments.
_origins = os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------

class SignalAccepted(BaseModel):
    """Response to POST /signals.

    status:
        "started" → execution_id is set, poll GET /executions/{execution_id}
        "queued"  → ticket is set, the request waits for capacity
    """
    signal_id: str
    status: Literal["started", "queued"]
    execution_id: str | None = None
    ticket: str | None = None
    position: int | None = None
    workflow_id: str | None = None
    generated_workflow_id: str | None = None
    recommended_actions: int = 0


_latest_id: str | None = None


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/signals", response_model=SignalAccepted)
async def receive_signal(signal: Signal):
    """Analyse a signal and start its response.

    Returns 409 when the engine cannot start or park the response, e.g. no
    workflow applies and no template fits, or resources are exhausted and
    the admission queue is full.
    """
    global _latest_id

    analysis = await intelligence.analyze_signals([signal])
    actions = analysis.recommendations.actions

    generated_id = None
    if engine.find_applicable_workflow(signal) is None:
        workflow = await generator.generate_workflow(signal)
        if workflow is not None:
            engine.add_workflow(workflow)
            generated_id = workflow.id

    result = await engine.execute_response(signal, actions=actions)
    if not result.success:
        logger.warning("Signal %s not started: %s", signal.id, result.error)
        raise HTTPException(status_code=409, detail=result.error)

    data = result.data or {}
    if data.get("queued"):
        return SignalAccepted(
            signal_id=signal.id,
            status="queued",
            ticket=data["ticket"],
            position=data.get("position"),
            generated_workflow_id=generated_id,
            recommended_actions=len(actions),
        )

    execution_id = data["execution_id"]
    _latest_id = execution_id
    execution = engine.get_execution(execution_id)
    logger.info("Accepted signal %s → execution %s.", signal.id, execution_id)
    return SignalAccepted(
        signal_id=signal.id,
        status="started",
        execution_id=execution_id,
        workflow_id=execution.workflow_id if execution else None,
        generated_workflow_id=generated_id,
        recommended_actions=len(actions),
    )


# ---------------------------------------------------------------------------
# Results API
# ---------------------------------------------------------------------------

@app.get("/executions/latest", response_model=ResponseExecutionStatus)
def get_latest_execution():
    """Return the most recently started execution.

    Returns 404 if no executions have started yet.
    """
    execution = engine.get_execution(_latest_id) if _latest_id else None
    if execution is None:
        raise HTTPException(status_code=404, detail="No executions yet.")
    return execution


@app.get("/executions/{execution_id}", response_model=ResponseExecutionStatus)
def get_execution(execution_id: str):
    """Return one execution, active or archived.

    Returns 404 if the execution_id is not known to the engine.
    """
    execution = engine.get_execution(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail=f"Execution '{execution_id}' not found.")
    return execution


@app.post("/executions/{execution_id}/cancel")
async def cancel_execution(execution_id: str):
    result = await engine.cancel_execution(execution_id)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)
    return result.data


@app.get("/workflows")
def list_workflows():
    return [
        {"id": w.id, "name": w.name, "template_id": w.template_id, "active": w.active}
        for w in engine.get_workflows()
    ]


@app.get("/statistics")
def statistics():
    return {
        "orchestration": engine.get_statistics(),
        "performance": engine.get_performance_metrics(),
        "generator": generator.get_statistics(),
        "intelligence": intelligence.get_statistics(),
    }
