"""Engine configuration schema.

ResponseOrchestrationConfig is handed to the orchestration engine at
construction time and carries the initial workflows, pools and escalation
rules plus the concurrency, timeout and monitoring settings.
SignalIntelligenceConfig configures the intelligence engine.

Both are plain data and can be loaded from JSON with utils.parse.load_config.
Semantic checks (positive limits, thresholds in range) are done by the
engines at initialize() so that a bad config surfaces as an ordinary
{success: False, error} result rather than a construction failure.
"""

from enum import Enum

from pydantic import BaseModel, Field

from schemas.escalation import EscalationRule
from schemas.resources import ResourcePool
from schemas.workflow import ResponseWorkflow


class OverflowPolicy(str, Enum):
    """What the admission queue does when it is full.

    REJECT: the new request is refused.
    DROP_OLDEST: the oldest queued request is dropped and its waiter is
        told so; the new request takes the free slot.
    """

    REJECT = "REJECT"
    DROP_OLDEST = "DROP_OLDEST"


class AdmissionSettings(BaseModel):
    """Bounded admission queue settings. max_queued=0 disables queueing."""

    max_queued: int = Field(default=0, ge=0)
    overflow: OverflowPolicy = OverflowPolicy.REJECT


class ResourceAllocationConfig(BaseModel):
    max_concurrent: int = 10
    resource_pools: list[ResourcePool] = Field(default_factory=list)
    admission: AdmissionSettings = Field(default_factory=AdmissionSettings)


class PerformanceConfig(BaseModel):
    """Engine-wide timing settings.

    Attributes:
        response_timeout: Upper bound in milliseconds for any execution.
            Must be positive.
        retry_failed_steps: When True, failed steps are retried according
            to each workflow's retry policy. Off by default so a failing
            step is reported once.
    """

    response_timeout: int = 300_000
    retry_failed_steps: bool = False


class MonitoringThresholds(BaseModel):
    response_time: int = 60_000  # ms
    success_rate: float = 0.9


class MonitoringConfig(BaseModel):
    enabled: bool = True
    interval: int = 30_000  # ms
    thresholds: MonitoringThresholds = Field(default_factory=MonitoringThresholds)


class ResponseOrchestrationConfig(BaseModel):
    """Construction-time configuration for ResponseOrchestrationEngine.

    Attributes:
        id: Engine id. Required.
        name: Engine name. Required.
        description: Free text.
        workflows: Workflows registered at initialize(), in match order.
        escalation_rules: Rules loaded at initialize().
        resource_allocation: Concurrency cap, pools, admission queue.
        performance: Response timeout and retry settings.
        monitoring: Periodic performance check settings.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    workflows: list[ResponseWorkflow] = Field(default_factory=list)
    escalation_rules: list[EscalationRule] = Field(default_factory=list)
    resource_allocation: ResourceAllocationConfig = Field(default_factory=ResourceAllocationConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)


class IntelligenceFeatures(BaseModel):
    pattern_recognition: bool = True
    anomaly_detection: bool = True
    predictive_analytics: bool = True
    correlation_analysis: bool = True
    trend_analysis: bool = True

    def enabled(self) -> list[str]:
        return [name for name, on in self.model_dump().items() if on]


class AnalysisSettings(BaseModel):
    """Thresholds for the intelligence analyzers.

    Attributes:
        analysis_window: Days of history considered for historical
            correlations. Must be positive.
        correlation_threshold: Coefficient at or above which a correlation
            is strong. In [0, 1].
        anomaly_threshold: Anomalies scoring at or above this are logged as
            warnings and counted in the anomaliesDetected event. In [0, 1].
        prediction_horizon: Predictions further out than this many hours
            are dropped.
    """

    analysis_window: int = 7
    correlation_threshold: float = 0.7
    anomaly_threshold: float = 0.8
    prediction_horizon: int = 72


class SignalIntelligenceConfig(BaseModel):
    id: str = ""
    name: str = ""
    features: IntelligenceFeatures = Field(default_factory=IntelligenceFeatures)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
