"""Resource pool schema.

A ResourcePool is a bounded collection of interchangeable resources keyed
by pool id (e.g. "inspector", "notification-service"). Workflow steps name
pool ids in required_resources; the pool manager hands out one AVAILABLE
resource per request and marks it BUSY until the execution releases it.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ResourceStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"


class PoolStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    MAINTENANCE = "MAINTENANCE"


class CurrentAllocation(BaseModel):
    """Who holds a BUSY resource and until when."""

    allocated_to: str
    start_time: datetime
    expected_end_time: datetime


class Resource(BaseModel):
    """One interchangeable unit inside a pool.

    Invariant: current_allocation is set iff status is BUSY.
    """

    id: str
    name: str = ""
    type: str = ""
    status: ResourceStatus = ResourceStatus.AVAILABLE
    current_allocation: CurrentAllocation | None = None


class ResourcePool(BaseModel):
    """A named bounded pool.

    Attributes:
        id: Pool key. Steps reference this in required_resources.
        name: Human-readable name.
        capacity: Maximum number of resources that may be BUSY at once.
        resources: The pool's members.
        utilization: Percentage of capacity currently BUSY. Maintained by
            ResourcePoolManager; never set by hand.
        status: Only ACTIVE pools can serve allocations.
    """

    id: str
    name: str = ""
    capacity: int = Field(ge=0)
    resources: list[Resource] = Field(default_factory=list)
    utilization: float = 0.0
    status: PoolStatus = PoolStatus.ACTIVE

    def busy_count(self) -> int:
        return sum(1 for r in self.resources if r.status == ResourceStatus.BUSY)

    def available(self) -> list[Resource]:
        return [r for r in self.resources if r.status == ResourceStatus.AVAILABLE]


class ResourceAllocation(BaseModel):
    """The set of resources one execution holds."""

    allocated: list[Resource] = Field(default_factory=list)
    start_time: datetime
    expected_release_time: datetime


class AvailabilityCheck(BaseModel):
    available: bool
    missing: list[str] = Field(default_factory=list)
