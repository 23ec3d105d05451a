"""Resource pool manager.

ResourcePoolManager tracks the named pools workflows draw resources from.
It is the only component that mutates Resource state, and it does so only
through the allocate/release pair: every successful allocate is matched by
exactly one release when the execution is finalised or cancelled.

Allocation is atomic. If any requested type runs out part-way through, the
resources already taken in that call are returned before the error is
raised, so a failed allocate never leaves anything BUSY.

All methods are synchronous. The engine calls them between awaits on the
event loop, which makes each call atomic with respect to other executions.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta

from core.errors import ResourceExhaustedError
from schemas.resources import (
    AvailabilityCheck,
    CurrentAllocation,
    PoolStatus,
    Resource,
    ResourceAllocation,
    ResourcePool,
    ResourceStatus,
)
from schemas.signal import utcnow
from schemas.workflow import ResponseWorkflow

logger = logging.getLogger(__name__)


class ResourcePoolManager:
    """Owns pool state and hands out resources to executions.

    Attributes:
        _pools: Pool id to pool, in insertion order.
    """

    def __init__(self, pools: list[ResourcePool] | None = None) -> None:
        self._pools: dict[str, ResourcePool] = {}
        for pool in pools or []:
            self.add_pool(pool)

    # ── Pool registry ─────────────────────────────────────────────────────────

    def add_pool(self, pool: ResourcePool) -> None:
        """Register a pool, replacing any pool with the same id.

        The pool is deep-copied so the caller's object is never mutated,
        and its utilization is recomputed from resource state.
        """
        copy = pool.model_copy(deep=True)
        _recompute_utilization(copy)
        self._pools[copy.id] = copy

    def update_pool(self, pool_id: str, **fields) -> ResourcePool | None:
        """Merge fields into an existing pool.

        Returns:
            The updated pool, or None if no pool has that id.
        """
        pool = self._pools.get(pool_id)
        if pool is None:
            return None
        updated = pool.model_copy(update=fields, deep=True)
        _recompute_utilization(updated)
        self._pools[pool_id] = updated
        return updated

    def get(self, pool_id: str) -> ResourcePool | None:
        return self._pools.get(pool_id)

    def pools(self) -> list[ResourcePool]:
        return list(self._pools.values())

    def __len__(self) -> int:
        return len(self._pools)

    # ── Availability ──────────────────────────────────────────────────────────

    def check_availability(self, required_types: list[str]) -> AvailabilityCheck:
        """Report which required types cannot currently supply a resource.

        A type is available iff a pool with that id exists, is ACTIVE, is
        below 100% utilization and has at least one AVAILABLE resource.

        Args:
            required_types: Pool ids. Duplicates are checked once.

        Returns:
            AvailabilityCheck with available=True and no missing types, or
            available=False and the missing types in request order.
        """
        missing = [
            resource_type
            for resource_type in dict.fromkeys(required_types)
            if not self._can_serve(resource_type)
        ]
        return AvailabilityCheck(available=not missing, missing=missing)

    def unservable(self, workflow: ResponseWorkflow) -> list[str]:
        """Return the required types no amount of waiting will supply.

        A type is unservable when its pool is missing or not ACTIVE, or when
        the workflow's steps need more of it than the pool can hold BUSY at
        once. Types that are merely busy right now are not listed.
        """
        demand = Counter(t for step in workflow.steps for t in step.required_resources)
        unservable: list[str] = []
        for resource_type, needed in demand.items():
            pool = self._pools.get(resource_type)
            if (
                pool is None
                or pool.status != PoolStatus.ACTIVE
                or needed > min(pool.capacity, len(pool.resources))
            ):
                unservable.append(resource_type)
        return unservable

    def _can_serve(self, resource_type: str) -> bool:
        pool = self._pools.get(resource_type)
        if pool is None or pool.status != PoolStatus.ACTIVE:
            return False
        if pool.utilization >= 100:
            return False
        return bool(pool.available())

    # ── Allocation ────────────────────────────────────────────────────────────

    def allocate(self, workflow: ResponseWorkflow, execution_id: str) -> ResourceAllocation:
        """Take one resource per step per required type for an execution.

        Resources are marked BUSY and stamped with the execution id. The
        expected release time is now + the workflow's overall timeout.

        Args:
            workflow: The workflow about to run.
            execution_id: Owner written into each resource's allocation.

        Returns:
            The allocation, listing every resource taken.

        Raises:
            ResourceExhaustedError: If any request could not be served.
                Every resource taken by this call has been released again.
        """
        start = utcnow()
        expected_end = start + timedelta(milliseconds=workflow.execution.overall_timeout)
        taken: list[Resource] = []
        missing: list[str] = []

        for step in workflow.steps:
            for resource_type in step.required_resources:
                resource = self._take(resource_type, execution_id, start, expected_end)
                if resource is None:
                    if resource_type not in missing:
                        missing.append(resource_type)
                    continue
                taken.append(resource)

        if missing:
            for resource in taken:
                _free(resource)
            self._recompute_all()
            logger.warning(
                "Allocation for %s rolled back: %d taken, missing %s.",
                execution_id,
                len(taken),
                ", ".join(missing),
            )
            raise ResourceExhaustedError(missing)

        logger.debug("Allocated %d resources to %s.", len(taken), execution_id)
        return ResourceAllocation(
            allocated=[r.model_copy(deep=True) for r in taken],
            start_time=start,
            expected_release_time=expected_end,
        )

    def _take(
        self,
        resource_type: str,
        execution_id: str,
        start: datetime,
        expected_end: datetime,
    ) -> Resource | None:
        if not self._can_serve(resource_type):
            return None
        pool = self._pools[resource_type]
        resource = pool.available()[0]
        resource.status = ResourceStatus.BUSY
        resource.current_allocation = CurrentAllocation(
            allocated_to=execution_id,
            start_time=start,
            expected_end_time=expected_end,
        )
        _recompute_utilization(pool)
        return resource

    def release(self, execution_id: str) -> int:
        """Return every resource held by an execution to AVAILABLE.

        Returns:
            Number of resources released. Zero is not an error: a second
            release for the same execution is a no-op.
        """
        released = 0
        for pool in self._pools.values():
            for resource in pool.resources:
                allocation = resource.current_allocation
                if allocation is not None and allocation.allocated_to == execution_id:
                    _free(resource)
                    released += 1
            _recompute_utilization(pool)
        if released:
            logger.debug("Released %d resources from %s.", released, execution_id)
        return released

    def release_all(self) -> None:
        """Reset every resource in every pool. Used during shutdown only."""
        for pool in self._pools.values():
            for resource in pool.resources:
                _free(resource)
            pool.utilization = 0.0
        logger.info("All resource pools reset.")

    # ── Reporting ─────────────────────────────────────────────────────────────

    def average_utilization(self) -> float:
        if not self._pools:
            return 0.0
        return sum(p.utilization for p in self._pools.values()) / len(self._pools)

    def busy_count(self) -> int:
        return sum(p.busy_count() for p in self._pools.values())

    def total_capacity(self) -> int:
        return sum(p.capacity for p in self._pools.values())

    def held_by(self, execution_id: str) -> list[Resource]:
        return [
            r
            for p in self._pools.values()
            for r in p.resources
            if r.current_allocation is not None
            and r.current_allocation.allocated_to == execution_id
        ]

    def _recompute_all(self) -> None:
        for pool in self._pools.values():
            _recompute_utilization(pool)


# ── Private helpers ────────────────────────────────────────────────────────────

def _free(resource: Resource) -> None:
    resource.status = ResourceStatus.AVAILABLE
    resource.current_allocation = None


def _recompute_utilization(pool: ResourcePool) -> None:
    """utilization = 100 * busy / capacity. A zero-capacity pool reads as full."""
    if pool.capacity <= 0:
        pool.utilization = 100.0
        return
    pool.utilization = 100.0 * pool.busy_count() / pool.capacity
