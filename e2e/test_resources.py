"""ResourcePoolManager tests: availability, atomic allocation, release."""

import pytest

from core.errors import ResourceExhaustedError
from core.resources import ResourcePoolManager
from schemas.resources import PoolStatus, Resource, ResourcePool, ResourceStatus
from schemas.workflow import ResponseWorkflow, StepConfig, StepType, WorkflowStep


def make_pool(pool_id="inspector", size=1, capacity=None, **overrides) -> ResourcePool:
    data = dict(
        id=pool_id,
        name=pool_id,
        capacity=size if capacity is None else capacity,
        resources=[Resource(id=f"{pool_id}-{i}", type=pool_id) for i in range(1, size + 1)],
    )
    data.update(overrides)
    return ResourcePool(**data)


def make_workflow(*resource_lists) -> ResponseWorkflow:
    return ResponseWorkflow(
        id="wf",
        name="wf",
        steps=[
            WorkflowStep(
                id=f"s{i}",
                name=f"s{i}",
                type=StepType.DELAY,
                config=StepConfig(delay=0),
                required_resources=list(resources),
            )
            for i, resources in enumerate(resource_lists, start=1)
        ],
    )


class TestAvailability:
    def test_available_when_pool_has_free_resource(self):
        manager = ResourcePoolManager([make_pool()])
        check = manager.check_availability(["inspector"])
        assert check.available and check.missing == []

    def test_unknown_pool_is_missing(self):
        manager = ResourcePoolManager([make_pool()])
        check = manager.check_availability(["inspector", "analyst"])
        assert not check.available
        assert check.missing == ["analyst"]

    def test_inactive_pool_is_missing(self):
        manager = ResourcePoolManager([make_pool(status=PoolStatus.MAINTENANCE)])
        assert manager.check_availability(["inspector"]).missing == ["inspector"]

    def test_zero_capacity_pool_reads_full(self):
        manager = ResourcePoolManager([make_pool(capacity=0)])
        assert manager.get("inspector").utilization == 100.0
        assert not manager.check_availability(["inspector"]).available

    def test_add_pool_copies_caller_object(self):
        pool = make_pool()
        manager = ResourcePoolManager([pool])
        manager.allocate(make_workflow(["inspector"]), "e1")
        assert pool.resources[0].status == ResourceStatus.AVAILABLE

    def test_busy_pool_is_not_unservable(self):
        manager = ResourcePoolManager([make_pool()])
        manager.allocate(make_workflow(["inspector"]), "e1")
        assert manager.unservable(make_workflow(["inspector"])) == []

    def test_missing_and_inactive_pools_are_unservable(self):
        manager = ResourcePoolManager([make_pool(status=PoolStatus.INACTIVE)])
        assert manager.unservable(make_workflow(["inspector"], ["crane"])) == ["inspector", "crane"]

    def test_demand_above_capacity_is_unservable(self):
        manager = ResourcePoolManager([make_pool(size=1)])
        assert manager.unservable(make_workflow(["inspector"], ["inspector"])) == ["inspector"]

    def test_demand_above_resource_count_is_unservable(self):
        manager = ResourcePoolManager([make_pool(size=1, capacity=3)])
        assert manager.unservable(make_workflow(["inspector"], ["inspector"])) == ["inspector"]


class TestAllocation:
    def test_allocate_marks_busy_and_stamps_owner(self):
        manager = ResourcePoolManager([make_pool()])

        allocation = manager.allocate(make_workflow(["inspector"]), "e1")

        resource = manager.get("inspector").resources[0]
        assert resource.status == ResourceStatus.BUSY
        assert resource.current_allocation.allocated_to == "e1"
        assert manager.get("inspector").utilization == 100.0
        assert [r.id for r in allocation.allocated] == ["inspector-1"]
        assert allocation.expected_release_time > allocation.start_time

    def test_second_allocation_is_exhausted(self):
        manager = ResourcePoolManager([make_pool()])
        manager.allocate(make_workflow(["inspector"]), "e1")

        with pytest.raises(ResourceExhaustedError) as exc_info:
            manager.allocate(make_workflow(["inspector"]), "e2")

        assert exc_info.value.missing == ["inspector"]
        assert str(exc_info.value) == "Insufficient resources: inspector"

    def test_partial_allocation_is_rolled_back(self):
        manager = ResourcePoolManager([make_pool("notification-service", size=2), make_pool("inspector", size=1)])
        # Two steps each want an inspector; only one exists.
        workflow = make_workflow(["notification-service", "inspector"], ["inspector"])

        with pytest.raises(ResourceExhaustedError):
            manager.allocate(workflow, "e1")

        assert manager.busy_count() == 0
        assert manager.get("inspector").utilization == 0.0
        assert manager.get("notification-service").utilization == 0.0

    def test_one_resource_per_step_per_type(self):
        manager = ResourcePoolManager([make_pool("crew", size=3)])
        allocation = manager.allocate(make_workflow(["crew"], ["crew"]), "e1")
        assert len(allocation.allocated) == 2
        assert manager.get("crew").busy_count() == 2


class TestRelease:
    def test_release_frees_everything_held(self):
        manager = ResourcePoolManager([make_pool("crew", size=2), make_pool("inspector")])
        manager.allocate(make_workflow(["crew", "inspector"]), "e1")

        assert manager.release("e1") == 2
        assert manager.busy_count() == 0
        assert manager.average_utilization() == 0.0

    def test_release_is_idempotent(self):
        manager = ResourcePoolManager([make_pool()])
        manager.allocate(make_workflow(["inspector"]), "e1")
        manager.release("e1")
        assert manager.release("e1") == 0

    def test_release_leaves_other_owners_alone(self):
        manager = ResourcePoolManager([make_pool("crew", size=2)])
        manager.allocate(make_workflow(["crew"]), "e1")
        manager.allocate(make_workflow(["crew"]), "e2")

        manager.release("e1")

        assert [r.id for r in manager.held_by("e2")] == ["crew-2"]
        assert manager.get("crew").utilization == 50.0

    def test_conservation_over_many_cycles(self):
        manager = ResourcePoolManager([make_pool("crew", size=3)])
        for i in range(10):
            manager.allocate(make_workflow(["crew"]), f"e{i}")
            manager.release(f"e{i}")
        assert manager.busy_count() == 0
        assert len(manager.get("crew").available()) == 3

    def test_release_all_resets(self):
        manager = ResourcePoolManager([make_pool("crew", size=2)])
        manager.allocate(make_workflow(["crew"], ["crew"]), "e1")
        manager.release_all()
        assert manager.busy_count() == 0
        assert manager.get("crew").utilization == 0.0


class TestUpdatePool:
    def test_update_unknown_pool_returns_none(self):
        assert ResourcePoolManager().update_pool("ghost", capacity=3) is None

    def test_update_recomputes_utilization(self):
        manager = ResourcePoolManager([make_pool("crew", size=2)])
        manager.allocate(make_workflow(["crew"]), "e1")
        updated = manager.update_pool("crew", capacity=4)
        assert updated.utilization == 25.0
