"""Unit tests for the error-on race in WaitCoordinator."""

import time
from typing import Any, Callable, Dict

import pytest

from converge.core.errors import AbortError, ResourceGoneError, WaiterError
from converge.services.waiter.coordinator import WaitCoordinator
from converge.services.waiter.deadline import Deadline
from converge.services.waiter.error_on import FieldRule
from converge.services.waiter.matchers import Matcher
from converge.services.waiter.waiters import FieldWaiter
from tests.conftest import FakeResource, pod

WAIT_POLL = 0.01
TICK = 0.02

FAILED_RULE = FieldRule.build("status.phase", "Failed")


def running_waiter(resource: FakeResource) -> FieldWaiter:
    return FieldWaiter(
        resource, "web", [Matcher.build("status.phase", "Running")], poll_interval=WAIT_POLL
    )


class SlowResource(FakeResource):
    """A FakeResource whose reads take a while."""

    def __init__(self, delay: float, *snapshots: Any) -> None:
        super().__init__(snapshots)
        self.delay = delay

    def get(self, name: str) -> Dict[str, Any]:
        time.sleep(self.delay)
        return super().get(name)


class TestWaitCoordinator:
    """Test the race between waiter, error-on rules and deadline."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_abort_before_waiter_succeeds(
        self, make_resource: Callable[..., FakeResource]
    ) -> None:
        resource = make_resource(pod("Failed"))
        coordinator = WaitCoordinator(resource, "web", [FAILED_RULE], poll_interval=TICK)

        started = time.monotonic()
        with pytest.raises(AbortError) as exc_info:
            await coordinator.run(running_waiter(resource), Deadline(5))

        assert time.monotonic() - started < 1
        assert exc_info.value.key == "status.phase"
        assert exc_info.value.matched_value == "Failed"
        assert exc_info.value.pattern == "Failed"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_waiter_result_is_delivered(
        self, make_resource: Callable[..., FakeResource]
    ) -> None:
        waited = make_resource(pod("Pending"), pod("Pending"), pod("Pending"), pod("Running"))
        checked = make_resource(pod("Pending"))
        coordinator = WaitCoordinator(checked, "web", [FAILED_RULE], poll_interval=TICK)

        await coordinator.run(running_waiter(waited), Deadline(5))

        assert waited.call_count == 4

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_waiter_errors_propagate(self, make_resource: Callable[..., FakeResource]) -> None:
        waited = make_resource(pod("Pending"), ResourceGoneError("web"))
        coordinator = WaitCoordinator(
            make_resource(pod("Pending")), "web", [FAILED_RULE], poll_interval=TICK
        )
        with pytest.raises(ResourceGoneError):
            await coordinator.run(running_waiter(waited), Deadline(5))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_deadline(self, make_resource: Callable[..., FakeResource]) -> None:
        resource = make_resource(pod("Pending"))
        coordinator = WaitCoordinator(resource, "web", [FAILED_RULE], poll_interval=TICK)

        started = time.monotonic()
        with pytest.raises(WaiterError):
            await coordinator.run(running_waiter(resource), Deadline(0.1))
        # never outlives the deadline by more than a tick
        assert time.monotonic() - started < 0.1 + 0.5

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_without_rules_only_the_waiter_fetches(
        self, make_resource: Callable[..., FakeResource]
    ) -> None:
        waited = make_resource(pod("Pending"), pod("Running"))
        unused = make_resource(pod("Failed"))
        coordinator = WaitCoordinator(unused, "web", poll_interval=TICK)

        await coordinator.run(running_waiter(waited), Deadline(5))

        assert unused.call_count == 0
        assert waited.call_count == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_without_rules_timeout_is_the_waiters(
        self, make_resource: Callable[..., FakeResource]
    ) -> None:
        resource = make_resource(pod("Pending"))
        coordinator = WaitCoordinator(resource, "web", poll_interval=TICK)
        with pytest.raises(WaiterError) as exc_info:
            await coordinator.run(running_waiter(resource), Deadline(0.05))
        assert exc_info.value.reason == "field matchers"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_rule_fetch_is_skipped(
        self, make_resource: Callable[..., FakeResource]
    ) -> None:
        waited = make_resource(*([pod("Pending")] * 5), pod("Running"))
        flaky = make_resource(RuntimeError("connection reset"))
        coordinator = WaitCoordinator(flaky, "web", [FAILED_RULE], poll_interval=TICK)

        await coordinator.run(running_waiter(waited), Deadline(5))

        assert flaky.call_count >= 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_abort_wins_over_waiter_finishing_during_a_tick(
        self, make_resource: Callable[..., FakeResource]
    ) -> None:
        waited = make_resource(*([pod("Pending")] * 6), pod("Running"))
        slow = SlowResource(0.2, pod("Failed"))
        coordinator = WaitCoordinator(slow, "web", [FAILED_RULE], poll_interval=TICK)

        with pytest.raises(AbortError):
            await coordinator.run(running_waiter(waited), Deadline(5))

        assert waited.call_count == 7


class TestCheckOnce:
    """Test the single check used when no wait block is configured."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_check_once(self, make_resource: Callable[..., FakeResource]) -> None:
        coordinator = WaitCoordinator(make_resource(pod("Failed")), "web", [FAILED_RULE])
        with pytest.raises(AbortError):
            await coordinator.check_once()

        coordinator = WaitCoordinator(make_resource(pod("Running")), "web", [FAILED_RULE])
        await coordinator.check_once()
