"""
Waiter strategies.

Every waiter except NoopWaiter runs the same fixed-rate polling loop: check the
deadline, fetch the object, evaluate the strategy's predicate, sleep and
repeat. A deleted resource ends the wait immediately.
"""

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, List, Optional, Protocol, Sequence

from converge.core.errors import AttributeNotPresentError, ResourceGoneError, WaiterError

from .deadline import Deadline
from .matchers import ConditionMatcher, Matcher
from .path import walk
from .rollout import group_kind, status_viewer_for
from .shape import TypedShape, to_typed

logger = logging.getLogger(__name__)

WAITER_SLEEP_TIME = 1.0

RemoteObject = Dict[str, Any]
ToTyped = Callable[[Any, Optional[TypedShape], Optional[Dict[str, str]]], Any]


class ResourceFetcher(Protocol):
    """Reads the current state of a named object from the cluster."""

    def get(self, name: str) -> RemoteObject:
        """Return the object, or raise ResourceGoneError if it no longer exists."""
        ...


class Waiter(ABC):
    """Blocks until a resource reaches the state a strategy waits for."""

    reason: ClassVar[str] = ""

    @abstractmethod
    async def wait(self, deadline: Deadline) -> None:
        """Return once done; raise WaiterError if ``deadline`` passes first."""


class NoopWaiter(Waiter):
    """Placeholder used when there is nothing to wait on."""

    reason = "nothing"

    async def wait(self, deadline: Deadline) -> None:
        return None


class PollingWaiter(Waiter):
    """Shared polling loop for the waiters that read the resource."""

    def __init__(
        self,
        resource: ResourceFetcher,
        resource_name: str,
        poll_interval: float = WAITER_SLEEP_TIME,
    ) -> None:
        self.resource = resource
        self.resource_name = resource_name
        self.poll_interval = poll_interval

    async def wait(self, deadline: Deadline) -> None:
        logger.info(f"[Wait] Waiting until {self.reason} on {self.resource_name}...")
        while True:
            if deadline.expired():
                raise WaiterError(self.reason)

            obj = await asyncio.to_thread(self.resource.get, self.resource_name)
            logger.debug(f"[Wait] API response for {self.resource_name}: {obj}")

            if self.is_done(obj):
                logger.info(f"[Wait] Done waiting on {self.resource_name}.")
                return

            await deadline.sleep(self.poll_interval)

    @abstractmethod
    def is_done(self, obj: RemoteObject) -> bool:
        """Evaluate the strategy's predicate against one fetched snapshot."""


def strip_managed_fields(obj: RemoteObject) -> RemoteObject:
    """Return a copy of ``obj`` without ``metadata.managedFields``."""
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict) or "managedFields" not in metadata:
        return obj
    stripped = copy.copy(obj)
    stripped["metadata"] = {k: v for k, v in metadata.items() if k != "managedFields"}
    return stripped


class FieldWaiter(PollingWaiter):
    """
    Waits until every field matcher holds.

    With a TypedShape the fetched object is converted first, and a matcher path
    that does not resolve is a configuration error (AttributeNotPresentError).
    Without one, an unresolved path means "not yet".
    """

    reason = "field matchers"

    def __init__(  # noqa: PLR0913
        self,
        resource: ResourceFetcher,
        resource_name: str,
        matchers: Sequence[Matcher],
        shape: Optional[TypedShape] = None,
        type_hints: Optional[Dict[str, str]] = None,
        poll_interval: float = WAITER_SLEEP_TIME,
        converter: ToTyped = to_typed,
    ) -> None:
        super().__init__(resource, resource_name, poll_interval)
        self.matchers: List[Matcher] = list(matchers)
        self.shape = shape
        self.type_hints = type_hints or {}
        self.converter = converter

    def is_done(self, obj: RemoteObject) -> bool:
        typed = self.converter(strip_managed_fields(obj), self.shape, self.type_hints)
        for m in self.matchers:
            value, found = walk(m.path, typed)
            if not found or value is None:
                if self.shape is not None:
                    raise AttributeNotPresentError(str(m.path))
                logger.debug(f"[Wait] {m.path} not yet present on {self.resource_name}")
                return False
            if not m.matches(value):
                return False
        return True


class ConditionsWaiter(PollingWaiter):
    """Waits until every configured condition holds in a single snapshot."""

    reason = "conditions"

    def __init__(
        self,
        resource: ResourceFetcher,
        resource_name: str,
        conditions: Sequence[ConditionMatcher],
        poll_interval: float = WAITER_SLEEP_TIME,
    ) -> None:
        super().__init__(resource, resource_name, poll_interval)
        self.conditions: List[ConditionMatcher] = list(conditions)

    def is_done(self, obj: RemoteObject) -> bool:
        status = obj.get("status")
        if not isinstance(status, dict):
            return False
        conditions = status.get("conditions")
        if not isinstance(conditions, list) or not conditions:
            return False
        return all(self._condition_met(c, conditions) for c in self.conditions)

    @staticmethod
    def _condition_met(matcher: ConditionMatcher, conditions: List[Any]) -> bool:
        for entry in conditions:
            if not isinstance(entry, dict):
                continue
            if entry.get("type") == matcher.type:
                return entry.get("status") == matcher.status
        return False


class RolloutWaiter(PollingWaiter):
    """Waits until the kind-specific status inspector reports the rollout done."""

    reason = "rollout to complete"

    def __init__(
        self,
        resource: ResourceFetcher,
        resource_name: str,
        poll_interval: float = WAITER_SLEEP_TIME,
        revision: int = 0,
    ) -> None:
        super().__init__(resource, resource_name, poll_interval)
        self.revision = revision

    def is_done(self, obj: RemoteObject) -> bool:
        group, kind = group_kind(obj)
        message, done = status_viewer_for(group, kind).status(obj, self.revision)
        logger.debug(f"[Wait] {message}")
        return done


class DeletionWaiter(Waiter):
    """
    Waits until the resource is gone.

    Only ResourceGoneError ends the wait; any other read failure is logged and
    the next poll tries again.
    """

    reason = "deletion"

    def __init__(
        self,
        resource: ResourceFetcher,
        resource_name: str,
        poll_interval: float = WAITER_SLEEP_TIME,
    ) -> None:
        self.resource = resource
        self.resource_name = resource_name
        self.poll_interval = poll_interval

    async def wait(self, deadline: Deadline) -> None:
        logger.info(f"[Delete] Waiting for {self.resource_name} to be deleted...")
        while True:
            if deadline.expired():
                raise WaiterError(f"{self.reason} of {self.resource_name}")

            try:
                await asyncio.to_thread(self.resource.get, self.resource_name)
            except ResourceGoneError:
                logger.info(f"[Delete] Confirmed {self.resource_name} deleted.")
                return
            except Exception as e:
                logger.debug(f"[Delete] Error checking {self.resource_name}: {e}")
            else:
                logger.debug(f"[Delete] {self.resource_name} still exists")

            await deadline.sleep(self.poll_interval)
