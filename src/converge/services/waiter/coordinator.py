"""
WaitCoordinator: run a waiter while polling error-on rules.

The waiter runs as its own task. The coordinator wakes up every error-on
interval, fetches the object itself and checks the rules. Whichever comes
first wins: the waiter's outcome, a matching rule (AbortError) or the deadline
(WaiterError). A rule that matches on a tick wins even if the waiter finished
while that tick's fetch was in flight.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from converge.core.errors import AbortError, WaiterError

from .deadline import Deadline
from .error_on import ErrorOnRule, first_match
from .waiters import ResourceFetcher, Waiter

logger = logging.getLogger(__name__)

ERROR_ON_SLEEP_TIME = 2.0


class WaitCoordinator:
    """Races a Waiter against error-on rules and a deadline for one resource."""

    def __init__(
        self,
        resource: ResourceFetcher,
        resource_name: str,
        rules: Sequence[ErrorOnRule] = (),
        poll_interval: float = ERROR_ON_SLEEP_TIME,
    ) -> None:
        self.resource = resource
        self.resource_name = resource_name
        self.rules: List[ErrorOnRule] = list(rules)
        self.poll_interval = poll_interval

    async def run(self, waiter: Waiter, deadline: Deadline) -> None:
        if not self.rules:
            await waiter.wait(deadline)
            return

        task = asyncio.create_task(waiter.wait(deadline), name=f"wait-{self.resource_name}")
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=deadline.clip(self.poll_interval))
                if done:
                    # re-raises the waiter's own error, if any
                    task.result()
                    return

                if deadline.expired():
                    raise WaiterError(f"resource {self.resource_name}")

                abort = await self._check()
                if abort is not None:
                    logger.info(f"[Wait] Aborting wait on {self.resource_name}: {abort}")
                    raise abort
        finally:
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def check_once(self) -> None:
        """Check the rules against a single fresh snapshot."""
        abort = await self._check()
        if abort is not None:
            raise abort

    async def _check(self) -> Optional[AbortError]:
        try:
            obj = await asyncio.to_thread(self.resource.get, self.resource_name)
        except Exception as e:
            logger.debug(f"error_on: could not read {self.resource_name}, skipping check: {e}")
            return None
        return first_match(self.rules, obj, self.resource_name)
