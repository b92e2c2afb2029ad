from typing import Dict, Optional

from converge.core.models import WaitConfig

from .shape import TypedShape
from .waiters import (
    WAITER_SLEEP_TIME,
    ConditionsWaiter,
    FieldWaiter,
    NoopWaiter,
    ResourceFetcher,
    RolloutWaiter,
    Waiter,
)


def new_resource_waiter(  # noqa: PLR0913
    config: Optional[WaitConfig],
    resource: ResourceFetcher,
    resource_name: str,
    shape: Optional[TypedShape] = None,
    type_hints: Optional[Dict[str, str]] = None,
    poll_interval: float = WAITER_SLEEP_TIME,
) -> Waiter:
    """Build the single waiter a wait block selects, or a NoopWaiter."""
    if config is None:
        return NoopWaiter()

    if config.rollout:
        return RolloutWaiter(resource, resource_name, poll_interval=poll_interval)

    if config.condition:
        return ConditionsWaiter(
            resource,
            resource_name,
            [c.to_matcher() for c in config.condition],
            poll_interval=poll_interval,
        )

    if config.field:
        return FieldWaiter(
            resource,
            resource_name,
            [f.to_matcher() for f in config.field],
            shape=shape,
            type_hints=type_hints,
            poll_interval=poll_interval,
        )

    return NoopWaiter()
