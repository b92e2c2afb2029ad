"""Write-then-wait: one deadline bounds the write retries and the wait."""

import logging
from typing import Any, Callable, Dict, Optional, TypeVar

from converge.core.models import ManifestWaitConfig, Operation
from converge.core.settings import Settings
from converge.services.waiter.coordinator import WaitCoordinator
from converge.services.waiter.deadline import Deadline
from converge.services.waiter.factory import new_resource_waiter
from converge.services.waiter.shape import TypedShape
from converge.services.waiter.waiters import DeletionWaiter, NoopWaiter, ResourceFetcher

from .retry import RetryingApplier, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def wait_for(  # noqa: PLR0913
    resource: ResourceFetcher,
    resource_name: str,
    config: ManifestWaitConfig,
    settings: Settings,
    deadline: Deadline,
    shape: Optional[TypedShape] = None,
    type_hints: Optional[Dict[str, str]] = None,
) -> None:
    """
    Run the configured wait (and error-on rules) for one resource.

    With error-on rules but no wait block the rules are checked once against a
    single fresh snapshot.
    """
    waiter = new_resource_waiter(
        config.wait,
        resource,
        resource_name,
        shape=shape,
        type_hints=type_hints,
        poll_interval=settings.WAITER_POLL_INTERVAL_SECONDS,
    )
    coordinator = WaitCoordinator(
        resource,
        resource_name,
        config.error_on_rules(),
        poll_interval=settings.ERROR_ON_POLL_INTERVAL_SECONDS,
    )

    if isinstance(waiter, NoopWaiter):
        if coordinator.rules:
            await coordinator.check_once()
        return

    await coordinator.run(waiter, deadline)


async def apply_and_wait(  # noqa: PLR0913
    write: Callable[[], T],
    resource: ResourceFetcher,
    resource_name: str,
    config: ManifestWaitConfig,
    settings: Settings,
    operation: Operation = Operation.CREATE,
    shape: Optional[TypedShape] = None,
    type_hints: Optional[Dict[str, str]] = None,
    applier: Optional[RetryingApplier] = None,
) -> T:
    """
    Retry ``write`` under backoff, then wait for ``resource_name`` to converge.

    The operation's timeout is both the retry ceiling and the wait deadline.
    Returns whatever ``write`` returned.
    """
    if Operation(operation) is Operation.DELETE:
        raise ValueError("apply_and_wait does not delete; use delete_and_wait")
    timeout = config.timeouts.for_operation(operation)
    deadline = Deadline(timeout)
    applier = applier or RetryingApplier(RetryPolicy.from_settings(settings, timeout))

    result = await applier.apply(write, description=resource_name)

    logger.info(
        f"[Apply] {operation.value} {resource_name}: waiting "
        f"(strategy={config.wait.strategy if config.wait else None}, timeout={timeout}s)"
    )
    await wait_for(resource, resource_name, config, settings, deadline, shape, type_hints)
    return result


async def delete_and_wait(  # noqa: PLR0913
    delete: Callable[[], Any],
    resource: ResourceFetcher,
    resource_name: str,
    config: ManifestWaitConfig,
    settings: Settings,
    applier: Optional[RetryingApplier] = None,
) -> None:
    """
    Retry ``delete`` under backoff, then poll until ``resource_name`` is gone.

    The delete timeout bounds both. Wait and error-on blocks do not apply to a
    deletion.
    """
    timeout = config.timeouts.delete
    deadline = Deadline(timeout)
    applier = applier or RetryingApplier(RetryPolicy.from_settings(settings, timeout))

    await applier.apply(delete, description=resource_name)

    logger.info(f"[Delete] {resource_name}: waiting for removal (timeout={timeout}s)")
    waiter = DeletionWaiter(
        resource, resource_name, poll_interval=settings.DELETE_POLL_INTERVAL_SECONDS
    )
    await waiter.wait(deadline)
