"""Polling of asynchronously mutated resources until they settle.

Create, update and delete calls only start a transition on the control
plane. :class:`ResourceReconciler` re-reads the resource until it reaches one
of the requested states, fails, or the timeout runs out. The wait between
reads backs off exponentially between the configured bounds and never
overshoots the deadline.

The reconciler observes; it never mutates the resource. Read errors are not
retried here: transient network conditions are the transport's business.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Protocol, TypeVar

from hlb_client.errors import ReconcileTimeoutError, ResourceFailedError, UnexpectedStateError
from hlb_client.states import ResourceState, StateClass, classify_state

logger = logging.getLogger(__name__)


class StatefulResource(Protocol):
    @property
    def state(self) -> str | None: ...

    @property
    def failure_detail(self) -> str | None: ...


R = TypeVar("R", bound=StatefulResource)


def _state_value(state: str | ResourceState | None) -> str | None:
    if isinstance(state, ResourceState):
        return state.value
    return state


class ResourceReconciler:
    def __init__(
        self,
        *,
        poll_interval_min: float = 0.5,
        poll_interval_max: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._poll_interval_min = poll_interval_min
        self._poll_interval_max = max(poll_interval_min, poll_interval_max)
        self._clock = clock
        self._sleep = sleep

    def poll_delay(self, attempt: int) -> float:
        return min(self._poll_interval_max, self._poll_interval_min * (2**attempt))

    async def await_state(
        self,
        reader: Callable[[str], Awaitable[R]],
        resource_id: str,
        target_states: str | ResourceState | Iterable[str | ResourceState],
        timeout: float,
    ) -> R:
        """Read ``resource_id`` until its state is in ``target_states``.

        Each read is bounded by the time left, so a slow read (for example one
        stuck in rate-limit retries) cannot push the outcome past the deadline.

        Returns the resource from the final read.

        Raises:
            ResourceFailedError: The resource reported ``failed``.
            UnexpectedStateError: The state is neither targeted nor transitional.
            ReconcileTimeoutError: Still transitional when ``timeout`` elapsed.
            HLBError: Whatever ``reader`` raised, unchanged.
        """
        if isinstance(target_states, str):
            target_states = (target_states,)
        targets = frozenset(_state_value(s) for s in target_states)
        deadline = self._clock() + timeout
        last_state: str | None = None
        attempt = 0

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ReconcileTimeoutError(resource_id, last_state, targets, timeout)

            try:
                async with asyncio.timeout(remaining) as read_timeout:
                    resource = await reader(resource_id)
            except TimeoutError as exc:
                if not read_timeout.expired():
                    raise
                logger.warning(
                    "Reading resource %s did not finish before the %gs deadline",
                    resource_id,
                    timeout,
                )
                raise ReconcileTimeoutError(resource_id, last_state, targets, timeout) from exc

            state = last_state = _state_value(resource.state)
            category = classify_state(state)

            if category is StateClass.FAILED:
                logger.warning(
                    "Resource %s failed: %s", resource_id, resource.failure_detail or "None"
                )
                raise ResourceFailedError(resource_id, resource.failure_detail)

            if state in targets:
                logger.debug("Resource %s reached state %s", resource_id, state)
                return resource

            if category is not StateClass.TRANSITIONAL:
                raise UnexpectedStateError(resource_id, str(state), targets)

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ReconcileTimeoutError(resource_id, state, targets, timeout)

            delay = min(self.poll_delay(attempt), remaining)
            logger.debug(
                "Resource %s is %s, expected %s; next read in %.2fs",
                resource_id,
                state,
                sorted(targets),
                delay,
            )
            await self._sleep(delay)
            attempt += 1
