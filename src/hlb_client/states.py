"""Resource lifecycle states reported by the control plane.

Transitions driven by the backend::

    pending_creation -> creating -> active
    active -> pending_update -> updating -> active
    active -> pending_delete -> deleting -> deleted
    (any pending/transitional state) -> failed

Only ``active``, ``deleted`` and ``failed`` are decision points for callers.
"""

from __future__ import annotations

import enum


class ResourceState(str, enum.Enum):
    PENDING_CREATION = "pending_creation"
    CREATING = "creating"
    ACTIVE = "active"
    PENDING_UPDATE = "pending_update"
    UPDATING = "updating"
    PENDING_DELETION = "pending_delete"
    DELETING = "deleting"
    DELETED = "deleted"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: str | None) -> "ResourceState | None":
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class StateClass(enum.Enum):
    TRANSITIONAL = "transitional"
    SETTLED = "settled"
    FAILED = "failed"
    UNEXPECTED = "unexpected"


_CLASSIFICATION: dict[ResourceState, StateClass] = {
    ResourceState.PENDING_CREATION: StateClass.TRANSITIONAL,
    ResourceState.CREATING: StateClass.TRANSITIONAL,
    ResourceState.PENDING_UPDATE: StateClass.TRANSITIONAL,
    ResourceState.UPDATING: StateClass.TRANSITIONAL,
    ResourceState.PENDING_DELETION: StateClass.TRANSITIONAL,
    ResourceState.DELETING: StateClass.TRANSITIONAL,
    ResourceState.ACTIVE: StateClass.SETTLED,
    ResourceState.DELETED: StateClass.SETTLED,
    ResourceState.FAILED: StateClass.FAILED,
}

# A new state must be classified here before the package can be imported.
_unclassified = set(ResourceState) - set(_CLASSIFICATION)
if _unclassified:
    raise RuntimeError(f"Unclassified resource states: {sorted(s.value for s in _unclassified)}")


def classify_state(value: str | ResourceState | None) -> StateClass:
    state = value if isinstance(value, ResourceState) else ResourceState.parse(value)
    if state is None:
        return StateClass.UNEXPECTED
    return _CLASSIFICATION[state]


def is_transitional(value: str | ResourceState | None) -> bool:
    return classify_state(value) is StateClass.TRANSITIONAL
