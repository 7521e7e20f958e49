"""Domain Types - rich types that replace bare primitives across the codebase.

Invariants:
    - Tier is resolved once from the environment name and never changes at runtime
    - SecurityContext keys are PostgreSQL custom setting names (contain a dot)
    - Lifecycle transitions only follow ALLOWED_TRANSITIONS
    - All valid states encoded as Enums, no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str/int Enums: serialize to JSON and to process exit status without converters
"""

from enum import Enum, IntEnum
from typing import NewType, Union


# ─── Value Types ─────────────────────────────────────────────────

ConnectionLabel = NewType("ConnectionLabel", str)
SettingName = NewType("SettingName", str)       # e.g. "user.id"

SettingValue = Union[str, int]
SecurityContext = dict[str, SettingValue]

SUBJECT_SETTING = SettingName("user.id")
TENANT_SETTING = SettingName("user.tenant_id")


# ─── Enums ───────────────────────────────────────────────────────

class Tier(str, Enum):
    """Deployment tier. Anything other than "production" is non-production."""
    PRODUCTION = "production"
    NON_PRODUCTION = "non_production"

    @classmethod
    def from_environment_name(cls, name: str | None) -> "Tier":
        if (name or "").strip().lower() == "production":
            return cls.PRODUCTION
        return cls.NON_PRODUCTION

    @property
    def is_production(self) -> bool:
        return self is Tier.PRODUCTION


class LifecycleState(str, Enum):
    """Process lifecycle, supervised by the LifecycleController."""
    STARTING = "starting"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"


class ExitCode(IntEnum):
    """Process exit status (values follow sysexits.h)."""
    OK = 0
    POOL_FAULT = 69       # EX_UNAVAILABLE
    CONFIG_ERROR = 78     # EX_CONFIG


ALLOWED_TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    LifecycleState.STARTING: frozenset({
        LifecycleState.SERVING, LifecycleState.DRAINING,
    }),
    LifecycleState.SERVING: frozenset({LifecycleState.DRAINING}),
    LifecycleState.DRAINING: frozenset({LifecycleState.STOPPED}),
    LifecycleState.STOPPED: frozenset(),
}


def can_transition(current: LifecycleState, target: LifecycleState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]
