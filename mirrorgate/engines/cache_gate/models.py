"""Data models for the cache gate engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from mirrorgate.exceptions import InvalidTransition
from mirrorgate.models import Outcome
from mirrorgate.schemas.github import WorkflowRun


class GateState(str, enum.Enum):
    NOT_CHECKED = "not_checked"
    PRESENT = "present"
    ABSENT = "absent"
    TRIGGERING = "triggering"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset(
    {GateState.PRESENT, GateState.SUCCEEDED, GateState.FAILED, GateState.TIMED_OUT}
)

_TRANSITIONS: dict[GateState, frozenset[GateState]] = {
    GateState.NOT_CHECKED: frozenset({GateState.PRESENT, GateState.ABSENT}),
    GateState.ABSENT: frozenset({GateState.TRIGGERING}),
    # dispatch refused, or the run never showed up before the deadline
    GateState.TRIGGERING: frozenset({GateState.POLLING, GateState.FAILED, GateState.TIMED_OUT}),
    GateState.POLLING: frozenset({GateState.SUCCEEDED, GateState.FAILED, GateState.TIMED_OUT}),
}


class GateStateMachine:
    """Strictly forward state tracker for one gate invocation."""

    def __init__(self) -> None:
        self.state = GateState.NOT_CHECKED
        self.history: list[GateState] = [GateState.NOT_CHECKED]

    def advance(self, target: GateState) -> None:
        if target not in _TRANSITIONS.get(self.state, frozenset()):
            raise InvalidTransition(self.state.value, target.value)
        self.state = target
        self.history.append(target)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass(frozen=True)
class GateConfig:
    """Where the caching workflow lives and how long to wait for it."""

    owner: str
    repo: str
    scope: str
    workflow: str = "publish-to-ghp.yml"
    ref: str = "main"
    poll_interval: float = 5.0
    poll_max_interval: float = 20.0
    deadline: float = 60.0
    dispatch_grace: float = 3.0
    clock_skew: float = 10.0


@dataclass
class GateResult:
    """Terminal outcome of one gate invocation plus how it got there.

    ``outcome`` stays None until the gate reaches a terminal state.
    """

    history: list[GateState]
    outcome: Outcome | None = None
    run: WorkflowRun | None = None
    dispatched: bool = False
    warnings: list[str] = field(default_factory=list)
