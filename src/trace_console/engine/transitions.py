"""Enum-driven stage lifecycle rules."""

from __future__ import annotations

from dataclasses import dataclass, field

from trace_console.enums import StageStatus


@dataclass
class StageLifecycle:
    """Tracks one stage through ``pending -> running -> terminal``.

    The snapshot stays authoritative; this only reports whether a newly
    observed status is a legal successor of the last one seen.
    """

    state: StageStatus = StageStatus.PENDING
    _transitions: dict[StageStatus, tuple[StageStatus, ...]] = field(init=False)

    def __post_init__(self) -> None:
        terminal = (StageStatus.COMPLETED, StageStatus.FAILED, StageStatus.SKIPPED)
        self._transitions = {
            StageStatus.PENDING: (StageStatus.RUNNING, *terminal),
            StageStatus.RUNNING: terminal,
            StageStatus.COMPLETED: (),
            StageStatus.FAILED: (),
            StageStatus.SKIPPED: (),
        }

    def allows(self, target: StageStatus) -> bool:
        return target == self.state or target in self._transitions.get(self.state, ())

    def observe(self, target: StageStatus) -> bool:
        """Record ``target``; return False when it regresses the lifecycle."""
        if not self.allows(target):
            return False
        self.state = target
        return True

    def transition_to(self, target: StageStatus) -> None:
        """Advance to the requested status if the transition is allowed."""
        if not self.allows(target):
            raise RuntimeError(
                f"Invalid stage transition {self.state.value} -> {target.value}"
            )
        self.state = target


@dataclass
class LifecycleLedger:
    """Per-stage lifecycles for one run, fed by each applied snapshot."""

    _stages: dict[str, StageLifecycle] = field(default_factory=dict)

    def observe(self, agent: str, status: StageStatus) -> bool:
        lifecycle = self._stages.setdefault(agent, StageLifecycle())
        return lifecycle.observe(status)

    def state_of(self, agent: str) -> StageStatus:
        lifecycle = self._stages.get(agent)
        return lifecycle.state if lifecycle else StageStatus.PENDING
