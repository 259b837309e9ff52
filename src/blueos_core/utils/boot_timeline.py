"""Timing of the launch sequence."""

from dataclasses import dataclass, field
from time import perf_counter_ns
from typing import Dict, List, Optional, Tuple


@dataclass
class BootTimeline:
    """When the scheduler entered each of its states.

    A state lasts until the next one is entered, so the final state has no
    duration of its own and closes the timeline.
    """

    initial_state: str = "init"
    started_ns: int = field(default_factory=perf_counter_ns)
    transitions: List[Tuple[str, int]] = field(default_factory=list)

    def mark(self, state: str) -> None:
        self.transitions.append((state, perf_counter_ns()))

    @property
    def current(self) -> str:
        return self.transitions[-1][0] if self.transitions else self.initial_state

    def durations_ms(self) -> Dict[str, float]:
        durations: Dict[str, float] = {}
        state, since = self.initial_state, self.started_ns
        for next_state, at in self.transitions:
            durations[state] = durations.get(state, 0.0) + (at - since) / 1_000_000.0
            state, since = next_state, at
        return durations

    @property
    def total_ms(self) -> Optional[float]:
        if not self.transitions:
            return None
        return (self.transitions[-1][1] - self.started_ns) / 1_000_000.0

    def to_dict(self) -> Dict:
        return {
            "state": self.current,
            "total_ms": self.total_ms,
            "states_ms": self.durations_ms(),
        }
