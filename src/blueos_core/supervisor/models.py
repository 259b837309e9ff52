"""Data models for the core supervisor."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping, Optional


class Tier(Enum):
    """Launch group of a service."""
    PRIORITY = "priority"
    STANDARD = "standard"


class SessionState(Enum):
    """State of a service session."""
    CREATED = "created"
    RUNNING = "running"
    DETACHED = "detached"
    DEAD = "dead"


@dataclass(frozen=True)
class ServiceSpec:
    """One entry of the service table."""

    name: str
    command: str
    tier: Tier = Tier.STANDARD


@dataclass
class SessionHandle:
    """A durable session hosting one service."""

    name: str
    state: SessionState
    session_id: Optional[str] = None
    commands_sent: int = 0

    @property
    def is_alive(self) -> bool:
        """Check if the session still exists in the backend."""
        return self.state != SessionState.DEAD


@dataclass(frozen=True, eq=False)
class EnvironmentSnapshot(Mapping[str, str]):
    """Read-only set of variables published into a session."""

    variables: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))

    def __getitem__(self, key: str) -> str:
        return self.variables[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.variables)

    def __len__(self) -> int:
        return len(self.variables)
