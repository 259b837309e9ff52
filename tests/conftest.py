"""
Pytest configuration and fixtures for supervisor tests.
"""

import os
from typing import Dict, List, Mapping, Optional

import pytest

from blueos_core.bootstrap import Bootstrapper
from blueos_core.core.config import Settings


class FakeSessionBackend:
    """In-memory session backend recording every call in order."""

    def __init__(self, existing: Optional[List[str]] = None, events: Optional[list] = None):
        self.events = events if events is not None else []
        self.environments: Dict[str, Dict[str, str]] = {name: {} for name in existing or []}
        self.keys: Dict[str, List[str]] = {name: [] for name in existing or []}
        self.server_started = False
        self._next_id = 0

    async def start_server(self) -> None:
        self.server_started = True
        self.events.append(("start_server",))

    async def has_session(self, name: str) -> bool:
        return name in self.environments

    async def new_session(self, name: str) -> str:
        assert name not in self.environments, f"duplicate session {name}"
        self.environments[name] = {}
        self.keys[name] = []
        self.events.append(("new", name))
        self._next_id += 1
        return f"${self._next_id}"

    async def session_id(self, name: str) -> Optional[str]:
        return "$existing" if name in self.environments else None

    async def publish_environment(self, name: str, variables: Mapping[str, str]) -> None:
        for key, value in variables.items():
            self.environments[name][key] = value
            self.events.append(("setenv", name, key, value))

    async def send_keys(self, name: str, command: str) -> None:
        self.keys[name].append(command)
        self.events.append(("send", name, command))

    async def list_sessions(self) -> List[str]:
        return list(self.environments)

    def attach_argv(self, name: str):
        return ["tmux", "attach-session", "-t", f"={name}"]

    def kill(self, name: str) -> None:
        del self.environments[name]


class RecordingSleep:
    """Replaces asyncio.sleep and records into a shared event list."""

    def __init__(self, events: list):
        self.events = events
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.events.append(("sleep", seconds))


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def backend(events) -> FakeSessionBackend:
    return FakeSessionBackend(events=events)


@pytest.fixture
def recording_sleep(events) -> RecordingSleep:
    return RecordingSleep(events)


@pytest.fixture
def empty_bootstrapper() -> Bootstrapper:
    return Bootstrapper([])


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing every host path inside tmp_path."""
    return Settings(
        _env_file=None,
        docker_socket_path=tmp_path / "docker.sock",
        config_dir=tmp_path / "etc" / "blueos",
        host_resolv_conf=tmp_path / "host" / "resolv.conf",
        resolv_conf=tmp_path / "resolv.conf",
        tmux_config=None,
        settle_delay_seconds=0,
    )


@pytest.fixture(autouse=True)
def clear_blueos_environment(monkeypatch):
    """Keep host BLUEOS_* variables out of Settings built by tests."""
    for key in list(os.environ):
        if key.startswith("BLUEOS_"):
            monkeypatch.delenv(key)
