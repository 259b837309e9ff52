"""Propagation of domain variables into service sessions."""

import re
from typing import Mapping

import structlog

from .models import EnvironmentSnapshot, SessionHandle
from .session_manager import SessionManager

logger = structlog.get_logger()

# Names a POSIX shell accepts in ``export``
SHELL_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class EnvironmentPropagator:
    """Publishes the ``prefix``-named variables into every session.

    Everything else in the host environment is withheld.
    """

    def __init__(self, sessions: SessionManager, prefix: str = "MAV_"):
        self.sessions = sessions
        self.prefix = prefix

    def compute_snapshot(self, environment: Mapping[str, str]) -> EnvironmentSnapshot:
        return EnvironmentSnapshot(
            {
                key: value
                for key, value in environment.items()
                if key.startswith(self.prefix) and SHELL_NAME_PATTERN.match(key)
            }
        )

    async def publish(self, handle: SessionHandle, snapshot: EnvironmentSnapshot) -> None:
        await self.sessions.publish_environment(handle, snapshot)
        logger.debug("Published environment", session=handle.name, keys=sorted(snapshot))
