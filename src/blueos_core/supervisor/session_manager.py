"""Session management for core services."""

from typing import Dict, List, Mapping, Optional, Protocol, Sequence

import structlog

from blueos_core.core.exceptions import SessionError
from .models import SessionHandle, SessionState

logger = structlog.get_logger()


class SessionBackend(Protocol):
    """Durable, named execution sessions (tmux in production)."""

    async def start_server(self) -> None: ...

    async def has_session(self, name: str) -> bool: ...

    async def new_session(self, name: str) -> str: ...

    async def session_id(self, name: str) -> Optional[str]: ...

    async def publish_environment(self, name: str, variables: Mapping[str, str]) -> None: ...

    async def send_keys(self, name: str, command: str) -> None: ...

    async def list_sessions(self) -> List[str]: ...

    def attach_argv(self, name: str) -> Sequence[str]: ...


class SessionManager:
    """Owns one durable session per service.

    Sessions are never destroyed here: they outlive the supervisor and are
    reused when the boot sequence runs again.
    """

    def __init__(self, backend: SessionBackend):
        self.backend = backend
        self.sessions: Dict[str, SessionHandle] = {}

    async def start(self) -> None:
        """Start the session server."""
        logger.info("Starting session server")
        await self.backend.start_server()

    async def ensure_session(self, name: str) -> SessionHandle:
        """Return the session named ``name``, creating it if needed."""
        handle = self.sessions.get(name)

        if await self.backend.has_session(name):
            if handle is None or handle.state == SessionState.DEAD:
                handle = await self._adopt(name)
            return handle

        try:
            session_id = await self.backend.new_session(name)
        except SessionError:
            # Someone else created it since the check above
            if not await self.backend.has_session(name):
                raise
            return await self._adopt(name)

        handle = SessionHandle(name=name, state=SessionState.CREATED, session_id=session_id or None)
        self.sessions[name] = handle
        logger.info("Created session", session=name, session_id=handle.session_id)
        return handle

    async def _adopt(self, name: str) -> SessionHandle:
        handle = SessionHandle(
            name=name,
            state=SessionState.DETACHED,
            session_id=await self.backend.session_id(name),
        )
        self.sessions[name] = handle
        logger.info("Reusing existing session", session=name, session_id=handle.session_id)
        return handle

    async def publish_environment(self, handle: SessionHandle, variables: Mapping[str, str]) -> None:
        self._check_alive(handle)
        await self.backend.publish_environment(handle.name, variables)

    async def send_command(self, handle: SessionHandle, command: str) -> None:
        """Type ``command`` into the session and press Enter.

        Returns as soon as the keys are submitted; the command keeps running
        in the session.
        """
        self._check_alive(handle)
        await self.backend.send_keys(handle.name, command)
        handle.commands_sent += 1
        handle.state = SessionState.RUNNING

    async def refresh(self, handle: SessionHandle) -> SessionHandle:
        """Mark the handle dead if its session disappeared."""
        if not await self.backend.has_session(handle.name):
            if handle.state != SessionState.DEAD:
                logger.warning("Session is gone", session=handle.name)
            handle.state = SessionState.DEAD
        return handle

    async def live_sessions(self) -> List[str]:
        return await self.backend.list_sessions()

    def attach_command(self, name: str) -> Sequence[str]:
        """Command line an operator runs to re-attach to ``name``."""
        return self.backend.attach_argv(name)

    def get_session_status(self) -> Dict[str, Dict]:
        """Get status of all sessions known to this manager."""
        return {
            name: {
                "state": handle.state.value,
                "session_id": handle.session_id,
                "commands_sent": handle.commands_sent,
            }
            for name, handle in self.sessions.items()
        }

    @staticmethod
    def _check_alive(handle: SessionHandle) -> None:
        if not handle.is_alive:
            raise SessionError(f"Session {handle.name} is dead", code="session_dead")
