"""tmux session backend."""

import asyncio
import shlex
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Tuple

import structlog

from blueos_core.core.exceptions import SessionError

logger = structlog.get_logger()


def session_target(name: str) -> str:
    """Exact-match target; plain names would let tmux fall back to prefix matching."""
    return f"={name}"


def pane_target(name: str) -> str:
    """Active pane of the session's current window."""
    return f"={name}:"


def export_line(variables: Mapping[str, str]) -> str:
    """Shell line exporting ``variables``."""
    assignments = " ".join(f"{key}={shlex.quote(value)}" for key, value in sorted(variables.items()))
    return f"export {assignments}"


class TmuxBackend:
    """Runs services inside detached tmux sessions.

    Sessions belong to the tmux server, not to this process, so they keep
    running when the supervisor exits and operators can attach to them by
    name at any time.
    """

    def __init__(
        self,
        binary: str = "tmux",
        socket_name: Optional[str] = None,
        config_file: Optional[Path] = None,
        environment: Optional[Mapping[str, str]] = None,
    ):
        self.binary = binary
        self.socket_name = socket_name
        self.config_file = config_file
        # The server inherits this environment when the first command starts it
        self.environment = dict(environment) if environment is not None else None

    def _argv(self, *args: str) -> List[str]:
        argv = [self.binary]
        if self.socket_name is not None:
            argv += ["-L", self.socket_name]
        if self.config_file is not None:
            argv += ["-f", str(self.config_file)]
        argv.extend(args)
        return argv

    async def _run(self, *args: str) -> Tuple[int, str, str]:
        argv = self._argv(*args)
        logger.debug("Running tmux", argv=argv)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                env=self.environment,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise SessionError(f"Unable to run {self.binary}: {e}", code="tmux_unavailable") from e
        stdout, stderr = await proc.communicate()
        return proc.returncode, stdout.decode(errors="replace").strip(), stderr.decode(errors="replace").strip()

    async def _check(self, *args: str) -> str:
        code, out, err = await self._run(*args)
        if code != 0:
            raise SessionError(f"tmux {args[0]} failed ({code}): {err or out}", code="tmux_failed")
        return out

    async def start_server(self) -> None:
        await self._check("start-server")

    async def has_session(self, name: str) -> bool:
        code, _, _ = await self._run("has-session", "-t", session_target(name))
        return code == 0

    async def new_session(self, name: str) -> str:
        """Create a detached session and return its tmux id (``$N``)."""
        return await self._check("new-session", "-d", "-s", name, "-P", "-F", "#{session_id}")

    async def session_id(self, name: str) -> Optional[str]:
        code, out, _ = await self._run("display-message", "-p", "-t", session_target(name), "#{session_id}")
        return out if code == 0 and out else None

    async def publish_environment(self, name: str, variables: Mapping[str, str]) -> None:
        """Make ``variables`` visible in the session.

        The session environment only reaches processes tmux spawns later, so
        the variables are also exported into the shell already running in the
        pane, ahead of the service command.
        """
        for key, value in variables.items():
            await self._check("set-environment", "-t", session_target(name), key, value)
        if variables:
            await self.send_keys(name, export_line(variables))

    async def send_keys(self, name: str, command: str) -> None:
        # Literal text first so tmux never reads the command as key names
        await self._check("send-keys", "-t", pane_target(name), "-l", command)
        await self._check("send-keys", "-t", pane_target(name), "Enter")

    async def list_sessions(self) -> List[str]:
        code, out, _ = await self._run("list-sessions", "-F", "#{session_name}")
        if code != 0:
            # No server running means no sessions
            return []
        return [line for line in out.splitlines() if line]

    def attach_argv(self, name: str) -> Sequence[str]:
        return self._argv("attach-session", "-t", session_target(name))
