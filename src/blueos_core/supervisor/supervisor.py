"""Main BlueOS core supervisor."""

import asyncio
import os
import signal
from typing import Mapping, Optional

import structlog

from blueos_core.bootstrap import Bootstrapper, default_steps
from blueos_core.core.config import Settings
from .environment import EnvironmentPropagator
from .registry import ServiceRegistry
from .scheduler import PriorityScheduler
from .session_manager import SessionBackend, SessionManager
from .tmux import TmuxBackend

logger = structlog.get_logger()


class Supervisor:
    """Wires the registry, bootstrapper and sessions, then stays resident.

    Stopping the supervisor never touches the sessions: services keep
    running in the tmux server.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[ServiceRegistry] = None,
        backend: Optional[SessionBackend] = None,
        bootstrapper: Optional[Bootstrapper] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.settings = settings or Settings()
        environ = os.environ if environ is None else environ
        self.environment = self.settings.service_environment(environ)
        self.registry = registry or self._load_registry()
        self.backend = backend or TmuxBackend(
            binary=self.settings.tmux_binary,
            socket_name=self.settings.tmux_socket_name,
            config_file=self._tmux_config(),
            environment=self.settings.server_environment(environ),
        )
        self.sessions = SessionManager(self.backend)
        self.propagator = EnvironmentPropagator(self.sessions, prefix=self.settings.environment_prefix)
        self.scheduler = PriorityScheduler(
            registry=self.registry,
            bootstrapper=bootstrapper or Bootstrapper(default_steps(self.settings)),
            sessions=self.sessions,
            propagator=self.propagator,
            environment=self.environment,
            settle_delay_seconds=self.settings.settle_delay_seconds,
        )
        self._shutdown_event = asyncio.Event()

    def _load_registry(self) -> ServiceRegistry:
        variables = self.settings.command_variables()
        if self.settings.registry_file is not None:
            logger.info("Loading service table", path=str(self.settings.registry_file))
            return ServiceRegistry.from_yaml(self.settings.registry_file, variables)
        return ServiceRegistry.default(variables)

    def _tmux_config(self):
        config = self.settings.tmux_config
        if config is not None and config.exists():
            return config
        return None

    async def start(self) -> None:
        """Run the boot sequence."""
        logger.info("Starting BlueOS core supervisor", services=len(self.registry))

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal)

        await self.scheduler.run()

    def stop(self) -> None:
        """Leave the resident loop; sessions stay alive."""
        logger.info("Stopping BlueOS core supervisor, sessions keep running")
        self._shutdown_event.set()

    def _handle_signal(self):
        logger.info("Received shutdown signal")
        self.stop()

    async def wait_for_shutdown(self):
        await self._shutdown_event.wait()

    async def serve(self) -> None:
        """Boot, launch every service and remain in the foreground."""
        await self.start()
        await self.wait_for_shutdown()

    async def status(self) -> dict:
        """Liveness of every registered service session."""
        live = set(await self.sessions.live_sessions())
        return {name: name in live for name in self.registry.names()}
