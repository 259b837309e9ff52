"""Tiered launch of the core services."""

import asyncio
from enum import Enum
from types import MappingProxyType
from typing import Awaitable, Callable, Mapping, Optional, Sequence

import structlog

from blueos_core.bootstrap import Bootstrapper, BootstrapReport
from blueos_core.core.exceptions import BootstrapError
from blueos_core.utils.boot_timeline import BootTimeline
from blueos_core.utils.logging import bind_service_context
from .environment import EnvironmentPropagator
from .models import ServiceSpec, SessionHandle
from .registry import ServiceRegistry
from .session_manager import SessionManager

logger = structlog.get_logger()


class SchedulerState(Enum):
    INIT = "init"
    BOOTSTRAP_DONE = "bootstrap_done"
    PRIORITY_LAUNCHING = "priority_launching"
    SETTLING = "settling"
    STANDARD_LAUNCHING = "standard_launching"
    COMPLETE = "complete"


class PriorityScheduler:
    """Boots the host, then launches priority services, settles, and launches the rest.

    Launches are strictly sequential and never wait for the service itself:
    a command that fails after being sent is only visible in its session.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        bootstrapper: Bootstrapper,
        sessions: SessionManager,
        propagator: EnvironmentPropagator,
        environment: Mapping[str, str],
        settle_delay_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self.bootstrapper = bootstrapper
        self.sessions = sessions
        self.propagator = propagator
        self.environment = MappingProxyType(dict(environment))
        self.settle_delay_seconds = settle_delay_seconds
        self._sleep = sleep
        self.state = SchedulerState.INIT
        self.timeline = BootTimeline(initial_state=self.state.value)
        self.bootstrap_report: Optional[BootstrapReport] = None

    async def run(self) -> None:
        """Run the whole sequence; raises BootstrapError before any launch on a fatal step."""
        self.state = SchedulerState.INIT
        self.timeline = BootTimeline(initial_state=self.state.value)
        report = self.bootstrapper.run()
        self.bootstrap_report = report
        if not report.ok:
            fatal = report.fatal
            raise BootstrapError(f"Bootstrap step {fatal.step} failed: {fatal.reason}", code=fatal.step)
        self._enter(SchedulerState.BOOTSTRAP_DONE)
        for warning in report.warnings:
            logger.warning("Running with degraded environment", warning=warning)

        await self.sessions.start()

        logger.info("Starting high priority services")
        self._enter(SchedulerState.PRIORITY_LAUNCHING)
        await self._launch_all(self.registry.priority_services())

        self._enter(SchedulerState.SETTLING)
        logger.info("Waiting for priority services to settle", seconds=self.settle_delay_seconds)
        await self._sleep(self.settle_delay_seconds)

        logger.info("Starting other services")
        self._enter(SchedulerState.STANDARD_LAUNCHING)
        await self._launch_all(self.registry.standard_services())

        self._enter(SchedulerState.COMPLETE)
        logger.info("BlueOS running", services=len(self.registry), boot=self.timeline.to_dict())

    def _enter(self, state: SchedulerState) -> None:
        self.state = state
        self.timeline.mark(state.value)

    async def _launch_all(self, services: Sequence[ServiceSpec]) -> None:
        for spec in services:
            await self.launch(spec)

    async def launch(self, spec: ServiceSpec) -> SessionHandle:
        """Ensure the session, publish its environment, then send the command."""
        with bind_service_context(spec.name, spec.tier):
            logger.info("Launching service", name=spec.name, command=spec.command)
            handle = await self.sessions.ensure_session(spec.name)
            snapshot = self.propagator.compute_snapshot(self.environment)
            await self.propagator.publish(handle, snapshot)
            await self.sessions.send_command(handle, spec.command)
        return handle
