"""Tests for the tiered launch sequence."""

import asyncio
import time

import pytest

from conftest import FakeSessionBackend
from blueos_core.bootstrap import Bootstrapper, BootstrapStep, default_steps
from blueos_core.core.exceptions import BootstrapError
from blueos_core.supervisor.environment import EnvironmentPropagator
from blueos_core.supervisor.registry import ServiceRegistry
from blueos_core.supervisor.scheduler import PriorityScheduler, SchedulerState
from blueos_core.supervisor.session_manager import SessionManager


ENVIRONMENT = {"FOO": "1", "MAV_SYSTEM_ID": "1", "MAV_COMPONENT_ID_ONBOARD_COMPUTER4": "194"}


def make_scheduler(registry, backend, bootstrapper, sleep, settle=5.0, environment=ENVIRONMENT):
    sessions = SessionManager(backend)
    return PriorityScheduler(
        registry=registry,
        bootstrapper=bootstrapper,
        sessions=sessions,
        propagator=EnvironmentPropagator(sessions, prefix="MAV_"),
        environment=environment,
        settle_delay_seconds=settle,
        sleep=sleep,
    )


class BrokenStep(BootstrapStep):
    name = "broken"

    def apply(self) -> str:
        raise PermissionError("operation not permitted")


@pytest.mark.asyncio
class TestPriorityScheduler:
    """Test ordering, settling and failure handling."""

    async def test_end_to_end_order(self, backend, events, recording_sleep, empty_bootstrapper):
        registry = ServiceRegistry(priority=[("video", "cmd_v")], standard=[("helper", "cmd_h")])
        scheduler = make_scheduler(registry, backend, empty_bootstrapper, recording_sleep, environment={})

        await scheduler.run()

        assert events == [
            ("start_server",),
            ("new", "video"),
            ("send", "video", "cmd_v"),
            ("sleep", 5.0),
            ("new", "helper"),
            ("send", "helper", "cmd_h"),
        ]
        assert scheduler.state == SchedulerState.COMPLETE

    async def test_environment_published_before_command(self, backend, events, recording_sleep, empty_bootstrapper):
        registry = ServiceRegistry(priority=[("video", "cmd_v")])
        scheduler = make_scheduler(registry, backend, empty_bootstrapper, recording_sleep)

        await scheduler.run()

        video = [e for e in events if len(e) > 1 and e[1] == "video"]
        assert video[0] == ("new", "video")
        assert video[-1] == ("send", "video", "cmd_v")
        assert {e[2]: e[3] for e in video if e[0] == "setenv"} == {
            "MAV_SYSTEM_ID": "1",
            "MAV_COMPONENT_ID_ONBOARD_COMPUTER4": "194",
        }
        assert backend.environments["video"] == {
            "MAV_SYSTEM_ID": "1",
            "MAV_COMPONENT_ID_ONBOARD_COMPUTER4": "194",
        }

    async def test_all_priority_sent_before_any_standard_created(
        self, backend, events, recording_sleep, empty_bootstrapper
    ):
        registry = ServiceRegistry(
            priority=[("autopilot", "a"), ("cable_guy", "c"), ("video", "v")],
            standard=[("beacon", "b"), ("helper", "h")],
        )
        scheduler = make_scheduler(registry, backend, empty_bootstrapper, recording_sleep)

        await scheduler.run()

        first_standard = events.index(("new", "beacon"))
        for name, command in (("autopilot", "a"), ("cable_guy", "c"), ("video", "v")):
            assert events.index(("send", name, command)) < first_standard
            assert backend.keys[name] == [command]
        assert [e[1] for e in events if e[0] == "new"] == ["autopilot", "cable_guy", "video", "beacon", "helper"]

    async def test_settle_delay_elapses_between_tiers(self, empty_bootstrapper):
        registry = ServiceRegistry(priority=[("video", "cmd_v")], standard=[("helper", "cmd_h")])
        stamps = {}

        class StampingBackend(FakeSessionBackend):
            async def send_keys(self, name, command):
                stamps[name] = time.monotonic()
                await super().send_keys(name, command)

            async def new_session(self, name):
                stamps.setdefault(f"new:{name}", time.monotonic())
                return await super().new_session(name)

        scheduler = make_scheduler(registry, StampingBackend(), empty_bootstrapper, sleep=asyncio.sleep, settle=0.2)

        await scheduler.run()

        assert stamps["new:helper"] - stamps["video"] >= 0.19

    async def test_fatal_bootstrap_aborts_before_any_session(self, backend, events, recording_sleep):
        registry = ServiceRegistry(priority=[("video", "cmd_v")], standard=[("helper", "cmd_h")])
        scheduler = make_scheduler(registry, backend, Bootstrapper([BrokenStep()]), recording_sleep)

        with pytest.raises(BootstrapError) as exc_info:
            await scheduler.run()

        assert exc_info.value.code == "broken"
        assert events == []
        assert scheduler.state == SchedulerState.INIT

    async def test_skipped_steps_do_not_abort(self, backend, recording_sleep, settings):
        registry = ServiceRegistry(priority=[("video", "cmd_v")])
        scheduler = make_scheduler(registry, backend, Bootstrapper(default_steps(settings)), recording_sleep)

        await scheduler.run()

        assert scheduler.state == SchedulerState.COMPLETE
        assert len(scheduler.bootstrap_report.warnings) == 3

    async def test_rerun_reuses_sessions(self, events, recording_sleep, empty_bootstrapper):
        backend = FakeSessionBackend(events=events)
        registry = ServiceRegistry(priority=[("video", "cmd_v")], standard=[("helper", "cmd_h")])

        await make_scheduler(registry, backend, empty_bootstrapper, recording_sleep).run()
        await make_scheduler(registry, backend, empty_bootstrapper, recording_sleep).run()

        assert [e for e in events if e[0] == "new"] == [("new", "video"), ("new", "helper")]
        assert sorted(backend.environments) == ["helper", "video"]

    async def test_timeline_follows_state_transitions(self, backend, recording_sleep, empty_bootstrapper):
        registry = ServiceRegistry(priority=[("video", "cmd_v")])
        scheduler = make_scheduler(registry, backend, empty_bootstrapper, recording_sleep)

        await scheduler.run()

        boot = scheduler.timeline.to_dict()
        assert [state for state, _ in scheduler.timeline.transitions] == [
            "bootstrap_done",
            "priority_launching",
            "settling",
            "standard_launching",
            "complete",
        ]
        assert list(boot["states_ms"]) == [
            "init",
            "bootstrap_done",
            "priority_launching",
            "settling",
            "standard_launching",
        ]
        assert boot["state"] == "complete"
        assert boot["total_ms"] >= sum(boot["states_ms"].values()) - 1e-6

    async def test_failed_bootstrap_leaves_timeline_at_init(self, backend, recording_sleep):
        scheduler = make_scheduler(
            ServiceRegistry(priority=[("video", "cmd_v")]), backend, Bootstrapper([BrokenStep()]), recording_sleep
        )

        with pytest.raises(BootstrapError):
            await scheduler.run()

        assert scheduler.timeline.to_dict() == {"state": "init", "total_ms": None, "states_ms": {}}

