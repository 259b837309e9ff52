"""Static service table of the BlueOS core."""

import re
from pathlib import Path
from string import Template
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import yaml

from blueos_core.core.exceptions import ConfigurationError
from .models import ServiceSpec, Tier

ServiceEntry = Union[ServiceSpec, Tuple[str, str]]

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


# Launched first, in this order. The camera manager expects the autopilot
# routing to come up before it.
DEFAULT_PRIORITY_SERVICES: Tuple[Tuple[str, str], ...] = (
    ("autopilot", "$SERVICES_PATH/ardupilot_manager/main.py"),
    ("cable_guy", "$SERVICES_PATH/cable_guy/main.py"),
    ("video", "nice --19 $SERVICES_PATH/camera_manager/main.py"),
    (
        "mavlink2rest",
        "mavlink2rest --connect=udpin:127.0.0.1:14000 --server 0.0.0.0:6040"
        " --system-id $MAV_SYSTEM_ID --component-id $MAV_COMPONENT_ID_ONBOARD_COMPUTER4",
    ),
)

DEFAULT_STANDARD_SERVICES: Tuple[Tuple[str, str], ...] = (
    ("beacon", "$SERVICES_PATH/beacon/main.py"),
    ("bridget", "nice -19 $SERVICES_PATH/bridget/main.py"),
    ("commander", "$SERVICES_PATH/commander/main.py"),
    ("nmea_injector", "nice -19 $SERVICES_PATH/nmea_injector/nmea_injector/main.py"),
    ("helper", "$SERVICES_PATH/helper/main.py"),
    ("iperf3", "iperf3 --server --port 5201"),
    ("linux2rest", "linux2rest"),
    (
        "filebrowser",
        "nice -19 filebrowser --database /etc/filebrowser/filebrowser.db --baseurl /file-browser",
    ),
    ("versionchooser", "$SERVICES_PATH/versionchooser/main.py"),
    ("pardal", "nice -19 $SERVICES_PATH/pardal/main.py"),
    ("ping", "nice -19 $SERVICES_PATH/ping/main.py"),
    ("user_terminal", "cat /etc/motd"),
    (
        "ttyd",
        'nice -19 ttyd -p 8088 sh -c "/usr/bin/tmux attach -t user_terminal'
        ' || /usr/bin/tmux new -s user_terminal"',
    ),
    ("nginx", 'nice -18 nginx -g "daemon off;" -c $TOOLS_PATH/nginx/nginx.conf'),
    (
        "log_zipper",
        "nice -20 $SERVICES_PATH/log_zipper/main.py '/shortcuts/system_logs/**/*.log'"
        " --max-age-minutes 60",
    ),
    ("bag_of_holding", "$SERVICES_PATH/bag_of_holding/main.py"),
    ("kraken", "nice -19 $SERVICES_PATH/kraken/main.py"),
    ("wifi", "nice -19 $SERVICES_PATH/wifi/main.py --socket wlan0"),
)


class ServiceRegistry:
    """Read-only, ordered table of priority and standard services.

    Commands may reference ``$NAME`` placeholders; they are resolved once,
    at load, against ``variables``. Unknown placeholders are left untouched
    so the session shell can still expand them.
    """

    def __init__(
        self,
        priority: Iterable[ServiceEntry] = (),
        standard: Iterable[ServiceEntry] = (),
        variables: Optional[Mapping[str, str]] = None,
    ):
        variables = dict(variables or {})
        self._priority = tuple(self._build(entry, Tier.PRIORITY, variables) for entry in priority)
        self._standard = tuple(self._build(entry, Tier.STANDARD, variables) for entry in standard)
        self._validate()

    @classmethod
    def default(cls, variables: Optional[Mapping[str, str]] = None) -> "ServiceRegistry":
        """Built-in BlueOS core service table."""
        return cls(DEFAULT_PRIORITY_SERVICES, DEFAULT_STANDARD_SERVICES, variables)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], variables: Optional[Mapping[str, str]] = None) -> "ServiceRegistry":
        """Load a table shaped as ``{priority: [{name, command}], standard: [...]}``."""
        path = Path(path)
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Service table not found: {path}", code="registry_missing")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid service table {path}: {e}", code="registry_invalid")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Service table {path} must be a mapping", code="registry_invalid")

        unknown = set(data) - {"priority", "standard"}
        if unknown:
            raise ConfigurationError(
                f"Unknown service groups in {path}: {', '.join(sorted(unknown))}",
                code="registry_invalid",
            )

        return cls(
            cls._read_group(data.get("priority"), "priority"),
            cls._read_group(data.get("standard"), "standard"),
            variables,
        )

    @staticmethod
    def _read_group(entries, group: str) -> List[Tuple[str, str]]:
        if entries is None:
            return []
        if not isinstance(entries, list):
            raise ConfigurationError(f"'{group}' must be a list of services", code="registry_invalid")
        pairs = []
        for entry in entries:
            if not isinstance(entry, dict) or "name" not in entry or "command" not in entry:
                raise ConfigurationError(
                    f"Every '{group}' entry needs a name and a command, got: {entry!r}",
                    code="registry_invalid",
                )
            if entry["name"] is None:
                raise ConfigurationError(f"A '{group}' entry has an empty name", code="invalid_name")
            pairs.append((str(entry["name"]), "" if entry["command"] is None else str(entry["command"])))
        return pairs

    @staticmethod
    def _build(entry: ServiceEntry, tier: Tier, variables: Dict[str, str]) -> ServiceSpec:
        if isinstance(entry, ServiceSpec):
            name, command = entry.name, entry.command
        else:
            name, command = entry
        return ServiceSpec(
            name=name,
            command=Template(command).safe_substitute(variables),
            tier=tier,
        )

    def _validate(self) -> None:
        seen = set()
        for spec in self._priority + self._standard:
            if not spec.name or not _NAME_PATTERN.match(spec.name):
                raise ConfigurationError(
                    f"Invalid service name {spec.name!r}: use letters, digits, '_' or '-'",
                    code="invalid_name",
                )
            if spec.name in seen:
                raise ConfigurationError(f"Duplicate service name: {spec.name}", code="duplicate_name")
            if not spec.command.strip():
                raise ConfigurationError(f"Service {spec.name} has an empty command", code="empty_command")
            seen.add(spec.name)

    def priority_services(self) -> Tuple[ServiceSpec, ...]:
        return self._priority

    def standard_services(self) -> Tuple[ServiceSpec, ...]:
        return self._standard

    def names(self) -> Sequence[str]:
        """All service names in launch order."""
        return [spec.name for spec in self._priority + self._standard]

    def __len__(self) -> int:
        return len(self._priority) + len(self._standard)
