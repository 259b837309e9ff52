"""Host preparation steps.

Every step is idempotent: the container start script may run again after
a restart, against a host that was already prepared.
"""

import os
import platform
import subprocess
import tempfile
import uuid
from pathlib import Path
from typing import Callable, Dict, List, Optional

import psutil

from blueos_core.core.config import Settings

# Interfaces created by Docker, VPNs or the kernel, their MACs change across boots
VIRTUAL_INTERFACE_PREFIXES = ("lo", "docker", "br-", "veth", "virbr", "tun", "tap", "wg", "zt", "dummy")

# Fixed namespace so the same fingerprint always yields the same identifier
HARDWARE_ID_NAMESPACE = uuid.UUID("d7a1c7e4-3b5f-4f0e-9a57-0b1e05c0e000")


class BootstrapStep:
    """Base class for bootstrap steps."""

    name = "step"

    def precondition(self) -> Optional[str]:
        """Return why the step cannot run, or None when it can."""
        return None

    def apply(self) -> str:
        """Perform the step and describe what was done."""
        raise NotImplementedError


class DockerSocketPermissionStep(BootstrapStep):
    """Make the Docker socket reachable by nginx."""

    name = "docker_socket_permissions"

    def __init__(self, socket_path: Path, mode: int = 0o777):
        self.socket_path = Path(socket_path)
        self.mode = mode

    def precondition(self) -> Optional[str]:
        if not self.socket_path.exists():
            return f"Docker socket {self.socket_path} does not exist"
        return None

    def apply(self) -> str:
        os.chmod(self.socket_path, self.mode)
        return f"{self.socket_path} set to {oct(self.mode)}"


def _cpu_identifier() -> str:
    try:
        with open("/proc/cpuinfo") as cpuinfo:
            fields = {}
            for line in cpuinfo:
                key, _, value = line.partition(":")
                fields.setdefault(key.strip().lower(), value.strip())
    except OSError:
        fields = {}
    # Raspberry Pi boards expose a unique serial, x86 only a model name
    return fields.get("serial") or fields.get("model name") or platform.processor() or "unknown"


def _is_burned_in(mac: str) -> bool:
    octets = mac.split(":")
    if len(octets) != 6 or mac == "00:00:00:00:00:00":
        return False
    try:
        first = int(octets[0], 16)
    except ValueError:
        return False
    # Locally administered bit: randomized or assigned by software
    return not first & 0x02


def _mac_address() -> str:
    """MAC of the first physical interface, by name."""
    interfaces = psutil.net_if_addrs()
    for interface in sorted(interfaces):
        if interface.startswith(VIRTUAL_INTERFACE_PREFIXES):
            continue
        for address in interfaces[interface]:
            mac = (address.address or "").lower().replace("-", ":")
            if address.family == psutil.AF_LINK and _is_burned_in(mac):
                return mac
    return "unknown"


def collect_fingerprint() -> Dict[str, str]:
    """Host fingerprint used to derive the hardware identifier."""
    return {
        "cpu_cores": str(psutil.cpu_count(logical=True) or 0),
        "cpu_id": _cpu_identifier(),
        "mac_address": _mac_address(),
    }


def hardware_id(fingerprint: Dict[str, str]) -> str:
    material = "|".join(f"{key}={fingerprint[key]}" for key in sorted(fingerprint))
    return str(uuid.uuid5(HARDWARE_ID_NAMESPACE, material))


class HardwareIdentityStep(BootstrapStep):
    """Persist a stable hardware identifier into the configuration directory."""

    name = "hardware_identity"

    def __init__(
        self,
        config_dir: Path,
        filename: str = "hardware-uuid",
        fingerprint: Optional[Callable[[], Dict[str, str]]] = None,
    ):
        self.config_dir = Path(config_dir)
        self.filename = filename
        self.fingerprint = fingerprint or collect_fingerprint

    @property
    def target(self) -> Path:
        return self.config_dir / self.filename

    def precondition(self) -> Optional[str]:
        if not self.config_dir.is_dir():
            return f"Configuration directory {self.config_dir} does not exist"
        return None

    def apply(self) -> str:
        identifier = hardware_id(self.fingerprint())
        content = f"{identifier}\n"
        if self.target.exists() and self.target.read_text() == content:
            return f"{self.target} already up to date"
        self._write(content)
        return f"wrote {identifier} to {self.target}"

    def _write(self, content: str) -> None:
        # Readers never see a partially written identifier
        fd, tmp_name = tempfile.mkstemp(dir=self.config_dir, prefix=f".{self.filename}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as tmp_file:
                tmp_file.write(content)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, self.target)
        except Exception:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


class DnsResolverSyncStep(BootstrapStep):
    """Link the container resolver file to the host one so DNS changes show up live."""

    name = "dns_resolver_sync"

    def __init__(self, host_resolv_conf: Path, resolv_conf: Path):
        self.host_resolv_conf = Path(host_resolv_conf)
        self.resolv_conf = Path(resolv_conf)

    def precondition(self) -> Optional[str]:
        if not self.host_resolv_conf.is_file():
            return f"Host resolver file {self.host_resolv_conf} does not exist, local DNS may go stale"
        return None

    def apply(self) -> str:
        if self.resolv_conf.is_symlink() and os.readlink(self.resolv_conf) == str(self.host_resolv_conf):
            return f"{self.resolv_conf} already links to {self.host_resolv_conf}"

        # Docker bind-mounts its own copy over the file
        if os.path.ismount(self.resolv_conf):
            subprocess.run(["umount", str(self.resolv_conf)], check=True, capture_output=True)
        if self.resolv_conf.is_symlink() or self.resolv_conf.exists():
            self.resolv_conf.unlink()
        self.resolv_conf.symlink_to(self.host_resolv_conf)
        return f"{self.resolv_conf} -> {self.host_resolv_conf}"


def default_steps(settings: Settings) -> List[BootstrapStep]:
    """Bootstrap steps in the order they must run."""
    return [
        DockerSocketPermissionStep(settings.docker_socket_path),
        HardwareIdentityStep(settings.config_dir, settings.hardware_id_filename),
        DnsResolverSyncStep(settings.host_resolv_conf, settings.resolv_conf),
    ]
