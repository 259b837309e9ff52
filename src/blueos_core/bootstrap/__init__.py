"""One-shot host preparation run before any service starts."""

from .bootstrapper import Bootstrapper, BootstrapReport, StepOutcome, StepResult
from .steps import BootstrapStep, DnsResolverSyncStep, DockerSocketPermissionStep, HardwareIdentityStep, default_steps

__all__ = [
    "Bootstrapper",
    "BootstrapReport",
    "StepOutcome",
    "StepResult",
    "BootstrapStep",
    "DnsResolverSyncStep",
    "DockerSocketPermissionStep",
    "HardwareIdentityStep",
    "default_steps",
]
