"""BlueOS Core Supervisor - boots the core service fleet into tmux sessions."""

__version__ = "0.1.0"
__author__ = "BlueOS Core Team"

from blueos_core.core.config import Settings
from blueos_core.supervisor.models import ServiceSpec, SessionHandle, Tier

__all__ = ["Settings", "ServiceSpec", "SessionHandle", "Tier", "__version__"]
