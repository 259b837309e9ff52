"""Core supervisor - tiered launch of services into durable sessions."""

from .supervisor import Supervisor
from .scheduler import PriorityScheduler
from .session_manager import SessionManager
from .registry import ServiceRegistry

__all__ = ["Supervisor", "PriorityScheduler", "SessionManager", "ServiceRegistry"]
