"""Configuration management for the BlueOS core supervisor."""

from pathlib import Path
from typing import Dict, Mapping, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Host variables kept for the session server, everything else is withheld
SERVER_ENVIRONMENT_KEYS = ("PATH", "HOME", "SHELL", "TERM", "LANG", "LC_ALL", "USER", "LOGNAME")


class Settings(BaseSettings):
    """Supervisor configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="BLUEOS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Scheduling
    settle_delay_seconds: float = Field(
        5.0,
        description="Pause between the last priority launch and the first standard launch",
    )

    # Bootstrap preconditions
    docker_socket_path: Path = Field(
        Path("/var/run/docker.sock"),
        description="Docker socket made accessible to nginx",
    )
    config_dir: Path = Field(
        Path("/etc/blueos"),
        description="Host-shared configuration directory",
    )
    hardware_id_filename: str = Field(
        "hardware-uuid",
        description="File inside config_dir holding the derived hardware identifier",
    )
    host_resolv_conf: Path = Field(
        Path("/host/etc/resolv.conf"),
        description="Resolver file provided by the host",
    )
    resolv_conf: Path = Field(
        Path("/etc/resolv.conf"),
        description="Container-local resolver file replaced by a link to the host one",
    )

    # Environment propagated into every session
    environment_prefix: str = Field("MAV_", description="Prefix of propagated variables")
    mav_system_id: int = Field(1, description="MAVLink system id of the vehicle")
    mav_component_id: int = Field(
        194,
        description="MAVLink component id reserved for the onboard computer",
    )
    rust_backtrace: str = Field("1", description="RUST_BACKTRACE for every service")

    # Service table
    blueos_path: Path = Field(Path("/home/pi"), description="BlueOS installation root")
    registry_file: Optional[Path] = Field(
        None,
        description="Optional YAML service table replacing the built-in one",
    )

    # Session server
    tmux_binary: str = Field("tmux", description="tmux executable")
    tmux_socket_name: Optional[str] = Field(
        None,
        description="Private tmux server socket name (tmux -L), default server when unset",
    )
    tmux_config: Optional[Path] = Field(
        Path("/etc/tmux.conf"),
        description="Configuration file loaded when the tmux server starts",
    )

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")

    @field_validator("settle_delay_seconds")
    @classmethod
    def check_settle_delay(cls, v: float) -> float:
        """Reject negative settle delays."""
        if v < 0:
            raise ValueError("settle_delay_seconds cannot be negative")
        return v

    @field_validator("environment_prefix")
    @classmethod
    def check_environment_prefix(cls, v: str) -> str:
        """An empty prefix would leak the whole host environment."""
        if not v.strip():
            raise ValueError("environment_prefix cannot be empty")
        return v

    @field_validator("log_format")
    @classmethod
    def check_log_format(cls, v: str) -> str:
        if v not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got: {v}")
        return v

    @property
    def services_path(self) -> Path:
        return self.blueos_path / "services"

    @property
    def tools_path(self) -> Path:
        return self.blueos_path / "tools"

    @property
    def hardware_id_path(self) -> Path:
        return self.config_dir / self.hardware_id_filename

    def base_exports(self) -> Dict[str, str]:
        """Variables the supervisor itself exports to every service."""
        return {
            "MAV_SYSTEM_ID": str(self.mav_system_id),
            "MAV_COMPONENT_ID_ONBOARD_COMPUTER4": str(self.mav_component_id),
            "RUST_BACKTRACE": self.rust_backtrace,
        }

    def service_environment(self, environ: Mapping[str, str]) -> Dict[str, str]:
        """Host environment overlaid with the supervisor exports."""
        environment = dict(environ)
        environment.update(self.base_exports())
        return environment

    def server_environment(self, environ: Mapping[str, str]) -> Dict[str, str]:
        """Environment the tmux server starts with.

        Only the variables a login shell needs, plus the non-prefixed exports.
        Prefixed variables reach the services through session publishing.
        """
        environment = {key: environ[key] for key in SERVER_ENVIRONMENT_KEYS if key in environ}
        environment.update(
            {key: value for key, value in self.base_exports().items() if not key.startswith(self.environment_prefix)}
        )
        return environment

    def command_variables(self) -> Dict[str, str]:
        """Placeholders available to service command lines."""
        variables = {
            "BLUEOS_PATH": str(self.blueos_path),
            "SERVICES_PATH": str(self.services_path),
            "TOOLS_PATH": str(self.tools_path),
        }
        variables.update(self.base_exports())
        return variables
