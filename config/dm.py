import os
from dataclasses import dataclass


@dataclass
class DeviceManagementConfig:
    instance_id: str = "dm.0"
    command_prefix: str = "dm:"
    # Seconds a dialog session may wait for a client reply; 0 disables the reaper
    session_idle_timeout: float = 300.0
    reaper_interval: float = 30.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        kwargs = {}

        if instance_id := os.getenv("DM_INSTANCE_ID"):
            kwargs["instance_id"] = instance_id
        if command_prefix := os.getenv("DM_COMMAND_PREFIX"):
            kwargs["command_prefix"] = command_prefix
        if idle_timeout := os.getenv("DM_SESSION_IDLE_TIMEOUT"):
            kwargs["session_idle_timeout"] = float(idle_timeout)
        if reaper_interval := os.getenv("DM_REAPER_INTERVAL"):
            kwargs["reaper_interval"] = float(reaper_interval)
        if log_level := os.getenv("DM_LOG_LEVEL"):
            kwargs["log_level"] = log_level.upper()

        return cls(**kwargs)

    def __post_init__(self):
        if self.session_idle_timeout < 0:
            raise ValueError("session_idle_timeout must be >= 0")
        if self.reaper_interval <= 0:
            raise ValueError("reaper_interval must be > 0")

    @property
    def sessions_expire(self) -> bool:
        return self.session_idle_timeout > 0
