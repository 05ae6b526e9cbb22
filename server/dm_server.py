import asyncio
from typing import Optional

from config.dm import DeviceManagementConfig
from config.mqtt import MQTTConfig
from dm.handlers import DeviceManagementHandlers
from mqtt.core.service_coordinator import DeviceManagementMQTTService
from utils import get_logger, log_config, log_shutdown, log_startup


logger = get_logger(__name__)


class DeviceManagementServer:
    """Runs a device management instance on MQTT until stop() is called"""

    def __init__(
        self,
        handlers: DeviceManagementHandlers,
        dm_config: Optional[DeviceManagementConfig] = None,
        mqtt_config: Optional[MQTTConfig] = None,
    ):
        self.dm_config = dm_config or DeviceManagementConfig.from_env()
        self.mqtt_config = mqtt_config or MQTTConfig.from_env()
        self.mqtt_service = DeviceManagementMQTTService(self.mqtt_config, self.dm_config, handlers)
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start the service and block until shutdown is requested"""
        log_startup(logger, "dm_server", instance_id=self.dm_config.instance_id)
        log_config(logger, {
            "broker": f"{self.mqtt_config.broker_host}:{self.mqtt_config.broker_port}",
            "inbox": self.mqtt_service.inbox_topic,
            "command_prefix": self.dm_config.command_prefix,
            "session_idle_timeout": self.dm_config.session_idle_timeout,
        })

        await self.mqtt_service.start()
        await self._shutdown_event.wait()

    async def stop(self):
        log_shutdown(logger, "dm_server")
        await self.mqtt_service.stop()
        self._shutdown_event.set()

    def is_running(self) -> bool:
        return self.mqtt_service.is_running()
