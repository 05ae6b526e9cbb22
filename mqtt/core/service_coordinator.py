import asyncio
from typing import Optional
from config.dm import DeviceManagementConfig
from config.mqtt import MQTTConfig
from dm.handlers import DeviceManagementHandlers
from dm.router import DeviceManagementRouter
from .connection import MQTTConnectionManager
from .models import MessageEnvelopeCodec
from .publisher import MQTTTransport
from utils import get_logger


class DeviceManagementMQTTService:
    """Binds a device management router to an MQTT inbox topic"""

    def __init__(
        self,
        mqtt_config: MQTTConfig,
        dm_config: DeviceManagementConfig,
        handlers: DeviceManagementHandlers,
        connection: Optional[MQTTConnectionManager] = None,
    ):
        self.mqtt_config = mqtt_config
        self.dm_config = dm_config
        self.logger = get_logger(__name__)

        # Core components
        self.connection = connection or MQTTConnectionManager(mqtt_config)
        self.codec = MessageEnvelopeCodec()
        self.transport = MQTTTransport(self.connection, mqtt_config, dm_config.instance_id)
        self.router = DeviceManagementRouter(self.transport, handlers, dm_config)

        # Service state
        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        self.connection.set_message_callback(self._handle_message)

    @property
    def inbox_topic(self) -> str:
        return self.mqtt_config.inbox_topic(self.dm_config.instance_id)

    def _handle_message(self, topic: str, payload: str):
        """paho callback, runs on the network thread"""
        loop = self._loop
        if loop is None or loop.is_closed():
            self.logger.debug("message_dropped", topic=topic, reason="service_not_running")
            return
        loop.call_soon_threadsafe(self._route_message, topic, payload)

    def _route_message(self, topic: str, payload: str):
        message = self.codec.decode(topic, payload)
        if message is not None:
            self.router.on_message(message)

    async def start(self):
        """Connect, subscribe to the inbox and start the session reaper"""
        if self._running:
            return

        self.logger.info("dm_service_starting", instance_id=self.dm_config.instance_id, inbox=self.inbox_topic)
        self._loop = asyncio.get_running_loop()

        await self.connection.connect()
        self.connection.subscribe(self.inbox_topic, self.mqtt_config.qos)
        self.router.start()

        self._running = True
        self.logger.info(
            "dm_service_started",
            broker_host=self.mqtt_config.broker_host,
            broker_port=self.mqtt_config.broker_port
        )

    async def stop(self):
        """Graceful shutdown"""
        if not self._running:
            return

        self.logger.info("dm_service_stopping")
        self._running = False

        await self.router.stop()
        await self.connection.disconnect()
        self._loop = None

        stats = self.get_stats()
        self.logger.info(
            "dm_service_stopped",
            messages=stats["message_count"],
            errors=stats["error_count"],
            invocations=stats["invocations"]
        )

    def is_running(self) -> bool:
        return self._running and self.connection.is_connected()

    def get_stats(self) -> dict:
        """Get combined connection, routing and publishing statistics"""
        return {
            "running": self._running,
            **self.connection.get_connection_stats(),
            **self.codec.get_codec_stats(),
            **self.router.get_routing_stats(),
            **self.transport.get_publish_stats(),
        }
