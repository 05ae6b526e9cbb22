import asyncio
from datetime import datetime, timezone
from typing import Optional
from mqtt.client import DeviceManagementMQTTClient
from config.mqtt import MQTTConfig
from utils import get_logger


class MQTTConnectionManager:
    """Handles MQTT connection lifecycle with retry and monitoring"""

    def __init__(self, config: MQTTConfig, client: Optional[DeviceManagementMQTTClient] = None):
        self.config = config
        self.client = client or DeviceManagementMQTTClient(config)
        self.logger = get_logger(__name__)

        # Connection state
        self._connected = False
        self._connection_lock = asyncio.Lock()
        self._start_time: Optional[datetime] = None

        # Stats
        self._connection_attempts = 0

    async def connect(self, retry_attempts: int = 5) -> bool:
        """Connect with retry logic and exponential backoff"""
        if self._connected:
            return True

        async with self._connection_lock:
            self.logger.info("mqtt_connecting", broker_host=self.config.broker_host, broker_port=self.config.broker_port)
            self._start_time = datetime.now(timezone.utc)

            for attempt in range(retry_attempts):
                self._connection_attempts += 1

                if self.client.connect():
                    self._connected = True
                    return True

                if attempt >= retry_attempts - 1:
                    break

                wait_time = min(2 ** attempt, 30)
                self.logger.warning("mqtt_connection_failed", attempt=attempt + 1, retry_in=wait_time)
                await asyncio.sleep(wait_time)

            raise ConnectionError(
                f"Failed to connect to MQTT broker {self.config.broker_host}:{self.config.broker_port} "
                f"after {retry_attempts} attempts"
            )

    async def disconnect(self):
        """Graceful disconnection"""
        if not self._connected:
            return

        async with self._connection_lock:
            self.client.disconnect()
            self._connected = False

            uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds() if self._start_time else 0
            self.logger.info(
                "mqtt_disconnected",
                uptime_seconds=round(uptime, 1),
                connection_attempts=self._connection_attempts
            )

    def subscribe(self, topic: str, qos: Optional[int] = None):
        """Register a subscription; the client replays it whenever it (re)connects"""
        if qos is None:
            qos = self.config.qos
        return self.client.subscribe(topic, qos)

    def publish(self, topic: str, payload: str, qos: Optional[int] = None) -> bool:
        """Publish message if connected"""
        if not self._connected:
            self.logger.debug("mqtt_not_connected_publish", topic=topic)
            return False

        if qos is None:
            qos = self.config.qos

        return self.client.publish(topic, payload, qos)

    def set_message_callback(self, callback):
        """Set message callback on the underlying client"""
        self.client.set_message_callback(callback)

    def is_connected(self) -> bool:
        return self._connected

    def get_connection_stats(self) -> dict:
        """Get connection statistics"""
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds() if self._start_time else 0
        return {
            "connected": self._connected,
            "uptime_seconds": uptime,
            "connection_attempts": self._connection_attempts,
            "broker_host": self.config.broker_host,
            "broker_port": self.config.broker_port,
            "client_id": self.config.client_id
        }
