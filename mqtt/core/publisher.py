from typing import Any
from config.mqtt import MQTTConfig
from .models import MessageEnvelopeCodec
from utils import get_logger


class MQTTTransport:
    """Fire-and-forget transport for device management replies and dialogs

    Publishes to the target's inbox topic; the router and dialog sessions only
    ever call send().
    """

    def __init__(self, connection_manager, config: MQTTConfig, instance_id: str):
        self.connection = connection_manager
        self.config = config
        self.instance_id = instance_id
        self.logger = get_logger(__name__)

        # Publishing stats
        self._publish_count = 0
        self._publish_errors = 0

    def send(self, target: str, command: str, payload: Any, callback: Any = None) -> bool:
        if not target:
            self.logger.warning("send_dropped", command=command, reason="no_target")
            return False

        topic = self.config.inbox_topic(target)
        self._publish_count += 1

        try:
            message = MessageEnvelopeCodec.encode(self.instance_id, command, payload, callback)
        except (TypeError, ValueError) as e:
            self._publish_errors += 1
            self.logger.error("encode_error", topic=topic, command=command, error=str(e), error_type=type(e).__name__)
            return False

        if not self.connection.publish(topic, message):
            self._publish_errors += 1
            self.logger.warning("publish_failed", topic=topic, command=command)
            return False
        return True

    def get_publish_stats(self) -> dict:
        """Get publishing statistics"""
        error_rate = self._publish_errors / max(self._publish_count, 1)

        return {
            "publish_count": self._publish_count,
            "publish_errors": self._publish_errors,
            "publish_error_rate": error_rate
        }
