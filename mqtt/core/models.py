import itertools
import json
from typing import Any, Optional
from dm.models import DeviceManagementMessage
from utils import get_logger


class MessageEnvelopeCodec:
    """JSON envelope between MQTT payloads and device management messages

    Envelope: {"command": str, "message": any, "from": str, "callback": any, "_id": any}
    """

    def __init__(self):
        self.logger = get_logger(__name__)
        self._local_ids = itertools.count(1)

        self._decoded_count = 0
        self._decode_errors = 0

    def decode(self, topic: str, payload: str) -> Optional[DeviceManagementMessage]:
        """Parse an inbound payload; malformed envelopes are logged and dropped"""
        try:
            envelope = json.loads(payload)
        except json.JSONDecodeError as e:
            self._decode_errors += 1
            self.logger.warning("invalid_envelope", topic=topic, reason="not_json", error=str(e))
            return None

        if not isinstance(envelope, dict) or not isinstance(envelope.get("command"), str):
            self._decode_errors += 1
            self.logger.warning("invalid_envelope", topic=topic, reason="missing_command")
            return None

        message_id = envelope.get("_id")
        if message_id is None:
            # Correlation needs an id; invent one the client will see as "origin"
            message_id = f"local-{next(self._local_ids)}"

        self._decoded_count += 1
        return DeviceManagementMessage(
            command=envelope["command"],
            message=envelope.get("message"),
            sender=envelope.get("from"),
            callback=envelope.get("callback"),
            id=message_id,
        )

    @staticmethod
    def encode(sender: str, command: str, payload: Any, callback: Any = None) -> str:
        envelope = {"command": command, "message": payload, "from": sender}
        if callback is not None:
            envelope["callback"] = callback
        return json.dumps(envelope, separators=(',', ':'))

    def get_codec_stats(self) -> dict:
        return {
            "decoded_count": self._decoded_count,
            "decode_errors": self._decode_errors,
        }
