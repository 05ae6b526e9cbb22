import os
import uuid
from dataclasses import dataclass
from typing import Optional


@dataclass
class MQTTConfig:
  broker_host: str = "localhost"
  broker_port: int = 1883
  client_id: str = "dm-server"
  username: Optional[str] = None
  password: Optional[str] = None
  keepalive: int = 60
  qos: int = 1
  clean_session: bool = True
  topic_prefix: str = "dm"

  @classmethod
  def from_env(cls):
    kwargs = {}

    if broker_host := os.getenv("MQTT_BROKER_HOST"):
      kwargs["broker_host"] = broker_host
    if broker_port := os.getenv("MQTT_BROKER_PORT"):
      kwargs["broker_port"] = int(broker_port)
    if client_id := os.getenv("MQTT_CLIENT_ID"):
      kwargs["client_id"] = client_id
    if username := os.getenv("MQTT_USERNAME"):
      kwargs["username"] = username
    if password := os.getenv("MQTT_PASSWORD"):
      kwargs["password"] = password
    if keepalive := os.getenv("MQTT_KEEPALIVE"):
      kwargs["keepalive"] = int(keepalive)
    if qos := os.getenv("MQTT_QOS"):
      kwargs["qos"] = int(qos)
    if clean_session := os.getenv("MQTT_CLEAN_SESSION"):
      kwargs["clean_session"] = clean_session.lower() == "true"
    if topic_prefix := os.getenv("MQTT_TOPIC_PREFIX"):
      kwargs["topic_prefix"] = topic_prefix.rstrip("/")

    return cls(**kwargs)

  def __post_init__(self):
    if self.qos not in (0, 1, 2):
      raise ValueError(f"qos must be 0, 1 or 2, got {self.qos}")
    if self.client_id == "dm-server":
      self.client_id = f"dm-server-{uuid.uuid4().hex[:12]}"

  def inbox_topic(self, instance_id: str) -> str:
    """Topic on which the given participant receives management messages"""
    return f"{self.topic_prefix}/{instance_id}/inbox"
