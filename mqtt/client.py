from typing import Callable, List, Optional, Tuple
import paho.mqtt.client as mqtt
from config.mqtt import MQTTConfig
from utils import get_logger

class DeviceManagementMQTTClient:
  def __init__(self, config: MQTTConfig):
    self.config = config
    self.client: Optional[mqtt.Client] = None
    self.connected = False
    self.on_message_callback: Optional[Callable[[str, str], None]] = None
    self.subscriptions: List[Tuple[str, int]] = []
    self.logger = get_logger(__name__)

  def setup(self):
    """Initialize the MQTT Client"""
    self.client = mqtt.Client(
      mqtt.CallbackAPIVersion.VERSION2,
      client_id=self.config.client_id,
      clean_session=self.config.clean_session
    )

    if self.config.username and self.config.password:
      self.client.username_pw_set(self.config.username, self.config.password)

    self.client.on_connect = self._on_connect
    self.client.on_disconnect = self._on_disconnect
    self.client.on_message = self._on_message
    self.client.on_subscribe = self._on_subscribe

  def _on_connect(self, client, userdata, flags, reason_code, properties):
    """Callback for when the client connects"""
    if reason_code.is_failure:
      self.logger.error("connection_failed", reason=str(reason_code))
      return

    self.connected = True
    self.logger.info("mqtt_connected", broker_host=self.config.broker_host, broker_port=self.config.broker_port)

    # Re-subscribe on every (re)connect, the broker may have dropped the session
    for topic, qos in self.subscriptions:
      self.client.subscribe(topic, qos)
      self.logger.debug("subscribed", topic=topic, qos=qos)

  def _on_disconnect(self, client, userdata, flags, reason_code, properties):
    """Called when client disconnects"""
    self.connected = False
    if reason_code.is_failure:
      self.logger.warning("unexpected_disconnection", reason=str(reason_code))
    else:
      self.logger.info("mqtt_disconnected")

  def _on_message(self, client, userdata, msg):
    """Called when message is received"""
    try:
      payload = msg.payload.decode('utf-8')
    except UnicodeDecodeError:
      self.logger.warning("undecodable_payload", topic=msg.topic, size=len(msg.payload))
      return

    self.logger.debug("message_received", topic=msg.topic, payload=payload)
    if self.on_message_callback:
      self.on_message_callback(msg.topic, payload)

  def _on_subscribe(self, client, userdata, mid, reason_code_list, properties):
    """Called when subscription is acknowledged"""
    self.logger.debug("subscription_acknowledged", message_id=mid)

  def connect(self) -> bool:
    """Connect to the MQTT broker"""
    if not self.client:
      self.setup()

    try:
      result = self.client.connect(self.config.broker_host, self.config.broker_port, self.config.keepalive)
      if result == mqtt.MQTT_ERR_SUCCESS:
        self.client.loop_start()
        return True
      self.logger.error("connection_failed_with_result", result=result)
      return False
    except OSError as e:
      self.logger.error("connection_exception", error=str(e), error_type=type(e).__name__)
      return False

  def disconnect(self):
    """Disconnect from broker"""
    if self.client:
      self.client.disconnect()
      self.client.loop_stop()
      self.connected = False

  def subscribe(self, topic: str, qos: int = 0):
    """Subscribe to a topic, deferring until connected if necessary"""
    if (topic, qos) not in self.subscriptions:
      self.subscriptions.append((topic, qos))

    if self.connected:
      self.logger.debug("subscribed_to_topic", topic=topic)
      return self.client.subscribe(topic, qos)

    self.logger.debug("subscription_deferred", topic=topic, reason="not_connected")
    return True

  def publish(self, topic: str, message: str, qos: int = 0) -> bool:
    """Publish a message"""
    if not self.connected:
      self.logger.warning("publish_failed", topic=topic, reason="not_connected")
      return False

    info = self.client.publish(topic, message, qos)
    self.logger.debug("published_message", topic=topic, message_id=info.mid)
    return info.rc == mqtt.MQTT_ERR_SUCCESS

  def set_message_callback(self, callback: Callable[[str, str], None]):
    """Set custom message handler"""
    self.on_message_callback = callback
