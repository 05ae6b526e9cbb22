"""Unit tests for environment-driven configuration"""

import pytest

from config.dm import DeviceManagementConfig
from config.mqtt import MQTTConfig


class TestDeviceManagementConfig:

    def test_defaults(self, monkeypatch):
        for name in ("DM_INSTANCE_ID", "DM_COMMAND_PREFIX", "DM_SESSION_IDLE_TIMEOUT", "DM_REAPER_INTERVAL", "DM_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        config = DeviceManagementConfig.from_env()

        assert config.instance_id == "dm.0"
        assert config.command_prefix == "dm:"
        assert config.session_idle_timeout == 300.0
        assert config.sessions_expire

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DM_INSTANCE_ID", "hue.1")
        monkeypatch.setenv("DM_COMMAND_PREFIX", "mgmt:")
        monkeypatch.setenv("DM_SESSION_IDLE_TIMEOUT", "0")
        monkeypatch.setenv("DM_REAPER_INTERVAL", "5")
        monkeypatch.setenv("DM_LOG_LEVEL", "debug")

        config = DeviceManagementConfig.from_env()

        assert config.instance_id == "hue.1"
        assert config.command_prefix == "mgmt:"
        assert config.session_idle_timeout == 0.0
        assert config.reaper_interval == 5.0
        assert config.log_level == "DEBUG"
        assert not config.sessions_expire

    def test_config_carries_no_protocol_version(self):
        # The wire apiVersion comes from InstanceDetails, not from configuration
        assert not hasattr(DeviceManagementConfig(), "api_version")

    @pytest.mark.parametrize("kwargs", [
        {"session_idle_timeout": -1},
        {"reaper_interval": 0},
    ])
    def test_invalid_timings(self, kwargs):
        with pytest.raises(ValueError):
            DeviceManagementConfig(**kwargs)


class TestMQTTConfig:

    def test_default_client_id_is_unique(self):
        first, second = MQTTConfig(), MQTTConfig()

        assert first.client_id.startswith("dm-server-")
        assert first.client_id != second.client_id

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MQTT_BROKER_HOST", "broker.local")
        monkeypatch.setenv("MQTT_BROKER_PORT", "8883")
        monkeypatch.setenv("MQTT_CLIENT_ID", "dm-test")
        monkeypatch.setenv("MQTT_QOS", "0")
        monkeypatch.setenv("MQTT_CLEAN_SESSION", "False")
        monkeypatch.setenv("MQTT_TOPIC_PREFIX", "home/dm/")

        config = MQTTConfig.from_env()

        assert config.broker_host == "broker.local"
        assert config.broker_port == 8883
        assert config.client_id == "dm-test"
        assert config.qos == 0
        assert config.clean_session is False
        assert config.inbox_topic("hue.1") == "home/dm/hue.1/inbox"

    def test_inbox_topic(self):
        assert MQTTConfig(topic_prefix="dm").inbox_topic("system.adapter.admin.0") == "dm/system.adapter.admin.0/inbox"

    def test_invalid_qos(self):
        with pytest.raises(ValueError, match="qos"):
            MQTTConfig(qos=3)
