"""Unit tests for the device management router"""

import asyncio
import pytest
from unittest.mock import AsyncMock, Mock

from config.dm import DeviceManagementConfig
from dm.handlers import DeviceManagementHandlers
from dm.models import DeviceAction, DeviceDetails, DeviceInfo, InstanceAction, InstanceDetails
from dm.router import DeviceManagementRouter
from tests.fixtures.dm_fixtures import DeviceManagementMessageFactory, progress_reply, wait_for_sends


def build(command, message=None, **kwargs):
    return DeviceManagementMessageFactory.build(command=command, message=message, **kwargs)


class TestRouterSnapshots:
    """Snapshot commands: instanceInfo, listDevices, deviceDetails"""

    @pytest.fixture
    def router(self, transport, handlers, dm_config):
        return DeviceManagementRouter(transport, handlers, dm_config)

    @pytest.mark.asyncio
    async def test_ignores_foreign_commands(self, router, transport, handlers):
        await router.dispatch(build("getDevices"))
        await router.dispatch(build("dmx:listDevices"))
        await router.dispatch(build(None))

        assert transport.sent == []
        handlers.list_devices.assert_not_called()
        assert router.get_routing_stats()["message_count"] == 0

    @pytest.mark.asyncio
    async def test_unknown_prefixed_command_is_ignored(self, router, transport):
        await router.dispatch(build("dm:selfDestruct"))
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_instance_info(self, router, transport):
        message = build("dm:instanceInfo", sender="admin.0", callback={"id": 5})

        await router.dispatch(message)

        assert transport.sent == [{
            "target": "admin.0",
            "command": "dm:instanceInfo",
            "payload": {
                "apiVersion": "v1",
                "actions": [
                    {"id": "discover", "icon": "fa-search", "title": "Discover", "disabled": False},
                    {"id": "reset", "icon": "fa-undo", "title": "Reset", "disabled": True},
                ],
            },
            "callback": {"id": 5},
        }]
        assert router.catalog.find_instance_action("discover") is not None

    @pytest.mark.asyncio
    async def test_default_instance_info(self, transport, dm_config):
        router = DeviceManagementRouter(transport, DeviceManagementHandlers(list_devices=list), dm_config)

        await router.dispatch(build("dm:instanceInfo"))

        assert transport.sent[0]["payload"] == {"apiVersion": "v1", "actions": []}

    @pytest.mark.asyncio
    async def test_list_devices(self, router, transport):
        await router.dispatch(build("dm:listDevices"))

        payload = transport.sent[0]["payload"]
        assert payload == [
            {
                "id": "d1",
                "name": "Device 1",
                "status": "connected",
                "actions": [
                    {"id": "play", "icon": "fa-play", "disabled": False},
                    {"id": "pause", "icon": "fa-pause", "disabled": True},
                ],
            },
            {
                "id": "d2",
                "name": {"en": "Device 2", "de": "Gerät 2"},
                "status": "disconnected",
                "actions": [
                    {"id": "pause", "icon": "fa-pause", "disabled": False, "description": "Pause device"},
                    {"id": "configure", "icon": "fa-cog", "disabled": False},
                    {"id": "explode", "icon": "fa-bomb", "disabled": False},
                ],
                "hasDetails": True,
            },
        ]
        assert router.device_index.lookup("d1") is not None
        assert router.catalog.find_device_action("d2", "configure") is not None

    @pytest.mark.asyncio
    async def test_async_collaborators(self, transport, dm_config, sample_devices):
        handlers = DeviceManagementHandlers(
            list_devices=AsyncMock(return_value=sample_devices),
            get_instance_info=AsyncMock(return_value=InstanceDetails()),
        )
        router = DeviceManagementRouter(transport, handlers, dm_config)

        await router.dispatch(build("dm:listDevices"))
        await router.dispatch(build("dm:instanceInfo"))

        assert len(transport.sent[0]["payload"]) == 2
        assert transport.sent[1]["payload"]["apiVersion"] == "v1"

    @pytest.mark.asyncio
    async def test_list_devices_without_actions(self, transport, dm_config):
        handlers = DeviceManagementHandlers(list_devices=lambda: [DeviceInfo(id="d1", name="D", actions=None)])
        router = DeviceManagementRouter(transport, handlers, dm_config)

        await router.dispatch(build("dm:listDevices"))

        assert transport.sent[0]["payload"] == [{"id": "d1", "name": "D", "actions": []}]
        assert router.device_index.lookup("d1") is not None
        assert router.catalog.device_actions("d1") == []
        assert router.get_routing_stats()["error_count"] == 0

    @pytest.mark.asyncio
    async def test_duplicate_device_leaves_request_unanswered(self, router, transport, handlers, sample_devices):
        await router.dispatch(build("dm:listDevices"))

        handlers.list_devices.return_value = [
            DeviceInfo(id="d9", name="Nine"),
            DeviceInfo(id="d9", name="Nine again"),
        ]
        await router.dispatch(build("dm:listDevices"))

        assert len(transport.sent) == 1
        assert router.device_index.lookup("d9") is None
        assert router.device_index.lookup("d1") is not None
        assert router.catalog.find_device_action("d1", "play") is not None
        assert router.get_routing_stats()["error_count"] == 1

    @pytest.mark.asyncio
    async def test_duplicate_action_keeps_both_snapshots(self, router, transport, handlers):
        await router.dispatch(build("dm:listDevices"))

        handlers.list_devices.return_value = [
            DeviceInfo(id="d3", name="Three", actions=[
                DeviceAction(id="a", icon="a"),
                DeviceAction(id="a", icon="a"),
            ]),
        ]
        await router.dispatch(build("dm:listDevices"))

        assert len(transport.sent) == 1
        assert "d3" not in router.device_index
        assert router.catalog.find_device_action("d2", "pause") is not None

    @pytest.mark.asyncio
    async def test_collaborator_failure_is_logged_not_answered(self, router, transport, handlers):
        handlers.get_instance_info.side_effect = RuntimeError("host offline")

        await router.dispatch(build("dm:instanceInfo"))

        assert transport.sent == []
        assert router.get_routing_stats()["error_count"] == 1

    @pytest.mark.asyncio
    async def test_device_details_default(self, router, transport):
        await router.dispatch(build("dm:deviceDetails", "d1"))

        assert transport.sent[0]["payload"] == {"id": "d1", "schema": {}}

    @pytest.mark.asyncio
    async def test_device_details_from_host(self, transport, dm_config):
        handlers = DeviceManagementHandlers(
            list_devices=list,
            get_device_details=AsyncMock(return_value=DeviceDetails(id="d1", schema={"type": "panel"}, data={"a": 1})),
        )
        router = DeviceManagementRouter(transport, handlers, dm_config)

        await router.dispatch(build("dm:deviceDetails", {"deviceId": "d1"}))

        assert transport.sent[0]["payload"] == {"id": "d1", "schema": {"type": "panel"}, "data": {"a": 1}}
        handlers.get_device_details.assert_awaited_once_with("d1")

    @pytest.mark.asyncio
    async def test_device_details_unknown_device(self, router, transport):
        await router.dispatch(build("dm:listDevices"))
        await router.dispatch(build("dm:deviceDetails", "ghost"))

        assert transport.sent[1]["payload"] == {"error": {"code": 404, "message": "Device ghost not found"}}

    @pytest.mark.asyncio
    async def test_device_details_host_returns_nothing(self, transport, dm_config):
        handlers = DeviceManagementHandlers(list_devices=list, get_device_details=Mock(return_value=None))
        router = DeviceManagementRouter(transport, handlers, dm_config)

        await router.dispatch(build("dm:deviceDetails", "d1"))

        assert transport.sent[0]["payload"]["error"]["code"] == 404

    @pytest.mark.asyncio
    async def test_device_details_without_id(self, router, transport):
        await router.dispatch(build("dm:deviceDetails", None))
        assert transport.sent[0]["payload"]["error"]["code"] == 400

    def test_handlers_require_list_devices(self):
        with pytest.raises(ValueError):
            DeviceManagementHandlers(list_devices=None)


class TestRouterInvocations:
    """Action invocation lifecycle and continuation routing"""

    @pytest.fixture
    def router_factory(self, transport, handlers, dm_config):
        async def _make():
            router = DeviceManagementRouter(transport, handlers, dm_config)
            await router.dispatch(build("dm:instanceInfo"))
            await router.dispatch(build("dm:listDevices"))
            transport.sent.clear()
            return router
        return _make

    @pytest.mark.asyncio
    async def test_action_without_handler_short_circuits(self, router_factory, transport):
        """deviceAction on a handler-less action answers refresh false and opens no session"""
        router = await router_factory()
        message = build("dm:deviceAction", {"deviceId": "d1", "actionId": "pause"}, id=77)

        await router.dispatch(message)

        assert transport.sent == [{
            "target": message.sender,
            "command": "dm:deviceAction",
            "payload": {"result": {"refresh": False}, "type": "result", "origin": 77},
            "callback": message.callback,
        }]
        assert len(router.sessions) == 0
        assert router.get_routing_stats()["invocations"] == 0
        assert router.get_routing_stats()["rejected_invocations"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"deviceId": "d1", "actionId": "missing"},
        {"deviceId": "ghost", "actionId": "play"},
        {"deviceId": "d1"},
        "play",
        None,
    ])
    async def test_unresolvable_device_actions(self, router_factory, transport, payload):
        router = await router_factory()

        await router.dispatch(build("dm:deviceAction", payload))

        assert transport.sent[0]["payload"]["result"] == {"refresh": False}
        assert len(router.sessions) == 0

    @pytest.mark.asyncio
    async def test_device_action_before_any_snapshot(self, transport, handlers, dm_config):
        router = DeviceManagementRouter(transport, handlers, dm_config)

        await router.dispatch(build("dm:deviceAction", {"deviceId": "d1", "actionId": "play"}))

        assert transport.sent[0]["payload"]["result"] == {"refresh": False}
        handlers.list_devices.assert_not_called()

    @pytest.mark.asyncio
    async def test_disabled_instance_action(self, router_factory, transport):
        router = await router_factory()

        await router.dispatch(build("dm:instanceAction", {"actionId": "reset"}, id=5))

        assert transport.sent[0]["payload"] == {"result": {"refresh": False}, "type": "result", "origin": 5}

    @pytest.mark.asyncio
    async def test_sync_action_handler(self, router_factory, transport):
        router = await router_factory()

        await router.dispatch(build("dm:deviceAction", {"deviceId": "d1", "actionId": "play"}, id=8))

        assert transport.sent[0]["payload"] == {"result": {"refresh": False}, "type": "result", "origin": 8}
        assert len(router.sessions) == 0
        assert router.get_routing_stats()["invocations"] == 1

    @pytest.mark.asyncio
    async def test_confirmation_dialog_end_to_end(self, router_factory, transport):
        router = await router_factory()
        invocation = build("dm:deviceAction", {"deviceId": "d2", "actionId": "pause"}, id=100)

        task = asyncio.create_task(router.dispatch(invocation))
        sent = await wait_for_sends(transport, 1)

        # The session is registered under the invocation id while the dialog is open
        assert router.sessions.get(100) is not None
        assert sent[0]["payload"] == {"confirm": "Refresh the device only?", "type": "confirm", "origin": 100}
        assert sent[0]["callback"] == invocation.callback

        reply = progress_reply(100, confirm=True)
        await router.dispatch(reply)
        await task

        final = transport.sent[1]
        assert final["payload"] == {"result": {"refresh": "device"}, "type": "result", "origin": 100}
        assert final["command"] == "dm:actionProgress"
        assert final["callback"] == reply.callback
        assert len(router.sessions) == 0

    @pytest.mark.asyncio
    async def test_form_cancel_flow(self, router_factory, transport):
        router = await router_factory()

        task = asyncio.create_task(router.dispatch(
            build("dm:deviceAction", {"deviceId": "d2", "actionId": "configure"}, id=200)
        ))
        sent = await wait_for_sends(transport, 1)
        assert sent[0]["payload"]["form"] == {"schema": {"type": "panel"}, "data": {"port": 8081}}

        await router.dispatch(progress_reply(200))
        sent = await wait_for_sends(transport, 2)
        assert sent[1]["payload"] == {"message": "Cancelled", "type": "message", "origin": 200}

        await router.dispatch(progress_reply(200))
        await task

        assert transport.sent[2]["payload"]["result"] == {"refresh": False}

    @pytest.mark.asyncio
    async def test_progress_instance_action(self, router_factory, transport):
        router = await router_factory()

        task = asyncio.create_task(router.dispatch(build("dm:instanceAction", {"actionId": "discover"}, id=300)))
        for expected in range(1, 4):
            await wait_for_sends(transport, expected)
            await router.dispatch(progress_reply(300))
        await task

        payloads = [sent["payload"] for sent in transport.sent]
        assert [p["type"] for p in payloads] == ["progress", "progress", "progress", "result"]
        assert payloads[0]["progress"] == {"title": "Searching", "value": 0, "open": True}
        assert payloads[1]["progress"] == {"title": "Searching", "value": 50, "open": True}
        assert payloads[2]["progress"] == {"open": False}
        assert payloads[3]["result"] == {"refresh": True}

    @pytest.mark.asyncio
    async def test_unknown_origin(self, router_factory, transport):
        router = await router_factory()
        message = build("dm:actionProgress", {"origin": 999, "confirm": True})

        await router.dispatch(message)

        assert transport.sent == [{
            "target": message.sender,
            "command": "dm:actionProgress",
            "payload": {"error": "Unknown action origin"},
            "callback": message.callback,
        }]
        assert len(router.sessions) == 0
        assert router.get_routing_stats()["unknown_origins"] == 1

    @pytest.mark.asyncio
    async def test_stale_origin_after_completion(self, router_factory, transport):
        router = await router_factory()
        await router.dispatch(build("dm:deviceAction", {"deviceId": "d1", "actionId": "play"}, id=400))

        await router.dispatch(progress_reply(400))

        assert transport.sent[-1]["payload"] == {"error": "Unknown action origin"}

    @pytest.mark.asyncio
    async def test_concurrent_invocations_are_isolated(self, router_factory, transport):
        router = await router_factory()

        first = asyncio.create_task(router.dispatch(
            build("dm:deviceAction", {"deviceId": "d2", "actionId": "pause"}, id=501)
        ))
        second = asyncio.create_task(router.dispatch(
            build("dm:deviceAction", {"deviceId": "d2", "actionId": "pause"}, id=502)
        ))
        await wait_for_sends(transport, 2)
        assert len(router.sessions) == 2

        await router.dispatch(progress_reply(502, confirm=False))
        await second
        await router.dispatch(progress_reply(501, confirm=True))
        await first

        results = {sent["payload"]["origin"]: sent["payload"]["result"]
                   for sent in transport.sent if sent["payload"]["type"] == "result"}
        assert results == {501: {"refresh": "device"}, 502: {"refresh": "instance"}}

    @pytest.mark.asyncio
    async def test_failing_handler_reports_error(self, router_factory, transport):
        router = await router_factory()

        await router.dispatch(build("dm:deviceAction", {"deviceId": "d2", "actionId": "explode"}, id=600))

        assert transport.sent[0]["payload"] == {
            "result": {"error": {"code": 500, "message": "device on fire"}},
            "type": "result",
            "origin": 600,
        }
        assert len(router.sessions) == 0

    @pytest.mark.asyncio
    async def test_protocol_misuse_fails_loudly(self, transport, dm_config):
        async def greedy(context):
            first = asyncio.ensure_future(context.show_message("one"))
            await asyncio.sleep(0)
            try:
                await context.show_message("two")
            finally:
                first.cancel()

        handlers = DeviceManagementHandlers(
            list_devices=list,
            get_instance_info=lambda: InstanceDetails(actions=[
                InstanceAction(id="greedy", icon="x", title="Greedy", handler=greedy),
            ]),
        )
        router = DeviceManagementRouter(transport, handlers, dm_config)
        await router.dispatch(build("dm:instanceInfo"))
        transport.sent.clear()

        await router.dispatch(build("dm:instanceAction", {"actionId": "greedy"}, id=700))

        # Only the first dialog went out; the second raised DialogBusy into the handler
        assert [sent["payload"]["type"] for sent in transport.sent] == ["message"]
        assert len(router.sessions) == 0
        assert router.get_routing_stats()["error_count"] == 1

    @pytest.mark.asyncio
    async def test_handler_returning_none_means_no_refresh(self, transport, dm_config):
        handlers = DeviceManagementHandlers(
            list_devices=list,
            get_instance_info=lambda: InstanceDetails(actions=[
                InstanceAction(id="quiet", icon="x", title="Quiet", handler=lambda context: None),
            ]),
        )
        router = DeviceManagementRouter(transport, handlers, dm_config)
        await router.dispatch(build("dm:instanceInfo"))

        await router.dispatch(build("dm:instanceAction", {"actionId": "quiet"}, id=800))

        assert transport.sent[-1]["payload"]["result"] == {"refresh": False}

    @pytest.mark.asyncio
    async def test_custom_action_runner_wraps_invocations(self, transport, dm_config, sample_devices):
        calls = []

        async def audited(device_id, action, context):
            calls.append((device_id, action.id))
            return {"refresh": "instance"}

        handlers = DeviceManagementHandlers(list_devices=lambda: sample_devices, handle_device_action=audited)
        router = DeviceManagementRouter(transport, handlers, dm_config)
        await router.dispatch(build("dm:listDevices"))

        await router.dispatch(build("dm:deviceAction", {"deviceId": "d1", "actionId": "play"}, id=900))
        await router.dispatch(build("dm:deviceAction", {"deviceId": "d1", "actionId": "pause"}, id=901))

        # Disabled actions never reach the runner
        assert calls == [("d1", "play")]
        assert transport.sent[-2]["payload"]["result"] == {"refresh": "instance"}


class TestRouterLifecycle:

    @pytest.mark.asyncio
    async def test_on_message_schedules_dispatch(self, transport, handlers, dm_config):
        router = DeviceManagementRouter(transport, handlers, dm_config)

        router.on_message(build("dm:instanceInfo"))
        router.on_message(build("other:instanceInfo"))
        await wait_for_sends(transport, 1)
        await asyncio.sleep(0)

        assert len(transport.sent) == 1

    def test_on_message_without_loop_is_dropped(self, transport, handlers, dm_config):
        router = DeviceManagementRouter(transport, handlers, dm_config)
        router.on_message(build("dm:instanceInfo"))
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_reaper_expires_abandoned_session(self, transport, handlers):
        config = DeviceManagementConfig(session_idle_timeout=0.05, reaper_interval=0.01)
        router = DeviceManagementRouter(transport, handlers, config)
        await router.dispatch(build("dm:listDevices"))
        transport.sent.clear()
        router.start()

        try:
            await asyncio.wait_for(
                router.dispatch(build("dm:deviceAction", {"deviceId": "d2", "actionId": "pause"}, id=1100)),
                timeout=1.0,
            )
        finally:
            await router.stop()

        # The confirmation went out, but the expired session never sends a result
        assert [sent["payload"]["type"] for sent in transport.sent] == ["confirm"]
        assert len(router.sessions) == 0
        assert router.get_routing_stats()["expired_sessions"] == 1

        await router.dispatch(progress_reply(1100, confirm=True))
        assert transport.sent[-1]["payload"] == {"error": "Unknown action origin"}

    @pytest.mark.asyncio
    async def test_start_without_expiry_starts_no_reaper(self, transport, handlers, dm_config):
        router = DeviceManagementRouter(transport, handlers, dm_config)
        router.start()
        assert router._reaper_task is None
        await router.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_invocations(self, transport, handlers, dm_config):
        router = DeviceManagementRouter(transport, handlers, dm_config)
        await router.dispatch(build("dm:listDevices"))

        router.on_message(build("dm:deviceAction", {"deviceId": "d2", "actionId": "pause"}, id=1200))
        await wait_for_sends(transport, 2)

        await router.stop()

        assert router.get_routing_stats()["invocations"] == 1
        assert len(router.sessions) == 0

    @pytest.mark.asyncio
    async def test_routing_stats(self, transport, handlers, dm_config):
        router = DeviceManagementRouter(transport, handlers, dm_config)
        await router.dispatch(build("dm:listDevices"))
        await router.dispatch(build("dm:actionProgress", {"origin": 1}))

        stats = router.get_routing_stats()

        assert stats["message_count"] == 2
        assert stats["known_devices"] == 2
        assert stats["unknown_origins"] == 1
        assert stats["active_sessions"] == 0
        assert stats["error_rate"] == 0
