import asyncio
import contextlib
from typing import Any, Callable, Dict, Optional, Set

from config.dm import DeviceManagementConfig
from dm.catalog import ActionCatalog
from dm.devices import DeviceIndex
from dm.errors import DialogTimeout
from dm.handlers import DeviceManagementHandlers, resolve
from dm.models import Command, DeviceManagementMessage, error_response
from dm.session import DialogSession
from dm.session_table import SessionTable
from utils import get_logger


UNKNOWN_ORIGIN_ERROR = "Unknown action origin"
NO_REFRESH = {"refresh": False}


class DeviceManagementRouter:
    """Entry point for device management commands

    Snapshot commands are answered from the host handlers. Action invocations
    get a DialogSession registered under the invocation's message id until the
    handler settles; actionProgress messages are routed back to that session.
    """

    def __init__(
        self,
        transport,
        handlers: DeviceManagementHandlers,
        config: Optional[DeviceManagementConfig] = None,
    ):
        self.transport = transport
        self.handlers = handlers
        self.config = config or DeviceManagementConfig()
        self.logger = get_logger(__name__)

        self.catalog = ActionCatalog()
        self.device_index = DeviceIndex()
        self.sessions = SessionTable(idle_timeout=self.config.session_idle_timeout)

        self._command_handlers: Dict[Command, Callable] = {
            Command.INSTANCE_INFO: self._handle_instance_info,
            Command.LIST_DEVICES: self._handle_list_devices,
            Command.DEVICE_DETAILS: self._handle_device_details,
            Command.INSTANCE_ACTION: self._handle_instance_action,
            Command.DEVICE_ACTION: self._handle_device_action,
            Command.ACTION_PROGRESS: self._handle_action_progress,
        }

        self._tasks: Set[asyncio.Task] = set()
        self._reaper_task: Optional[asyncio.Task] = None

        # Stats
        self._message_count = 0
        self._error_count = 0
        self._invocation_count = 0
        self._rejected_invocations = 0
        self._unknown_origin_count = 0

    def start(self):
        """Start the idle session reaper; requires a running event loop"""
        if self.config.sessions_expire and self._reaper_task is None:
            self._reaper_task = asyncio.get_running_loop().create_task(self._reap_idle_sessions())
            self.logger.debug(
                "session_reaper_started",
                idle_timeout=self.config.session_idle_timeout,
                interval=self.config.reaper_interval
            )

    async def stop(self):
        if self._reaper_task is not None:
            self._reaper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reaper_task
            self._reaper_task = None

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def on_message(self, message: DeviceManagementMessage):
        """Transport callback: schedule dispatch on the running loop"""
        if not self._is_managed(message.command):
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning("no_event_loop_for_dispatch", command=message.command)
            return

        task = loop.create_task(self.dispatch(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def dispatch(self, message: DeviceManagementMessage):
        if not self._is_managed(message.command):
            return

        try:
            command = Command(message.command[len(self.config.command_prefix):])
        except ValueError:
            self.logger.debug("unknown_command", command=message.command)
            return

        self._message_count += 1
        self.logger.debug(
            "message_received",
            command=message.command,
            message_id=message.id,
            sender=message.sender
        )

        try:
            await self._command_handlers[command](message)
        except Exception as e:
            # The client is responsible for timing out requests we can't answer
            self._error_count += 1
            self.logger.error(
                "command_failed",
                command=message.command,
                message_id=message.id,
                error=str(e),
                error_type=type(e).__name__
            )

    def _is_managed(self, command: Any) -> bool:
        return isinstance(command, str) and command.startswith(self.config.command_prefix)

    async def _handle_instance_info(self, message: DeviceManagementMessage):
        details = await resolve(self.handlers.get_instance_info())
        actions = list(details.actions or [])
        self.catalog.set_instance_actions(actions)
        self._reply(message, details.to_dict(self.catalog.project_for_client(actions)))

    async def _handle_list_devices(self, message: DeviceManagementMessage):
        devices = list(await resolve(self.handlers.list_devices()))
        # Validates device and action ids; on failure both snapshots stay as they were
        self.device_index.rebuild(devices)
        self.catalog.replace_device_actions({device.id: device.actions for device in devices})
        self._reply(message, [
            device.to_dict(self.catalog.project_for_client(device.actions))
            for device in devices
        ])

    async def _handle_device_details(self, message: DeviceManagementMessage):
        device_id = message.message
        if isinstance(device_id, dict):
            device_id = device_id.get("deviceId")

        if not isinstance(device_id, str):
            self._reply(message, error_response(400, "Missing device id"))
            return

        if self.device_index.is_built and device_id not in self.device_index:
            self.logger.warning("device_details_unavailable", device_id=device_id, reason="unknown_device")
            self._reply(message, error_response(404, f"Device {device_id} not found"))
            return

        details = await resolve(self.handlers.get_device_details(device_id))
        if details is None:
            self._reply(message, error_response(404, f"Device {device_id} not found"))
            return
        self._reply(message, details.to_dict())

    async def _handle_instance_action(self, message: DeviceManagementMessage):
        action_id = message.get("actionId")
        action = self.catalog.find_instance_action(action_id)

        if action is None or action.handler is None:
            self._reject_invocation(
                message,
                reason="unknown_action" if action is None else "no_handler",
                action_id=action_id
            )
            return

        await self._invoke(
            message,
            lambda session: self.handlers.handle_instance_action(action, session),
            action_id=action_id
        )

    async def _handle_device_action(self, message: DeviceManagementMessage):
        device_id = message.get("deviceId")
        action_id = message.get("actionId")

        if not self.device_index.is_built:
            self._reject_invocation(message, reason="no_device_snapshot", device_id=device_id, action_id=action_id)
            return
        if self.device_index.lookup(device_id) is None:
            self._reject_invocation(message, reason="unknown_device", device_id=device_id, action_id=action_id)
            return

        action = self.catalog.find_device_action(device_id, action_id)
        if action is None or action.handler is None:
            self._reject_invocation(
                message,
                reason="unknown_action" if action is None else "no_handler",
                device_id=device_id,
                action_id=action_id
            )
            return

        await self._invoke(
            message,
            lambda session: self.handlers.handle_device_action(device_id, action, session),
            device_id=device_id,
            action_id=action_id
        )

    async def _handle_action_progress(self, message: DeviceManagementMessage):
        origin = message.get("origin")
        session = self.sessions.get(origin)

        if session is None:
            self._unknown_origin_count += 1
            self.logger.warning("unknown_action_origin", origin=origin, sender=message.sender)
            self._reply(message, {"error": UNKNOWN_ORIGIN_ERROR})
            return

        session.deliver_reply(message)

    async def _invoke(self, message: DeviceManagementMessage, runner: Callable, **context):
        """Run one action handler inside its own dialog session and send the final result"""
        session = DialogSession(message, self.transport)
        self.sessions.register(message.id, session)
        self._invocation_count += 1
        self.logger.info("action_invoked", origin=message.id, **context)

        try:
            result = self._normalize_result(await resolve(runner(session)), message.id)
        except DialogTimeout as e:
            self.logger.warning("action_timed_out", origin=message.id, idle_seconds=round(e.idle_seconds, 1), **context)
            result = None
        except Exception as e:
            self._error_count += 1
            self.logger.error(
                "action_failed",
                origin=message.id,
                error=str(e),
                error_type=type(e).__name__,
                **context
            )
            result = error_response(500, str(e))
        finally:
            self.sessions.remove(message.id, session)

        if session.is_closed:
            # Aborted by the idle reaper; the client stopped answering long ago
            self.logger.debug("final_result_skipped", origin=message.id, reason="session_closed")
            return

        session.send_final_result(result)

    def _normalize_result(self, result: Any, origin: Any) -> Dict[str, Any]:
        if result is None:
            return dict(NO_REFRESH)
        if not isinstance(result, dict):
            self.logger.warning("invalid_action_result", origin=origin, result_type=type(result).__name__)
            return dict(NO_REFRESH)
        return result

    def _reject_invocation(self, message: DeviceManagementMessage, reason: str, **context):
        self._rejected_invocations += 1
        self.logger.warning("action_unavailable", origin=message.id, reason=reason, **context)
        self._reply(message, {
            "result": dict(NO_REFRESH),
            "type": "result",
            "origin": message.id,
        })

    def _reply(self, message: DeviceManagementMessage, payload: Any):
        self.transport.send(message.sender, message.command, payload, message.callback)

    async def _reap_idle_sessions(self):
        while True:
            try:
                await asyncio.sleep(self.config.reaper_interval)
                self.sessions.expire_idle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error("session_reaper_error", error=str(e), error_type=type(e).__name__)

    def get_routing_stats(self) -> dict:
        """Get routing statistics"""
        error_rate = self._error_count / max(self._message_count, 1)
        return {
            "message_count": self._message_count,
            "error_count": self._error_count,
            "error_rate": error_rate,
            "invocations": self._invocation_count,
            "rejected_invocations": self._rejected_invocations,
            "unknown_origins": self._unknown_origin_count,
            "known_devices": len(self.device_index),
            **self.sessions.get_stats(),
        }
