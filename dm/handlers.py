import inspect
from dataclasses import dataclass
from typing import Any, Callable, Optional

from dm.models import DeviceAction, DeviceDetails, InstanceAction, InstanceDetails, MaybeAwaitable
from dm.session import DialogSession


async def resolve(value: Any) -> Any:
    """Await value if the host handed back an awaitable"""
    if inspect.isawaitable(value):
        return await value
    return value


def default_instance_info() -> InstanceDetails:
    return InstanceDetails(api_version="v1")


def default_device_details(device_id: str) -> DeviceDetails:
    return DeviceDetails(id=device_id, schema={})


def run_instance_action(action: InstanceAction, context: DialogSession) -> MaybeAwaitable:
    return action.handler(context)


def run_device_action(device_id: str, action: DeviceAction, context: DialogSession) -> MaybeAwaitable:
    return action.handler(device_id, context)


@dataclass
class DeviceManagementHandlers:
    """Capabilities a host provides to the router

    Only list_devices is required. The action runners are called for enabled
    actions only and default to invoking the action's own handler; a host can
    override them to wrap every invocation.
    """
    list_devices: Callable[[], MaybeAwaitable]
    get_instance_info: Optional[Callable[[], MaybeAwaitable]] = None
    get_device_details: Optional[Callable[[str], MaybeAwaitable]] = None
    handle_instance_action: Optional[Callable[[InstanceAction, DialogSession], MaybeAwaitable]] = None
    handle_device_action: Optional[Callable[[str, DeviceAction, DialogSession], MaybeAwaitable]] = None

    def __post_init__(self):
        if self.list_devices is None:
            raise ValueError("list_devices is required")
        if self.get_instance_info is None:
            self.get_instance_info = default_instance_info
        if self.get_device_details is None:
            self.get_device_details = default_device_details
        if self.handle_instance_action is None:
            self.handle_instance_action = run_instance_action
        if self.handle_device_action is None:
            self.handle_device_action = run_device_action
