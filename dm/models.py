from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union


# Plain string or {"en": "...", "de": "..."}
LocalizedText = Union[str, Dict[str, str]]

# "device" | "instance" | False
DeviceRefresh = Union[bool, str]

# "connected" | "disconnected" | {"icon": ..., "description": ...}
DeviceStatus = Union[str, Dict[str, Any]]

JsonFormSchema = Dict[str, Any]
JsonFormData = Dict[str, Any]

RefreshResult = Dict[str, Any]

# Host callables may answer synchronously or return an awaitable
MaybeAwaitable = Union[Any, Awaitable[Any]]

InstanceActionHandler = Callable[["DialogSession"], MaybeAwaitable]
DeviceActionHandler = Callable[[str, "DialogSession"], MaybeAwaitable]


class DialogType(Enum):
    MESSAGE = "message"
    CONFIRM = "confirm"
    FORM = "form"
    PROGRESS = "progress"
    RESULT = "result"


class Command(Enum):
    """Command names without the configurable prefix"""
    INSTANCE_INFO = "instanceInfo"
    LIST_DEVICES = "listDevices"
    DEVICE_DETAILS = "deviceDetails"
    INSTANCE_ACTION = "instanceAction"
    DEVICE_ACTION = "deviceAction"
    ACTION_PROGRESS = "actionProgress"


@dataclass
class DeviceManagementMessage:
    """One inbound message as delivered by the transport"""
    command: str
    message: Any = None
    sender: Optional[str] = None
    callback: Any = None
    id: Any = None

    def get(self, name: str, default: Any = None) -> Any:
        """Read a key from a dict payload; non-dict payloads have no fields"""
        if isinstance(self.message, dict):
            return self.message.get(name, default)
        return default


# Internal action records. These carry executable handlers and must never be
# sent to a client directly; see ActionCatalog.project_for_client.

@dataclass
class InstanceAction:
    id: str
    icon: str
    title: str
    description: Optional[LocalizedText] = None
    handler: Optional[InstanceActionHandler] = None


@dataclass
class DeviceAction:
    id: str
    icon: str
    description: Optional[LocalizedText] = None
    handler: Optional[DeviceActionHandler] = None


# Wire action records, the only shape that crosses the transport

@dataclass(frozen=True)
class InstanceActionInfo:
    id: str
    icon: str
    title: str
    disabled: bool
    description: Optional[LocalizedText] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "icon": self.icon, "title": self.title, "disabled": self.disabled}
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass(frozen=True)
class DeviceActionInfo:
    id: str
    icon: str
    disabled: bool
    description: Optional[LocalizedText] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "icon": self.icon, "disabled": self.disabled}
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass(frozen=True)
class DeviceInfo:
    id: str
    name: LocalizedText
    status: Optional[DeviceStatus] = None
    actions: Optional[List[DeviceAction]] = field(default_factory=list)
    has_details: bool = False

    def __post_init__(self):
        if self.actions is None:
            object.__setattr__(self, "actions", [])

    def to_dict(self, actions: List[DeviceActionInfo]) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.status is not None:
            data["status"] = self.status
        data["actions"] = [action.to_dict() for action in actions]
        if self.has_details:
            data["hasDetails"] = True
        return data


@dataclass
class InstanceDetails:
    api_version: str = "v1"
    actions: List[InstanceAction] = field(default_factory=list)

    def to_dict(self, actions: List[InstanceActionInfo]) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "actions": [action.to_dict() for action in actions],
        }


@dataclass
class DeviceDetails:
    id: str
    schema: JsonFormSchema = field(default_factory=dict)
    data: Optional[JsonFormData] = None

    def to_dict(self) -> Dict[str, Any]:
        details = {"id": self.id, "schema": self.schema}
        if self.data is not None:
            details["data"] = self.data
        return details


def error_response(code: int, message: str) -> Dict[str, Any]:
    return {"error": {"code": code, "message": message}}
