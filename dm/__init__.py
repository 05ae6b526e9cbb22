"""Device management core: action catalog, device index, dialog sessions and command routing"""

from dm.catalog import ActionCatalog, to_wire_action
from dm.devices import DeviceIndex
from dm.errors import (
    CatalogIntegrityError,
    DeviceManagementError,
    DialogBusy,
    DialogStateError,
    DialogTimeout,
    DuplicateActionId,
    DuplicateDeviceId,
    ProgressDialogClosed,
    SessionClosed,
)
from dm.handlers import DeviceManagementHandlers
from dm.models import (
    DeviceAction,
    DeviceActionInfo,
    DeviceDetails,
    DeviceInfo,
    DeviceManagementMessage,
    InstanceAction,
    InstanceActionInfo,
    InstanceDetails,
)
from dm.router import DeviceManagementRouter
from dm.session import ActionContext, DialogSession, ProgressDialog, SessionState
from dm.session_table import SessionTable

__all__ = [
    "ActionCatalog",
    "ActionContext",
    "CatalogIntegrityError",
    "DeviceAction",
    "DeviceActionInfo",
    "DeviceDetails",
    "DeviceIndex",
    "DeviceInfo",
    "DeviceManagementError",
    "DeviceManagementHandlers",
    "DeviceManagementMessage",
    "DeviceManagementRouter",
    "DialogBusy",
    "DialogSession",
    "DialogStateError",
    "DialogTimeout",
    "DuplicateActionId",
    "DuplicateDeviceId",
    "InstanceAction",
    "InstanceActionInfo",
    "InstanceDetails",
    "ProgressDialog",
    "ProgressDialogClosed",
    "SessionClosed",
    "SessionState",
    "SessionTable",
    "to_wire_action",
]
