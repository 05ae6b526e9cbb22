"""Error taxonomy for the device management core"""

from typing import Any


class DeviceManagementError(Exception):
    """Base class for all device management errors"""


class CatalogIntegrityError(DeviceManagementError):
    """A snapshot could not be installed because it violates an invariant"""


class DuplicateActionId(CatalogIntegrityError):
    def __init__(self, action_id: str, device_id: str = None):
        self.action_id = action_id
        self.device_id = device_id
        scope = f"device '{device_id}'" if device_id is not None else "instance"
        super().__init__(f"Duplicate action id '{action_id}' for {scope}")


class DuplicateDeviceId(CatalogIntegrityError):
    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(f"Duplicate device id '{device_id}'")


class DialogStateError(DeviceManagementError):
    """An action handler used its dialog session out of order"""


class DialogBusy(DialogStateError):
    def __init__(self, message: str = None):
        super().__init__(
            message or "Can't show another dialog while waiting for a reply to the previous one"
        )


class SessionClosed(DialogStateError):
    def __init__(self, origin: Any = None):
        self.origin = origin
        super().__init__(f"Dialog session {origin} is closed, no more dialogs can be shown")


class ProgressDialogClosed(DialogStateError):
    def __init__(self):
        super().__init__("Progress dialog was already closed")


class DialogTimeout(DeviceManagementError):
    """Raised into a suspended action handler when its session expires"""

    def __init__(self, origin: Any, idle_seconds: float):
        self.origin = origin
        self.idle_seconds = idle_seconds
        super().__init__(f"Dialog session {origin} timed out after {idle_seconds:.0f}s without a reply")
