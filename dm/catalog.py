from typing import Dict, Iterable, List, Optional, Union

from dm.errors import DuplicateActionId
from dm.models import DeviceAction, DeviceActionInfo, InstanceAction, InstanceActionInfo
from utils import get_logger


Action = Union[InstanceAction, DeviceAction]
ActionInfo = Union[InstanceActionInfo, DeviceActionInfo]


def ensure_unique_action_ids(actions: Iterable[Action], device_id: Optional[str] = None) -> List[Action]:
    """Return the actions as a list, raising DuplicateActionId on the first repeated id"""
    seen = set()
    result = []
    for action in actions:
        if action.id in seen:
            raise DuplicateActionId(action.id, device_id)
        seen.add(action.id)
        result.append(action)
    return result


def to_wire_action(action: Action) -> ActionInfo:
    """Convert an internal action into the client-safe record without its handler"""
    disabled = action.handler is None
    if isinstance(action, InstanceAction):
        return InstanceActionInfo(
            id=action.id,
            icon=action.icon,
            title=action.title,
            disabled=disabled,
            description=action.description,
        )
    return DeviceActionInfo(
        id=action.id,
        icon=action.icon,
        disabled=disabled,
        description=action.description,
    )


class ActionCatalog:
    """Most recent instance and device action snapshots, indexed by action id"""

    def __init__(self):
        self.logger = get_logger(__name__)
        self._instance_actions: Dict[str, InstanceAction] = {}
        self._device_actions: Dict[str, Dict[str, DeviceAction]] = {}

    def set_instance_actions(self, actions: Iterable[InstanceAction]):
        validated = ensure_unique_action_ids(actions)
        self._instance_actions = {action.id: action for action in validated}
        self.logger.debug("instance_actions_installed", count=len(validated))

    def set_device_actions(self, device_id: str, actions: Iterable[DeviceAction]):
        validated = ensure_unique_action_ids(actions, device_id)
        self._device_actions[device_id] = {action.id: action for action in validated}

    def replace_device_actions(self, actions_by_device: Dict[str, Iterable[DeviceAction]]):
        """Swap in a full device action snapshot; nothing changes unless every list is valid"""
        staged = {
            device_id: {action.id: action for action in ensure_unique_action_ids(actions, device_id)}
            for device_id, actions in actions_by_device.items()
        }
        self._device_actions = staged
        self.logger.debug(
            "device_actions_installed",
            devices=len(staged),
            actions=sum(len(actions) for actions in staged.values())
        )

    @staticmethod
    def project_for_client(actions: Iterable[Action]) -> List[ActionInfo]:
        return [to_wire_action(action) for action in actions]

    def find_instance_action(self, action_id) -> Optional[InstanceAction]:
        if not isinstance(action_id, str):
            return None
        return self._instance_actions.get(action_id)

    def find_device_action(self, device_id, action_id) -> Optional[DeviceAction]:
        if not isinstance(device_id, str) or not isinstance(action_id, str):
            return None
        return self._device_actions.get(device_id, {}).get(action_id)

    @property
    def instance_actions(self) -> List[InstanceAction]:
        return list(self._instance_actions.values())

    def device_actions(self, device_id: str) -> List[DeviceAction]:
        return list(self._device_actions.get(device_id, {}).values())
