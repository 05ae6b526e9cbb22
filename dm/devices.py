from typing import Dict, Iterable, List, Optional

from dm.catalog import ensure_unique_action_ids
from dm.errors import DuplicateDeviceId
from dm.models import DeviceInfo
from utils import get_logger


class DeviceIndex:
    """Lookup table over the latest device snapshot

    There is no incremental update path: every refresh rebuilds the whole
    index, and a refresh that fails validation leaves the previous one in place.
    """

    def __init__(self):
        self.logger = get_logger(__name__)
        self._devices: Dict[str, DeviceInfo] = {}
        self._built = False

    def rebuild(self, devices: Iterable[DeviceInfo]):
        staged: Dict[str, DeviceInfo] = {}
        for device in devices:
            if device.id in staged:
                raise DuplicateDeviceId(device.id)
            ensure_unique_action_ids(device.actions, device.id)
            staged[device.id] = device

        self._devices = staged
        self._built = True
        self.logger.debug("device_index_rebuilt", devices=len(staged))

    def lookup(self, device_id) -> Optional[DeviceInfo]:
        if not isinstance(device_id, str):
            return None
        return self._devices.get(device_id)

    @property
    def is_built(self) -> bool:
        return self._built

    @property
    def devices(self) -> List[DeviceInfo]:
        return list(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id) -> bool:
        return self.lookup(device_id) is not None
