"""
Observable process-wide service state.

ServiceState is an immutable snapshot; ServiceStateStore holds the current
snapshot, replaces it whole under a lock and notifies subscribers with the
new value.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Tuple

from .device import Device


@dataclass(frozen=True)
class ServiceState:
    """Snapshot of the companion server and the devices it reports."""
    service_running: bool = False
    last_error: Optional[str] = None
    devices: Tuple[Device, ...] = field(default_factory=tuple)
    status_message: str = ""
    no_devices: bool = False

    @property
    def device_ids(self) -> List[str]:
        return [device.device_id for device in self.devices]

    def find_device(self, device_id: str) -> Optional[Device]:
        for device in self.devices:
            if device.device_id == device_id:
                return device
        return None


StateObserver = Callable[[ServiceState], None]


class ServiceStateStore:
    """
    Thread-safe holder of the current ServiceState.

    Observers are called outside the lock, on the thread that made the
    update, with the snapshot that update produced.
    """

    def __init__(self, initial: Optional[ServiceState] = None):
        self._state = initial or ServiceState()
        self._lock = threading.Lock()
        self._observers: List[StateObserver] = []
        self._logger = logging.getLogger(__name__)

    def snapshot(self) -> ServiceState:
        with self._lock:
            return self._state

    def update(self, **changes) -> ServiceState:
        """
        Replace the current state with a copy carrying the given changes.

        Args:
            **changes: ServiceState fields to change

        Returns:
            The new snapshot
        """
        if "devices" in changes:
            changes["devices"] = tuple(changes["devices"])

        with self._lock:
            self._state = replace(self._state, **changes)
            new_state = self._state
            observers = list(self._observers)

        for observer in observers:
            try:
                observer(new_state)
            except Exception as e:
                self._logger.error(f"State observer failed: {e}")

        return new_state

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        """
        Register an observer of state changes.

        Returns:
            A callable that removes the observer again
        """
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            self.unsubscribe(observer)

        return unsubscribe

    def unsubscribe(self, observer: StateObserver) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)
