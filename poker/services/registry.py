import threading
from typing import Dict

from .presence import PresenceTracker


class SessionRegistry:
    """Process-wide live session state: socket presence and per-room countdowns.

    Owned by one ``SessionCoordinator``; a fresh app gets a fresh registry.
    Timer generations let a background tick loop notice it has been
    replaced by a newer ``start`` or cancelled by ``stop``.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.presence = PresenceTracker()
        self.timers: Dict[str, object] = {}
        self._timer_generation: Dict[str, int] = {}

    def next_timer_generation(self, room_id: str) -> int:
        with self.lock:
            generation = self._timer_generation.get(room_id, 0) + 1
            self._timer_generation[room_id] = generation
            return generation

    def timer_generation(self, room_id: str) -> int:
        with self.lock:
            return self._timer_generation.get(room_id, 0)

    def shutdown(self) -> None:
        """Invalidate every running tick loop and forget all presence."""
        with self.lock:
            for room_id in list(self._timer_generation):
                self._timer_generation[room_id] += 1
            self.timers.clear()
        self.presence.clear()
