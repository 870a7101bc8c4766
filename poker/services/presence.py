import threading
import time
from collections import namedtuple
from typing import Dict, List, Optional, Tuple

PresenceEntry = namedtuple('PresenceEntry', ['sid', 'room_id', 'user_id'])
PendingEviction = namedtuple('PendingEviction', ['room_id', 'user_id', 'deadline'])


class PresenceTracker:
    """Transient sid <-> user <-> room mappings plus pending grace-period evictions.

    Nothing here is persisted; a server restart forgets every socket.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._by_sid: Dict[str, PresenceEntry] = {}
        self._pending: Dict[Tuple[str, str], PendingEviction] = {}

    def attach(self, sid: str, room_id: str, user_id: str) -> Optional[PresenceEntry]:
        """Bind a socket to (room, user); returns the binding it replaced, if any."""
        with self._lock:
            previous = self._by_sid.get(sid)
            self._by_sid[sid] = PresenceEntry(sid, room_id, user_id)
            return previous

    def detach(self, sid: str) -> Optional[PresenceEntry]:
        with self._lock:
            return self._by_sid.pop(sid, None)

    def lookup(self, sid: str) -> Optional[PresenceEntry]:
        with self._lock:
            return self._by_sid.get(sid)

    def sids_for(self, room_id: str, user_id: str) -> List[str]:
        with self._lock:
            return [e.sid for e in self._by_sid.values() if e.room_id == room_id and e.user_id == user_id]

    def is_present(self, room_id: str, user_id: str) -> bool:
        return bool(self.sids_for(room_id, user_id))

    def room_sids(self, room_id: str) -> List[str]:
        with self._lock:
            return [e.sid for e in self._by_sid.values() if e.room_id == room_id]

    # ---- grace-period evictions ----

    def arm_eviction(self, room_id: str, user_id: str, grace_sec: float) -> PendingEviction:
        """Arm (or re-arm) the eviction for a user; a later arm supersedes an earlier one."""
        pending = PendingEviction(room_id, user_id, time.monotonic() + grace_sec)
        with self._lock:
            self._pending[(room_id, user_id)] = pending
        return pending

    def cancel_eviction(self, room_id: str, user_id: str) -> bool:
        with self._lock:
            return self._pending.pop((room_id, user_id), None) is not None

    def pending_eviction(self, room_id: str, user_id: str) -> Optional[PendingEviction]:
        with self._lock:
            return self._pending.get((room_id, user_id))

    def claim_eviction(self, room_id: str, user_id: str, deadline: Optional[float] = None) -> Optional[PendingEviction]:
        """Pop the pending eviction if it is still the one identified by ``deadline``."""
        with self._lock:
            pending = self._pending.get((room_id, user_id))
            if pending is None:
                return None
            if deadline is not None and pending.deadline != deadline:
                return None
            del self._pending[(room_id, user_id)]
            return pending

    def cancel_room(self, room_id: str) -> None:
        with self._lock:
            for key in [k for k in self._pending if k[0] == room_id]:
                del self._pending[key]
            for sid in [s for s, e in self._by_sid.items() if e.room_id == room_id]:
                del self._by_sid[sid]

    def clear(self) -> None:
        with self._lock:
            self._by_sid.clear()
            self._pending.clear()
