import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from poker import db
from poker.models import Room
from .stories import AttachTimerSnapshot, story_service


@dataclass
class TimerState:
    duration: int
    remaining: int
    is_active: bool = True
    is_paused: bool = False
    started_at: Optional[str] = None

    def to_dict(self):
        return {
            'duration': self.duration,
            'remaining': self.remaining,
            'isActive': self.is_active,
            'isPaused': self.is_paused,
            'startedAt': self.started_at,
        }


class RoomTimers:
    """One countdown per room, ticking once per TIMER_TICK_SEC.

    - start replaces any running countdown for the room
    - pause/resume/stop silently no-op without a live timer
    - every state change is persisted onto the room's current story
    - in TESTING the tick loop is not scheduled unless ENABLE_SCHEDULER_IN_TESTS;
      tests call ``tick`` directly
    """

    def __init__(self, app, socketio, registry, broadcast):
        self.app = app
        self.socketio = socketio
        self.registry = registry
        self._broadcast = broadcast

    def snapshot(self, room_id) -> Optional[dict]:
        with self.registry.lock:
            state = self.registry.timers.get(room_id)
            return state.to_dict() if state else None

    def start(self, room_id: str, duration: int) -> dict:
        generation = self.registry.next_timer_generation(room_id)
        state = TimerState(
            duration=duration,
            remaining=duration,
            started_at=datetime.now(timezone.utc).isoformat(),
        )
        with self.registry.lock:
            self.registry.timers[room_id] = state
            snapshot = state.to_dict()
        self.app.logger.info(f"[timer-start] room={room_id} duration={duration}s generation={generation}")
        self._persist(room_id, snapshot)
        self._broadcast(room_id, 'timer_updated', snapshot)
        self._schedule(room_id, generation)
        return snapshot

    def pause(self, room_id: str) -> Optional[dict]:
        with self.registry.lock:
            state = self.registry.timers.get(room_id)
            if not state or not state.is_active or state.is_paused:
                return None
            state.is_paused = True
            snapshot = state.to_dict()
        self.app.logger.info(f"[timer-pause] room={room_id} remaining={snapshot['remaining']}s")
        self._persist(room_id, snapshot)
        self._broadcast(room_id, 'timer_updated', snapshot)
        return snapshot

    def resume(self, room_id: str) -> Optional[dict]:
        with self.registry.lock:
            state = self.registry.timers.get(room_id)
            if not state or not state.is_active or not state.is_paused:
                return None
            state.is_paused = False
            snapshot = state.to_dict()
        self.app.logger.info(f"[timer-resume] room={room_id} remaining={snapshot['remaining']}s")
        self._persist(room_id, snapshot)
        self._broadcast(room_id, 'timer_updated', snapshot)
        return snapshot

    def stop(self, room_id: str) -> Optional[dict]:
        with self.registry.lock:
            state = self.registry.timers.pop(room_id, None)
            if state is None:
                return None
            self.registry.next_timer_generation(room_id)
            state.is_active = False
            state.remaining = 0
            snapshot = state.to_dict()
        self.app.logger.info(f"[timer-stop] room={room_id}")
        self._persist(room_id, snapshot)
        self._broadcast(room_id, 'timer_updated', snapshot)
        return snapshot

    def tick(self, room_id: str, generation: Optional[int] = None) -> bool:
        """Advance the room's countdown by one step. Returns True once the loop should end."""
        with self.registry.lock:
            state = self.registry.timers.get(room_id)
            if state is None or not state.is_active:
                return True
            if generation is not None and generation != self.registry.timer_generation(room_id):
                return True
            if state.is_paused:
                return False
            state.remaining = max(0, state.remaining - 1)
            completed = state.remaining == 0
            if completed:
                state.is_active = False
                self.registry.next_timer_generation(room_id)
            snapshot = state.to_dict()

        if completed:
            self.app.logger.info(f"[timer-complete] room={room_id}")
            self._broadcast(room_id, 'timer_complete')
            self._broadcast(room_id, 'timer_updated', snapshot)
            self._persist(room_id, snapshot)
            return True

        self._broadcast(room_id, 'timer_tick', snapshot['remaining'])
        self._broadcast(room_id, 'timer_updated', snapshot)
        return False

    def _persist(self, room_id: str, snapshot: dict) -> None:
        try:
            room = db.session.get(Room, room_id)
            if room and room.current_story_id:
                story_service.update_story(room.current_story_id, [AttachTimerSnapshot(snapshot)])
        except SQLAlchemyError:
            db.session.rollback()
            self.app.logger.exception(f"[timer-persist-failed] room={room_id}")

    def _schedule(self, room_id: str, generation: int) -> None:
        if self.app.config.get('TESTING') and not self.app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
            return
        self.socketio.start_background_task(self._run, room_id, generation)

    def _run(self, room_id: str, generation: int) -> None:
        interval = float(self.app.config.get('TIMER_TICK_SEC', 1.0))
        # Each deadline is anchored to the previous one so processing time does not accumulate
        next_at = time.monotonic() + interval
        while True:
            self.socketio.sleep(max(0.0, next_at - time.monotonic()))
            if self.registry.timer_generation(room_id) != generation:
                return
            with self.app.app_context():
                try:
                    done = self.tick(room_id, generation)
                except Exception:
                    self.app.logger.exception(f"[timer-tick-failed] room={room_id}")
                    done = True
            if done:
                return
            next_at += interval
