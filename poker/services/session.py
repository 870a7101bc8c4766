"""Room session coordinator.

Applies every inbound session event to the room/story store and the
timer subsystem, then fans the resulting snapshots out to the sockets in
the room's channel. Handlers run to completion between database calls;
concurrent writes to the same room are last-write-wins.
"""
import time
from typing import Optional

from flask_socketio import join_room, leave_room
from sqlalchemy.exc import SQLAlchemyError

from poker import db
from poker.errors import InvalidPayload, NotFound, Unauthorized
from .registry import SessionRegistry
from .rooms import coerce_user, room_service
from .stories import parse_story_patch, story_service
from .timers import RoomTimers

NAMESPACE = '/ws'


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


def _room_code(room_id) -> str:
    if not isinstance(room_id, str) or not room_id.strip():
        raise InvalidPayload('roomId is required')
    return room_id.strip().upper()


def _story_id(story_id) -> str:
    if not isinstance(story_id, str) or not story_id:
        raise InvalidPayload('storyId is required')
    return story_id


class SessionCoordinator:

    def __init__(self, app, socketio, registry=None, rooms=room_service, stories=story_service):
        self.app = app
        self.socketio = socketio
        self.registry = registry or SessionRegistry()
        self.rooms = rooms
        self.stories = stories
        self.timers = RoomTimers(app, socketio, self.registry, self.broadcast)

    @property
    def presence(self):
        return self.registry.presence

    # ---- fan-out ----

    def broadcast(self, room_id: str, event: str, *args, skip_sid=None) -> None:
        self.socketio.emit(event, *args, to=room_channel(room_id), skip_sid=skip_sid, namespace=NAMESPACE)

    def send(self, sid: str, event: str, *args) -> None:
        self.socketio.emit(event, *args, to=sid, namespace=NAMESPACE)

    def _broadcast_room(self, room) -> dict:
        snapshot = room.to_dict()
        self.broadcast(room.id, 'room_updated', snapshot)
        return snapshot

    def _schedule(self, fn, *args) -> None:
        if self.app.config.get('TESTING') and not self.app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
            return
        self.socketio.start_background_task(fn, *args)

    def _require_room(self, room_id):
        room = self.rooms.get_room(room_id)
        if room is None:
            raise NotFound(f'Room {room_id} not found')
        return room

    def _require_story(self, story_id, room_id=None):
        story = self.stories.get_story(story_id)
        if story is None or (room_id is not None and story.room_id != room_id):
            raise NotFound(f'Story {story_id} not found')
        return story

    def _deck_for(self, room_id) -> Optional[str]:
        room = self.rooms.get_room(room_id)
        return room.card_deck_id if room else None

    # ---- membership ----

    def join_room(self, sid, room_id, user, password=None) -> dict:
        """Admit a user to a room; ``sid`` is None for joins made over HTTP."""
        code = _room_code(room_id)
        user_id = coerce_user(user)['id']

        entry = self.presence.lookup(sid) if sid else None
        if entry and entry.room_id == code and entry.user_id == user_id:
            snapshot = self._require_room(code).to_dict()
            self.send(sid, 'room_joined', snapshot)
            return snapshot

        was_member = self.rooms.is_participant(code, user_id)
        # Password check happens inside add_participant before any write
        room = self.rooms.add_participant(code, user, password)
        if room is None:
            raise NotFound(f'Room {code} not found')

        if sid:
            if entry and entry.room_id != code:
                leave_room(room_channel(entry.room_id), sid=sid, namespace=NAMESPACE)
            join_room(room_channel(code), sid=sid, namespace=NAMESPACE)
            self.presence.attach(sid, code, user_id)
            if entry and entry.room_id != code and not self.presence.is_present(entry.room_id, entry.user_id):
                self._arm_grace(entry.room_id, entry.user_id)
        if self.presence.cancel_eviction(code, user_id):
            self.app.logger.info(f"[grace-cancel] room={code} user={user_id}")

        self.app.logger.info(f"[join] room={code} user={user_id} sid={sid or '-'}")
        snapshot = room.to_dict()
        if sid:
            self.send(sid, 'room_joined', snapshot)
        if not was_member:
            self.broadcast(code, 'user_joined', self.rooms.get_user(user_id).to_dict(), skip_sid=sid)
        self.broadcast(code, 'room_updated', snapshot)
        timer = self.timers.snapshot(code)
        if sid and timer:
            self.send(sid, 'timer_updated', timer)
        return snapshot

    def leave_room(self, sid, room_id, user_id) -> dict:
        code = _room_code(room_id)
        if not isinstance(user_id, str) or not user_id:
            raise InvalidPayload('userId is required')
        # Every tab of the user leaves with it
        self._detach_user(code, user_id)
        self.presence.cancel_eviction(code, user_id)

        room = self._remove_participant(code, user_id)
        self.app.logger.info(f"[leave] room={code} user={user_id}")
        return self._broadcast_room(room)

    def remove_user(self, sid, room_id, target_user_id, requester_user_id) -> dict:
        code = _room_code(room_id)
        room = self._require_room(code)
        if not requester_user_id or requester_user_id != room.owner_id:
            raise Unauthorized('Only the room owner can remove participants')
        if target_user_id == requester_user_id:
            raise Unauthorized('The room owner cannot remove themselves')

        for target_sid in self.presence.sids_for(code, target_user_id):
            self.send(target_sid, 'removed_from_room', {'roomId': code})
        self._detach_user(code, target_user_id)
        self.presence.cancel_eviction(code, target_user_id)

        room = self._remove_participant(code, target_user_id)
        self.app.logger.info(f"[remove] room={code} user={target_user_id} by={requester_user_id}")
        return self._broadcast_room(room)

    def _detach_user(self, room_id, user_id) -> None:
        for member_sid in self.presence.sids_for(room_id, user_id):
            leave_room(room_channel(room_id), sid=member_sid, namespace=NAMESPACE)
            self.presence.detach(member_sid)

    def _remove_participant(self, room_id, user_id):
        was_member = self.rooms.is_participant(room_id, user_id)
        room = self.rooms.remove_participant(room_id, user_id)
        if room is None:
            raise NotFound(f'Room {room_id} not found')
        if was_member:
            self.broadcast(room_id, 'user_left', user_id)
        return room

    # ---- disconnect grace period ----

    def disconnect(self, sid):
        entry = self.presence.detach(sid)
        if entry is None:
            return None
        if self.presence.is_present(entry.room_id, entry.user_id):
            # Still connected from another socket
            return None
        return self._arm_grace(entry.room_id, entry.user_id)

    def _arm_grace(self, room_id, user_id):
        grace = float(self.app.config.get('DISCONNECT_GRACE_SEC', 30))
        pending = self.presence.arm_eviction(room_id, user_id, grace)
        self.app.logger.info(f"[grace-armed] room={room_id} user={user_id} grace={grace}s")
        self._schedule(self._grace_runner, room_id, user_id, pending.deadline)
        return pending

    def _grace_runner(self, room_id, user_id, deadline):
        self.socketio.sleep(max(0.0, deadline - time.monotonic()))
        with self.app.app_context():
            try:
                self.expire_grace(room_id, user_id, deadline)
            except SQLAlchemyError:
                db.session.rollback()
                self.app.logger.exception(f"[grace-failed] room={room_id} user={user_id}")

    def expire_grace(self, room_id, user_id, deadline=None) -> bool:
        """Evict a disconnected user unless they rejoined; returns True when evicted."""
        pending = self.presence.claim_eviction(room_id, user_id, deadline)
        if pending is None:
            return False
        if self.presence.is_present(room_id, user_id):
            return False
        self.app.logger.info(f"[grace-expired] room={room_id} user={user_id}")
        try:
            room = self._remove_participant(room_id, user_id)
        except NotFound:
            # The room was deleted while the user was away
            return True
        self._broadcast_room(room)
        return True

    # ---- voting lifecycle ----

    def start_voting(self, sid, room_id, story_id) -> dict:
        code = _room_code(room_id)
        story = self._require_story(_story_id(story_id), code)
        room = self._require_room(code)
        if room.current_story_id and room.current_story_id != story.id:
            # The countdown belongs to the story being replaced
            self.timers.stop(code)

        self.rooms.set_voting_active(code, True)
        room = self.rooms.set_current_story(code, story.id)
        if room is None:
            raise NotFound(f'Room {code} not found')
        self.app.logger.info(f"[voting-start] room={code} story={story.id}")
        story_snapshot = story.to_dict(deck_id=room.card_deck_id)
        self.broadcast(code, 'voting_started', story_snapshot)
        self._broadcast_room(room)
        return story_snapshot

    def submit_vote(self, sid, story_id, vote) -> dict:
        story_id = _story_id(story_id)
        if not isinstance(vote, dict):
            raise InvalidPayload('vote must be an object')
        user_id = vote.get('userId')
        value = vote.get('value')
        if not isinstance(user_id, str) or not user_id:
            raise InvalidPayload('vote.userId is required')
        if not isinstance(value, str) or not value or len(value) > 16:
            raise InvalidPayload('vote.value must be a card value')

        story = self.stories.add_vote(story_id, user_id, value)
        if story is None:
            raise NotFound(f'Story {story_id} not found')
        snapshot = story.to_dict(deck_id=self._deck_for(story.room_id))
        self.broadcast(story.room_id, 'vote_submitted', snapshot)
        return snapshot

    def reveal_votes(self, sid, room_id, story_id) -> dict:
        code = _room_code(room_id)
        self._require_story(_story_id(story_id), code)
        story = self.stories.reveal_votes(story_id)
        room = self._require_room(code)
        snapshot = story.to_dict(deck_id=room.card_deck_id)
        self.app.logger.info(f"[reveal] room={code} story={story.id} votes={len(snapshot['votes'])}")
        self.broadcast(code, 'votes_revealed', snapshot)
        self._broadcast_room(room)
        return snapshot

    def clear_votes(self, sid, room_id, story_id) -> dict:
        code = _room_code(room_id)
        self._require_story(_story_id(story_id), code)
        story = self.stories.clear_votes(story_id)
        room = self._require_room(code)
        self.app.logger.info(f"[revote] room={code} story={story.id}")
        snapshot = story.to_dict(deck_id=room.card_deck_id)
        self.broadcast(code, 'votes_cleared', snapshot)
        self._broadcast_room(room)
        return snapshot

    def set_final_estimate(self, sid, room_id, story_id, value) -> dict:
        code = _room_code(room_id)
        self._require_story(_story_id(story_id), code)
        # Raises InvalidEstimate without touching the story
        story = self.stories.set_final_estimate(story_id, value)
        room = self._require_room(code)
        self.app.logger.info(f"[final-estimate] room={code} story={story.id} value={value}")
        snapshot = story.to_dict(deck_id=room.card_deck_id)
        self.broadcast(code, 'final_estimate_set', snapshot)
        self._broadcast_room(room)
        return snapshot

    # ---- stories ----

    def create_story(self, sid, room_id, story) -> dict:
        code = _room_code(room_id)
        if not isinstance(story, dict):
            raise InvalidPayload('story must be an object')
        created = self.stories.create_story(
            code,
            story.get('title'),
            story.get('description'),
            story.get('acceptanceCriteria'),
        )
        if created is None:
            raise NotFound(f'Room {code} not found')
        snapshot = created.to_dict(deck_id=self._deck_for(code))
        self.broadcast(code, 'story_created', snapshot)
        return snapshot

    def update_story(self, sid, story_id, patch) -> dict:
        updates = parse_story_patch(patch)
        story = self.stories.update_story(_story_id(story_id), updates)
        if story is None:
            raise NotFound(f'Story {story_id} not found')
        snapshot = story.to_dict(deck_id=self._deck_for(story.room_id))
        self.broadcast(story.room_id, 'story_updated', snapshot)
        return snapshot

    def delete_story(self, story_id) -> dict:
        story = self._require_story(_story_id(story_id))
        code = story.room_id
        if self._require_room(code).current_story_id == story.id:
            self.timers.stop(code)
        self.stories.delete_story(story.id)
        self.app.logger.info(f"[story-delete] room={code} story={story_id}")
        return self._broadcast_room(self._require_room(code))

    # ---- timer control ----

    def start_timer(self, sid, room_id, duration=None) -> dict:
        code = _room_code(room_id)
        room = self._require_room(code)
        if duration is None:
            duration = room.timer_duration or self.app.config.get('DEFAULT_TIMER_DURATION_SEC', 60)
        try:
            duration = int(duration)
        except (TypeError, ValueError):
            raise InvalidPayload('duration must be a number of seconds')
        if duration <= 0:
            raise InvalidPayload('duration must be positive')
        return self.timers.start(code, duration)

    def pause_timer(self, sid, room_id):
        return self.timers.pause(_room_code(room_id))

    def resume_timer(self, sid, room_id):
        return self.timers.resume(_room_code(room_id))

    def stop_timer(self, sid, room_id):
        return self.timers.stop(_room_code(room_id))

    # ---- room administration (HTTP) ----

    def update_room(self, room_id, **fields) -> dict:
        code = _room_code(room_id)
        room = self.rooms.update_room(code, **fields)
        if room is None:
            raise NotFound(f'Room {code} not found')
        return self._broadcast_room(room)

    def delete_room(self, room_id) -> bool:
        code = _room_code(room_id)
        self._require_room(code)
        # A running countdown would otherwise keep ticking for a deleted room
        self.timers.stop(code)
        self.broadcast(code, 'room_deleted', {'roomId': code})
        for member_sid in self.presence.room_sids(code):
            leave_room(room_channel(code), sid=member_sid, namespace=NAMESPACE)
        self.presence.cancel_room(code)
        return self.rooms.delete_room(code)

    def shutdown(self) -> None:
        self.registry.shutdown()
