from typing import Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from poker import db, bcrypt
from poker.errors import InvalidPassword, InvalidPayload
from poker.models import Room, Story, User, Vote, room_participant, utcnow
from .decks import get_deck


def coerce_user(user) -> dict:
    """Validate a wire user object ({id, name, avatarUrl?, isSpectator?, email?})."""
    if not isinstance(user, dict):
        raise InvalidPayload('user must be an object')
    user_id = user.get('id')
    name = user.get('name')
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidPayload('user.id is required')
    if not isinstance(name, str) or not name.strip():
        raise InvalidPayload('user.name is required')
    return {
        'id': user_id.strip(),
        'name': name.strip()[:100],
        'avatar_url': user.get('avatarUrl'),
        'email': user.get('email'),
        'is_spectator': bool(user.get('isSpectator', False)),
    }


def _coerce_timer_duration(value) -> int:
    try:
        duration = int(value)
    except (TypeError, ValueError):
        raise InvalidPayload('timerDuration must be a number of seconds')
    if duration < 0:
        raise InvalidPayload('timerDuration cannot be negative')
    return duration


def verify_password(room: Room, candidate: Optional[str]) -> bool:
    if not room.password_hash:
        return True
    if not isinstance(candidate, str) or not candidate:
        return False
    return bcrypt.check_password_hash(room.password_hash, candidate)


class RoomService:
    """Load-modify-store operations on rooms, their participants and owners.

    Every method commits before returning and hands back the ``Room`` row;
    ``Room.to_dict()`` re-reads participants, the current story and the
    history, so snapshots are never built from stale embedded copies.
    """

    def upsert_user(self, user) -> User:
        data = coerce_user(user)
        record = db.session.get(User, data['id'])
        if record is None:
            record = User(id=data['id'])
            db.session.add(record)
        record.name = data['name']
        record.avatar_url = data['avatar_url']
        record.is_spectator = data['is_spectator']
        if data['email']:
            record.email = data['email']
        return record

    def get_user(self, user_id) -> Optional[User]:
        return db.session.get(User, user_id) if user_id else None

    def create_room(self, name, description=None, owner=None, password=None,
                    timer_duration=None, card_deck_id=None) -> Room:
        if not isinstance(name, str) or not name.strip():
            raise InvalidPayload('name is required')
        deck_id = card_deck_id or current_app.config.get('DEFAULT_CARD_DECK', 'fibonacci')
        if not get_deck(deck_id):
            raise InvalidPayload(f'Unknown card deck: {deck_id}')
        if owner:
            coerce_user(owner)

        room = Room(
            name=name.strip(),
            description=description,
            owner_id='',
            card_deck_id=deck_id,
            timer_duration=_coerce_timer_duration(timer_duration) if timer_duration is not None else 0,
        )
        if password:
            room.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')
        db.session.add(room)
        if owner:
            record = self.upsert_user(owner)
            room.owner_id = record.id
            db.session.flush()
            db.session.execute(room_participant.insert().values(room_id=room.id, user_id=record.id))
        db.session.commit()
        current_app.logger.info(f"[room-create] room={room.id} owner={room.owner_id or '-'} deck={deck_id}")
        return room

    def get_room(self, room_id) -> Optional[Room]:
        if not room_id:
            return None
        return db.session.get(Room, room_id.upper())

    def list_rooms(self):
        return Room.query.order_by(Room.created_at.desc()).all()

    def is_participant(self, room_id, user_id) -> bool:
        return db.session.query(room_participant).filter_by(room_id=room_id, user_id=user_id).first() is not None

    def add_participant(self, room_id, user, password=None) -> Optional[Room]:
        """Add a user to a room, claiming ownership when the room has none.

        Raises InvalidPassword before anything is written.
        """
        room = self.get_room(room_id)
        if room is None:
            return None
        if not verify_password(room, password):
            raise InvalidPassword('This room is password protected')

        record = self.upsert_user(user)
        db.session.commit()

        if not self.is_participant(room.id, record.id):
            try:
                db.session.execute(room_participant.insert().values(room_id=room.id, user_id=record.id))
                db.session.commit()
            except IntegrityError:
                # Another join for the same user won the insert
                db.session.rollback()

        # Compare-and-set: only the first joiner of an ownerless room becomes owner
        claimed = (
            Room.query.filter(Room.id == room.id, or_(Room.owner_id == '', Room.owner_id.is_(None)))
            .update({'owner_id': record.id, 'updated_at': utcnow()}, synchronize_session=False)
        )
        if not claimed:
            Room.query.filter(Room.id == room.id).update({'updated_at': utcnow()}, synchronize_session=False)
        db.session.commit()
        if claimed:
            current_app.logger.info(f"[owner-claim] room={room.id} owner={record.id}")
        db.session.refresh(room)
        return room

    def remove_participant(self, room_id, user_id) -> Optional[Room]:
        # Votes already cast by the user are left in place
        room = self.get_room(room_id)
        if room is None:
            return None
        db.session.execute(
            room_participant.delete().where(
                room_participant.c.room_id == room.id,
                room_participant.c.user_id == user_id,
            )
        )
        room.updated_at = utcnow()
        db.session.commit()
        return room

    def set_current_story(self, room_id, story_id=None) -> Optional[Room]:
        room = self.get_room(room_id)
        if room is None:
            return None
        room.current_story_id = story_id
        db.session.commit()
        return room

    def set_voting_active(self, room_id, is_active) -> Optional[Room]:
        room = self.get_room(room_id)
        if room is None:
            return None
        room.is_voting_active = bool(is_active)
        db.session.commit()
        return room

    def update_room(self, room_id, name=None, description=None, card_deck_id=None, timer_duration=None) -> Optional[Room]:
        if name is not None and (not isinstance(name, str) or not name.strip()):
            raise InvalidPayload('name cannot be empty')
        if card_deck_id is not None and not get_deck(card_deck_id):
            raise InvalidPayload(f'Unknown card deck: {card_deck_id}')
        if timer_duration is not None:
            timer_duration = _coerce_timer_duration(timer_duration)

        room = self.get_room(room_id)
        if room is None:
            return None
        if name is not None:
            room.name = name.strip()
        if description is not None:
            room.description = description
        if card_deck_id is not None:
            room.card_deck_id = card_deck_id
        if timer_duration is not None:
            room.timer_duration = timer_duration
        db.session.commit()
        return room

    def delete_room(self, room_id) -> bool:
        room = self.get_room(room_id)
        if room is None:
            return False
        # Break the room -> story FK before deleting stories
        if room.current_story_id:
            room.current_story_id = None
            db.session.commit()
        story_ids = [sid for (sid,) in db.session.query(Story.id).filter(Story.room_id == room.id).all()]
        if story_ids:
            Vote.query.filter(Vote.story_id.in_(story_ids)).delete(synchronize_session=False)
        Story.query.filter(Story.room_id == room.id).delete(synchronize_session=False)
        db.session.execute(room_participant.delete().where(room_participant.c.room_id == room.id))
        db.session.delete(room)
        db.session.commit()
        current_app.logger.info(f"[room-delete] room={room_id} stories={len(story_ids)}")
        return True

    def get_story_history(self, room_id):
        room = self.get_room(room_id)
        if room is None:
            return []
        return room.story_history()


room_service = RoomService()
