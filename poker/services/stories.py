"""Story lifecycle: creation, votes, reveal/clear, final estimates and edits.

Edits arrive on the wire as a loose patch object. They are parsed into a
closed set of update variants so every field change has one code path.
"""
import uuid
from dataclasses import dataclass
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from poker import db
from poker.errors import InvalidEstimate, InvalidPayload
from poker.models import Room, Story, Vote, utcnow
from .decks import is_valid_estimate


@dataclass(frozen=True)
class Rename:
    title: str


@dataclass(frozen=True)
class Redescribe:
    description: Optional[str]


@dataclass(frozen=True)
class SetAcceptanceCriteria:
    criteria: List[str]


@dataclass(frozen=True)
class AttachTimerSnapshot:
    timer: Optional[dict]


def _title(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidPayload('title is required')
    return value.strip()[:200]


def _criteria(value) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(c, str) for c in value):
        raise InvalidPayload('acceptanceCriteria must be a list of strings')
    return [c.strip() for c in value if c.strip()]


def _rename(value):
    return Rename(_title(value))


def _redescribe(value):
    if value is not None and not isinstance(value, str):
        raise InvalidPayload('description must be a string')
    return Redescribe(value)


def _set_criteria(value):
    return SetAcceptanceCriteria(_criteria(value))


def _attach_timer(value):
    if value is not None and not isinstance(value, dict):
        raise InvalidPayload('timer must be an object')
    return AttachTimerSnapshot(value)


_PATCH_FIELDS = {
    'title': _rename,
    'description': _redescribe,
    'acceptanceCriteria': _set_criteria,
    'timer': _attach_timer,
}


def parse_story_patch(patch) -> list:
    """Translate a wire patch into update variants, rejecting unknown fields."""
    if not isinstance(patch, dict):
        raise InvalidPayload('story patch must be an object')
    if 'finalEstimate' in patch:
        raise InvalidPayload('finalEstimate must be set with final_estimate_set')
    unknown = sorted(set(patch) - set(_PATCH_FIELDS))
    if unknown:
        raise InvalidPayload(f"Unsupported story fields: {', '.join(unknown)}")
    return [_PATCH_FIELDS[key](value) for key, value in patch.items()]


def apply_story_update(story: Story, update) -> None:
    if isinstance(update, Rename):
        story.title = update.title
    elif isinstance(update, Redescribe):
        story.description = update.description
    elif isinstance(update, SetAcceptanceCriteria):
        story.criteria = update.criteria
    elif isinstance(update, AttachTimerSnapshot):
        story.timer = update.timer
    else:
        raise TypeError(f'Unhandled story update: {update!r}')


class StoryService:

    def create_story(self, room_id, title, description=None, acceptance_criteria=None) -> Optional[Story]:
        room = db.session.get(Room, room_id.upper()) if room_id else None
        if room is None:
            return None
        story = Story(
            id=str(uuid.uuid4()),
            room_id=room.id,
            title=_title(title),
            description=description,
            is_revealed=False,
        )
        story.criteria = _criteria(acceptance_criteria)
        db.session.add(story)
        db.session.commit()
        current_app.logger.info(f"[story-create] room={room.id} story={story.id}")
        return story

    def get_story(self, story_id) -> Optional[Story]:
        if not story_id:
            return None
        return db.session.get(Story, story_id)

    def list_stories(self, room_id):
        return Story.query.filter_by(room_id=room_id.upper()).order_by(Story.created_at.desc()).all()

    def add_vote(self, story_id, user_id, value) -> Optional[Story]:
        """Insert-or-replace the user's vote; the previous row is superseded, never edited."""
        story = self.get_story(story_id)
        if story is None:
            return None
        try:
            self._replace_vote(story.id, user_id, value)
        except IntegrityError:
            # A concurrent vote from the same user landed between our delete and insert
            db.session.rollback()
            self._replace_vote(story.id, user_id, value)
        return story

    def _replace_vote(self, story_id, user_id, value):
        Vote.query.filter_by(story_id=story_id, user_id=user_id).delete(synchronize_session=False)
        db.session.add(Vote(story_id=story_id, user_id=user_id, value=value, submitted_at=utcnow()))
        db.session.commit()

    def reveal_votes(self, story_id) -> Optional[Story]:
        story = self.get_story(story_id)
        if story is None:
            return None
        story.is_revealed = True
        db.session.commit()
        return story

    def clear_votes(self, story_id) -> Optional[Story]:
        story = self.get_story(story_id)
        if story is None:
            return None
        Vote.query.filter_by(story_id=story.id).delete(synchronize_session=False)
        story.is_revealed = False
        story.final_estimate = None
        db.session.commit()
        return story

    def set_final_estimate(self, story_id, value) -> Optional[Story]:
        story = self.get_story(story_id)
        if story is None:
            return None
        room = db.session.get(Room, story.room_id)
        deck_id = room.card_deck_id if room else None
        if not is_valid_estimate(deck_id, value):
            raise InvalidEstimate(f'{value!r} is not a valid estimate for deck {deck_id}')
        story.final_estimate = value
        db.session.commit()
        return story

    def update_story(self, story_id, updates) -> Optional[Story]:
        story = self.get_story(story_id)
        if story is None:
            return None
        for update in updates:
            apply_story_update(story, update)
        db.session.commit()
        return story

    def delete_story(self, story_id) -> bool:
        story = self.get_story(story_id)
        if story is None:
            return False
        Room.query.filter_by(current_story_id=story.id).update({'current_story_id': None}, synchronize_session=False)
        Vote.query.filter_by(story_id=story.id).delete(synchronize_session=False)
        db.session.delete(story)
        db.session.commit()
        return True


story_service = StoryService()
