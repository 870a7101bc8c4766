from poker import db
from flask import current_app
from datetime import datetime, timezone
import enum
import json
import random
import string

from poker.services.voting import summarize


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_LENGTH = 6


class VotingPhase(enum.Enum):
    NO_STORY = 'no_story'
    VOTING = 'voting'
    REVEALED = 'revealed'


room_participant = db.Table(
    'room_participant',
    db.Column('room_id', db.String(ROOM_CODE_LENGTH), db.ForeignKey('room.id'), primary_key=True),
    db.Column('user_id', db.String(128), db.ForeignKey('user.id'), primary_key=True),
)


class User(db.Model):
    __tablename__ = 'user'
    # Stable id supplied by the identity provider
    id = db.Column(db.String(128), primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    avatar_url = db.Column(db.String(512), nullable=True)
    is_spectator = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        data = {
            'id': self.id,
            'name': self.name,
            'avatarUrl': self.avatar_url,
            'isSpectator': bool(self.is_spectator),
        }
        if self.email:
            data['email'] = self.email
        return data


def generate_room_code(length=ROOM_CODE_LENGTH):
    """Generate a unique room code, retrying on collision."""
    while True:
        code = ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))
        if not db.session.get(Room, code):
            return code


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.String(ROOM_CODE_LENGTH), primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    # Empty until the first participant claims ownership
    owner_id = db.Column(db.String(128), nullable=False, default='', index=True)
    participants = db.relationship('User', secondary=room_participant, lazy='dynamic')
    current_story_id = db.Column(db.String(36), db.ForeignKey('story.id', name='fk_room_current_story_id', use_alter=True), nullable=True)
    card_deck_id = db.Column(db.String(64), nullable=False, default='fibonacci')
    is_voting_active = db.Column(db.Boolean, default=False, nullable=False)
    password_hash = db.Column(db.String(256), nullable=True)
    # Default countdown for the room; 0 disables it
    timer_duration = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __init__(self, **kwargs):
        super(Room, self).__init__(**kwargs)
        if not self.id:
            self.id = generate_room_code()

    @property
    def current_story(self):
        if self.current_story_id:
            return db.session.get(Story, self.current_story_id)
        return None

    @property
    def phase(self):
        story = self.current_story
        if story is None:
            return VotingPhase.NO_STORY
        return VotingPhase.REVEALED if story.is_revealed else VotingPhase.VOTING

    def story_history(self, limit=None):
        if limit is None:
            limit = int(current_app.config.get('STORY_HISTORY_LIMIT', 20))
        return (
            Story.query.filter(Story.room_id == self.id, Story.final_estimate.isnot(None))
            .order_by(Story.created_at.desc())
            .limit(limit)
            .all()
        )

    def to_dict(self):
        # Always re-read participants, current story and history
        story = self.current_story
        phase = self.phase
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'ownerId': self.owner_id or '',
            'participants': [u.to_dict() for u in self.participants.order_by(User.name).all()],
            'currentStory': story.to_dict(deck_id=self.card_deck_id) if story else None,
            'storyHistory': [s.to_dict(deck_id=self.card_deck_id) for s in self.story_history()],
            'cardDeckId': self.card_deck_id,
            'phase': phase.value,
            'isVotingActive': bool(self.is_voting_active) and phase is VotingPhase.VOTING,
            'isPasswordProtected': bool(self.password_hash),
            'timerDuration': self.timer_duration or 0,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class Story(db.Model):
    __tablename__ = 'story'
    id = db.Column(db.String(36), primary_key=True)
    room_id = db.Column(db.String(ROOM_CODE_LENGTH), db.ForeignKey('room.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    acceptance_criteria = db.Column(db.Text, nullable=True)  # JSON-encoded list of strings
    is_revealed = db.Column(db.Boolean, default=False, nullable=False)
    final_estimate = db.Column(db.String(16), nullable=True)
    timer_state = db.Column(db.Text, nullable=True)  # JSON-encoded TimerState snapshot
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    votes = db.relationship('Vote', backref='story', lazy='dynamic')

    @property
    def criteria(self):
        return json.loads(self.acceptance_criteria) if self.acceptance_criteria else []

    @criteria.setter
    def criteria(self, values):
        self.acceptance_criteria = json.dumps(list(values)) if values else None

    @property
    def timer(self):
        return json.loads(self.timer_state) if self.timer_state else None

    @timer.setter
    def timer(self, snapshot):
        self.timer_state = json.dumps(snapshot) if snapshot is not None else None

    def to_dict(self, deck_id=None):
        votes = self.votes.order_by(Vote.submitted_at, Vote.id).all()
        data = {
            'id': self.id,
            'roomId': self.room_id,
            'title': self.title,
            'description': self.description,
            'acceptanceCriteria': self.criteria,
            # Values stay hidden until the story is revealed
            'votes': [v.to_dict(hide_value=not self.is_revealed) for v in votes],
            'isRevealed': bool(self.is_revealed),
            'finalEstimate': self.final_estimate,
            'timer': self.timer,
            'createdAt': _iso(self.created_at),
        }
        if self.is_revealed:
            data['results'] = summarize(votes, deck_id or 'fibonacci')
        return data


class Vote(db.Model):
    __tablename__ = 'vote'
    __table_args__ = (db.UniqueConstraint('story_id', 'user_id', name='uq_vote_story_user'),)
    id = db.Column(db.Integer, primary_key=True)
    story_id = db.Column(db.String(36), db.ForeignKey('story.id'), nullable=False, index=True)
    user_id = db.Column(db.String(128), nullable=False)
    value = db.Column(db.String(16), nullable=False)
    submitted_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self, hide_value=False):
        return {
            'userId': self.user_id,
            'value': None if hide_value else self.value,
            'submittedAt': _iso(self.submitted_at),
        }
