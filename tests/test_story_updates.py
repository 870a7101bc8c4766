from types import SimpleNamespace

import pytest
from sqlalchemy import event

from poker import db
from poker.errors import InvalidPayload
from poker.models import Vote
from poker.services.rooms import room_service
from poker.services.stories import (
    AttachTimerSnapshot, Redescribe, Rename, SetAcceptanceCriteria,
    apply_story_update, parse_story_patch, story_service,
)


def test_patch_becomes_update_variants():
    updates = parse_story_patch({
        'title': '  Login page ',
        'description': 'As a user...',
        'acceptanceCriteria': ['works', ' ', 'is fast'],
    })
    assert updates == [
        Rename('Login page'),
        Redescribe('As a user...'),
        SetAcceptanceCriteria(['works', 'is fast']),
    ]


def test_patch_rejects_unknown_fields_and_final_estimate():
    with pytest.raises(InvalidPayload):
        parse_story_patch({'votes': []})
    with pytest.raises(InvalidPayload):
        parse_story_patch({'finalEstimate': '8'})
    with pytest.raises(InvalidPayload):
        parse_story_patch({'title': ''})
    with pytest.raises(InvalidPayload):
        parse_story_patch(['title'])


def test_apply_updates_each_variant():
    story = SimpleNamespace(title='old', description=None, criteria=[], timer=None)
    apply_story_update(story, Rename('new'))
    apply_story_update(story, Redescribe('desc'))
    apply_story_update(story, SetAcceptanceCriteria(['a']))
    apply_story_update(story, AttachTimerSnapshot({'remaining': 3}))
    assert story.title == 'new'
    assert story.description == 'desc'
    assert story.criteria == ['a']
    assert story.timer == {'remaining': 3}


def test_apply_rejects_unknown_variant():
    with pytest.raises(TypeError):
        apply_story_update(SimpleNamespace(), object())


def test_vote_replace_survives_concurrent_insert(flask_app):
    room = room_service.create_room('Race')
    story_id = story_service.create_story(room.id, 'S1').id
    orm_session = db.session()
    raced = []

    def competing_insert(session, flush_context, instances):
        # Another request's vote for the same user lands before ours is flushed
        if not raced and any(isinstance(obj, Vote) for obj in session.new):
            raced.append(True)
            session.execute(Vote.__table__.insert().values(story_id=story_id, user_id='bob', value='3'))

    event.listen(orm_session, 'before_flush', competing_insert)
    try:
        story_service.add_vote(story_id, 'bob', '8')
    finally:
        event.remove(orm_session, 'before_flush', competing_insert)

    assert raced
    assert [(v.user_id, v.value) for v in Vote.query.filter_by(story_id=story_id)] == [('bob', '8')]
