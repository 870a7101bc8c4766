from flask import Blueprint, jsonify, request, current_app

from poker.errors import InvalidPayload, NotFound
from poker.services.rooms import room_service
from poker.services.stories import story_service


stories = Blueprint('stories', __name__)


def _session():
    return current_app.extensions['poker_session']


def _require_story(story_id: str):
    story = story_service.get_story(story_id)
    if story is None:
        raise NotFound('Story not found')
    return story


@stories.route('', methods=['POST'])
def create_story():
    data = request.get_json(silent=True) or {}
    room_id = data.get('roomId')
    if not room_id:
        raise InvalidPayload('roomId is required')
    # Routed through the coordinator so sockets in the room hear about it
    payload = _session().create_story(None, room_id, data)
    return jsonify(payload), 201


@stories.route('/<string:story_id>', methods=['GET'])
def get_story(story_id):
    story = _require_story(story_id)
    room = room_service.get_room(story.room_id)
    return jsonify(story.to_dict(deck_id=room.card_deck_id if room else None))


@stories.route('/<string:story_id>', methods=['PUT'])
def update_story(story_id):
    data = request.get_json(silent=True) or {}
    return jsonify(_session().update_story(None, story_id, data))


@stories.route('/<string:story_id>', methods=['DELETE'])
def delete_story(story_id):
    _session().delete_story(story_id)
    return jsonify({'message': 'Story deleted successfully'})


@stories.route('/<string:story_id>/vote', methods=['POST'])
def submit_vote(story_id):
    data = request.get_json(silent=True) or {}
    vote = {'userId': data.get('userId'), 'value': data.get('value')}
    return jsonify(_session().submit_vote(None, story_id, vote))


@stories.route('/<string:story_id>/reveal', methods=['POST'])
def reveal_votes(story_id):
    story = _require_story(story_id)
    return jsonify(_session().reveal_votes(None, story.room_id, story.id))


@stories.route('/<string:story_id>/clear-votes', methods=['POST'])
def clear_votes(story_id):
    story = _require_story(story_id)
    return jsonify(_session().clear_votes(None, story.room_id, story.id))


@stories.route('/<string:story_id>/estimate', methods=['POST'])
def set_estimate(story_id):
    data = request.get_json(silent=True) or {}
    estimate = data.get('estimate')
    if not isinstance(estimate, str) or not estimate:
        raise InvalidPayload('estimate is required')
    story = _require_story(story_id)
    return jsonify(_session().set_final_estimate(None, story.room_id, story.id, estimate))
