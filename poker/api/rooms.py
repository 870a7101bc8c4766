import re
import uuid

from flask import Blueprint, jsonify, request, current_app

from poker.errors import InvalidPayload, NotFound
from poker.services.rooms import room_service
from poker.services.stories import story_service


rooms = Blueprint('rooms', __name__)

ROOM_ID_PATTERN = re.compile(r'^[A-Z0-9]{6}$')


def _session():
    return current_app.extensions['poker_session']


def _room_id(room_id: str) -> str:
    code = (room_id or '').upper()
    if not ROOM_ID_PATTERN.match(code):
        raise InvalidPayload('Room id must be 6 letters or digits')
    return code


def _require_room(room_id: str):
    room = room_service.get_room(_room_id(room_id))
    if room is None:
        raise NotFound('Room not found')
    return room


@rooms.route('', methods=['GET'])
def list_rooms():
    return jsonify([r.to_dict() for r in room_service.list_rooms()])


@rooms.route('', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    room = room_service.create_room(
        data.get('name'),
        description=data.get('description'),
        owner=data.get('owner'),
        password=data.get('password'),
        timer_duration=data.get('timerDuration'),
        card_deck_id=data.get('cardDeckId'),
    )
    return jsonify(room.to_dict()), 201


@rooms.route('/<string:room_id>', methods=['GET'])
def get_room(room_id):
    return jsonify(_require_room(room_id).to_dict())


@rooms.route('/<string:room_id>', methods=['PUT'])
def update_room(room_id):
    data = request.get_json(silent=True) or {}
    payload = _session().update_room(
        _room_id(room_id),
        name=data.get('name'),
        description=data.get('description'),
        card_deck_id=data.get('cardDeckId'),
        timer_duration=data.get('timerDuration'),
    )
    return jsonify(payload)


@rooms.route('/<string:room_id>', methods=['DELETE'])
def delete_room(room_id):
    _session().delete_room(_room_id(room_id))
    return jsonify({'message': 'Room deleted successfully'})


@rooms.route('/<string:room_id>/history', methods=['GET'])
def get_history(room_id):
    room = _require_room(room_id)
    history = room_service.get_story_history(room.id)
    return jsonify([s.to_dict(deck_id=room.card_deck_id) for s in history])


@rooms.route('/<string:room_id>/stories', methods=['GET'])
def list_room_stories(room_id):
    room = _require_room(room_id)
    return jsonify([s.to_dict(deck_id=room.card_deck_id) for s in story_service.list_stories(room.id)])


@rooms.route('/<string:room_id>/join', methods=['POST'])
def join_room(room_id):
    data = request.get_json(silent=True) or {}
    user = data.get('user')
    if user is None:
        # Anonymous join: the server hands out the user id
        user = {
            'id': f"user_{uuid.uuid4().hex[:12]}",
            'name': data.get('name'),
            'isSpectator': data.get('isSpectator', False),
        }
    payload = _session().join_room(None, _room_id(room_id), user, data.get('password'))
    return jsonify(payload)


@rooms.route('/<string:room_id>/leave', methods=['POST'])
def leave_room(room_id):
    data = request.get_json(silent=True) or {}
    payload = _session().leave_room(None, _room_id(room_id), data.get('userId'))
    return jsonify(payload)
