import functools

from flask import current_app, request
from flask_socketio import emit
from sqlalchemy.exc import SQLAlchemyError

from poker import socketio, db
from poker.errors import NotFound, SessionError
from poker.services.session import NAMESPACE


def _session():
    return current_app.extensions['poker_session']


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def session_event(fn):
    """Run a handler and report failures to the calling socket only."""
    @functools.wraps(fn)
    def wrapper(*args):
        try:
            return fn(*args)
        except SessionError as exc:
            current_app.logger.warning(f"[event-error] event={fn.__name__} type={exc.type} message={exc.message}")
            emit('error', exc.to_dict())
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception(f"[event-db-error] event={fn.__name__}")
            emit('error', NotFound('The requested room or story is unavailable').to_dict())
        return None
    return wrapper


def handle_connect(auth=None):
    emit('connected', {'sid': _get_sid()})


def handle_disconnect(reason=None):
    _session().disconnect(_get_sid())


@session_event
def handle_join_room(room_id=None, user=None, password=None):
    _session().join_room(_get_sid(), room_id, user, password)


@session_event
def handle_leave_room(room_id=None, user_id=None):
    _session().leave_room(_get_sid(), room_id, user_id)


@session_event
def handle_remove_user(room_id=None, target_user_id=None, requester_user_id=None):
    _session().remove_user(_get_sid(), room_id, target_user_id, requester_user_id)


@session_event
def handle_voting_started(room_id=None, story_id=None):
    _session().start_voting(_get_sid(), room_id, story_id)


@session_event
def handle_vote_submitted(story_id=None, vote=None):
    _session().submit_vote(_get_sid(), story_id, vote)


@session_event
def handle_votes_revealed(room_id=None, story_id=None):
    _session().reveal_votes(_get_sid(), room_id, story_id)


@session_event
def handle_votes_cleared(room_id=None, story_id=None):
    _session().clear_votes(_get_sid(), room_id, story_id)


@session_event
def handle_story_created(room_id=None, story=None):
    _session().create_story(_get_sid(), room_id, story)


@session_event
def handle_story_updated(story_id=None, patch=None):
    _session().update_story(_get_sid(), story_id, patch)


@session_event
def handle_final_estimate_set(room_id=None, story_id=None, value=None):
    _session().set_final_estimate(_get_sid(), room_id, story_id, value)


@session_event
def handle_start_timer(room_id=None, duration=None):
    _session().start_timer(_get_sid(), room_id, duration)


@session_event
def handle_pause_timer(room_id=None):
    _session().pause_timer(_get_sid(), room_id)


@session_event
def handle_resume_timer(room_id=None):
    _session().resume_timer(_get_sid(), room_id)


@session_event
def handle_stop_timer(room_id=None):
    _session().stop_timer(_get_sid(), room_id)


def handle_ping(data=None):
    emit('pong', data or {})


EVENT_HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'join_room': handle_join_room,
    'leave_room': handle_leave_room,
    'remove_user': handle_remove_user,
    'voting_started': handle_voting_started,
    'vote_submitted': handle_vote_submitted,
    'votes_revealed': handle_votes_revealed,
    'votes_cleared': handle_votes_cleared,
    'story_created': handle_story_created,
    'story_updated': handle_story_updated,
    'final_estimate_set': handle_final_estimate_set,
    'start_timer': handle_start_timer,
    'pause_timer': handle_pause_timer,
    'resume_timer': handle_resume_timer,
    'stop_timer': handle_stop_timer,
    'ping': handle_ping,
}


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    for event, handler in EVENT_HANDLERS.items():
        socketio.on_event(event, handler, namespace=NAMESPACE)
