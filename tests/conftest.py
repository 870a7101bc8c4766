import os
import sys
import pytest

# Ensure the project root (containing the `poker` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from poker import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = ['http://localhost:5173']
    DISCONNECT_GRACE_SEC = 30
    DEFAULT_TIMER_DURATION_SEC = 60
    STORY_HISTORY_LIMIT = 20
    DEFAULT_CARD_DECK = 'fibonacci'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import poker.models  # noqa: F401
        db.create_all()
        yield application
        application.extensions['poker_session'].shutdown()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def session(flask_app):
    return flask_app.extensions['poker_session']


@pytest.fixture()
def make_sio_client(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        # Drop the 'connected' greeting
        test_client.get_received('/ws')
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        if test_client.is_connected('/ws'):
            test_client.disconnect(namespace='/ws')


@pytest.fixture()
def sio_client(make_sio_client):
    return make_sio_client()


# ---- helpers shared by the test modules ----

def drain(test_client):
    return test_client.get_received('/ws')


def named(packets, name):
    """Argument lists of every received packet with the given event name."""
    return [pkt['args'] for pkt in packets if pkt['name'] == name]


def create_room(client, **fields):
    payload = {'name': 'Sprint 42'}
    payload.update(fields)
    res = client.post('/api/rooms', json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def create_story(client, room_id, title='S1', **fields):
    payload = {'roomId': room_id, 'title': title}
    payload.update(fields)
    res = client.post('/api/stories', json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def join(test_client, room_id, user_id, name=None, password=None):
    user = {'id': user_id, 'name': name or user_id.title()}
    if password is None:
        test_client.emit('join_room', room_id, user, namespace='/ws')
    else:
        test_client.emit('join_room', room_id, user, password, namespace='/ws')
    return drain(test_client)
