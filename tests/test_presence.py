from conftest import create_room, drain, join, named

from poker.services.presence import PresenceTracker


def _participant_ids(client, room_id):
    return {p['id'] for p in client.get(f'/api/rooms/{room_id}').get_json()['participants']}


def test_tracker_maps_sockets_to_users():
    tracker = PresenceTracker()
    assert tracker.attach('s1', 'ROOM01', 'alice') is None
    tracker.attach('s2', 'ROOM01', 'alice')
    tracker.attach('s3', 'ROOM02', 'bob')
    assert sorted(tracker.sids_for('ROOM01', 'alice')) == ['s1', 's2']
    assert tracker.detach('s1').user_id == 'alice'
    assert tracker.is_present('ROOM01', 'alice')
    assert tracker.detach('s1') is None
    tracker.cancel_room('ROOM01')
    assert not tracker.is_present('ROOM01', 'alice')
    assert tracker.room_sids('ROOM02') == ['s3']


def test_tracker_eviction_tokens():
    tracker = PresenceTracker()
    pending = tracker.arm_eviction('ROOM01', 'bob', 30)
    assert tracker.claim_eviction('ROOM01', 'bob', pending.deadline + 1.0) is None
    assert tracker.pending_eviction('ROOM01', 'bob') == pending
    assert tracker.claim_eviction('ROOM01', 'bob', pending.deadline) == pending
    assert tracker.claim_eviction('ROOM01', 'bob') is None
    tracker.arm_eviction('ROOM01', 'bob', 30)
    assert tracker.cancel_eviction('ROOM01', 'bob') is True
    assert tracker.cancel_eviction('ROOM01', 'bob') is False


def test_reconnect_within_grace_keeps_participant(client, make_sio_client, session):
    room = create_room(client)
    alice, bob = make_sio_client(), make_sio_client()
    join(alice, room['id'], 'alice')
    join(bob, room['id'], 'bob')
    drain(alice)

    bob.disconnect(namespace='/ws')
    pending = session.presence.pending_eviction(room['id'], 'bob')
    assert pending is not None
    # Nothing is broadcast until the grace period runs out
    assert named(drain(alice), 'room_updated') == []

    bob_again = make_sio_client()
    join(bob_again, room['id'], 'bob')
    assert session.presence.pending_eviction(room['id'], 'bob') is None

    assert session.expire_grace(room['id'], 'bob', pending.deadline) is False
    assert _participant_ids(client, room['id']) == {'alice', 'bob'}


def test_grace_expiry_removes_participant(client, make_sio_client, session):
    room = create_room(client)
    alice, bob = make_sio_client(), make_sio_client()
    join(alice, room['id'], 'alice')
    join(bob, room['id'], 'bob')
    drain(alice)

    bob.disconnect(namespace='/ws')
    pending = session.presence.pending_eviction(room['id'], 'bob')
    assert session.expire_grace(room['id'], 'bob', pending.deadline) is True

    updates = named(drain(alice), 'room_updated')
    assert len(updates) == 1
    assert [p['id'] for p in updates[0][0]['participants']] == ['alice']
    assert _participant_ids(client, room['id']) == {'alice'}
    # A second expiry for the same disconnect is a no-op
    assert session.expire_grace(room['id'], 'bob', pending.deadline) is False


def test_stale_grace_timer_is_ignored(client, make_sio_client, session):
    room = create_room(client)
    bob = make_sio_client()
    join(bob, room['id'], 'bob')
    bob.disconnect(namespace='/ws')
    first = session.presence.pending_eviction(room['id'], 'bob')

    bob_again = make_sio_client()
    join(bob_again, room['id'], 'bob')
    bob_again.disconnect(namespace='/ws')
    second = session.presence.pending_eviction(room['id'], 'bob')
    assert second is not None

    assert session.expire_grace(room['id'], 'bob', first.deadline) is False
    assert _participant_ids(client, room['id']) == {'bob'}
    assert session.expire_grace(room['id'], 'bob', second.deadline) is True
    assert _participant_ids(client, room['id']) == set()


def test_disconnect_with_another_open_socket(client, make_sio_client, session):
    room = create_room(client)
    tab_one, tab_two = make_sio_client(), make_sio_client()
    join(tab_one, room['id'], 'alice')
    join(tab_two, room['id'], 'alice')

    tab_one.disconnect(namespace='/ws')
    assert session.presence.pending_eviction(room['id'], 'alice') is None
    assert _participant_ids(client, room['id']) == {'alice'}


def test_switching_rooms_arms_grace_for_previous_room(client, make_sio_client, session):
    first = create_room(client, name='First')
    second = create_room(client, name='Second')
    alice = make_sio_client()
    join(alice, first['id'], 'alice')
    join(alice, second['id'], 'alice')

    assert session.presence.pending_eviction(first['id'], 'alice') is not None
    assert session.presence.pending_eviction(second['id'], 'alice') is None
    assert session.expire_grace(first['id'], 'alice') is True
    assert _participant_ids(client, first['id']) == set()
    assert _participant_ids(client, second['id']) == {'alice'}


def test_explicit_leave_cancels_pending_eviction(client, make_sio_client, session):
    room = create_room(client)
    alice, bob = make_sio_client(), make_sio_client()
    join(alice, room['id'], 'alice')
    join(bob, room['id'], 'bob')
    drain(alice)
    bob.disconnect(namespace='/ws')

    # The client comes back on a fresh socket only to say goodbye
    bob_again = make_sio_client()
    bob_again.emit('leave_room', room['id'], 'bob', namespace='/ws')
    assert session.presence.pending_eviction(room['id'], 'bob') is None
    assert _participant_ids(client, room['id']) == {'alice'}
    assert len(named(drain(alice), 'room_updated')) == 1
