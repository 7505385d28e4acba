from bestball import socketio


def test_connect_sends_connection_success(sio_client, read_messages):
    assert sio_client.is_connected('/ws')
    messages = read_messages(sio_client)
    assert messages[0]['type'] == 'connection-success'
    assert messages[0]['user']['username'] == 'viewer'
    assert 'token' not in messages[0]['user']


def test_connect_rejects_unknown_token(flask_app, seed):
    rejected = socketio.test_client(flask_app, namespace='/ws', query_string='token=not-a-token')
    assert not rejected.is_connected('/ws')

    anonymous = socketio.test_client(flask_app, namespace='/ws')
    assert not anonymous.is_connected('/ws')


def test_connect_accepts_token_in_auth_payload(flask_app, seed, read_messages):
    sio = socketio.test_client(flask_app, namespace='/ws', auth={'token': seed['admin_token']})
    assert sio.is_connected('/ws')
    assert read_messages(sio)[0]['user']['username'] == 'admin'
    sio.disconnect(namespace='/ws')


def test_ping_pong(sio_client, read_messages):
    read_messages(sio_client)
    sio_client.emit('message', {'type': 'ping', 'nonce': 7}, namespace='/ws')
    [pong] = read_messages(sio_client)
    assert pong['type'] == 'pong'
    assert pong['nonce'] == 7
    assert 'server_time' in pong


def test_unknown_type_is_ignored(sio_client, read_messages):
    read_messages(sio_client)
    sio_client.emit('message', {'type': 'hole-in-one', 'hole': 7}, namespace='/ws')
    assert read_messages(sio_client) == []
    assert sio_client.is_connected('/ws')


def test_malformed_message_gets_error(sio_client, read_messages):
    read_messages(sio_client)
    sio_client.emit('message', 'not json', namespace='/ws')
    [err] = read_messages(sio_client)
    assert err['type'] == 'error'
    assert sio_client.is_connected('/ws')


def test_subscribe_returns_snapshot(sio_client, seed, read_messages):
    read_messages(sio_client)
    sio_client.emit('message', {'type': 'subscribe', 'match_id': seed['match_id']}, namespace='/ws')
    [ack] = read_messages(sio_client)
    assert ack['type'] == 'subscribed'
    assert ack['match']['id'] == seed['match_id']
    assert ack['match']['status'] == 'pending'


def test_subscribe_unknown_match(sio_client, read_messages):
    read_messages(sio_client)
    sio_client.emit('message', {'type': 'subscribe', 'match_id': 999}, namespace='/ws')
    [err] = read_messages(sio_client)
    assert err['type'] == 'error'
    assert err['match_id'] == 999


def test_score_submission_broadcasts_to_subscribers(client, sio_client, seed, admin_headers, read_messages):
    mid = seed['match_id']
    sio_client.emit('message', {'type': 'subscribe', 'match_id': mid}, namespace='/ws')
    read_messages(sio_client)

    res = client.post(
        f'/api/best-ball/matches/{mid}/scores',
        json={'player_id': seed['players']['A'], 'hole_number': 1, 'score': 5, 'handicap_strokes': 1},
        headers=admin_headers,
    )
    assert res.status_code == 200

    updates = [m for m in read_messages(sio_client) if m['type'] == 'match-updated']
    assert len(updates) == 1
    assert updates[0]['reason'] == 'score'
    assert updates[0]['match']['team1_score'] == 4
    assert updates[0]['score']['net_score'] == 4


def test_status_change_broadcasts(client, sio_client, seed, admin_headers, read_messages):
    mid = seed['match_id']
    sio_client.emit('message', {'type': 'subscribe', 'match_id': mid}, namespace='/ws')
    read_messages(sio_client)
    client.post(f'/api/best-ball/matches/{mid}/status', json={'status': 'in_progress'}, headers=admin_headers)
    [update] = read_messages(sio_client)
    assert update['type'] == 'match-updated'
    assert update['reason'] == 'status'
    assert update['match']['status'] == 'in_progress'


def test_unsubscribed_viewer_gets_no_updates(client, sio_client, seed, admin_headers, read_messages):
    mid = seed['match_id']
    sio_client.emit('message', {'type': 'subscribe', 'match_id': mid}, namespace='/ws')
    sio_client.emit('message', {'type': 'unsubscribe', 'match_id': mid}, namespace='/ws')
    assert [m['type'] for m in read_messages(sio_client)][-1] == 'unsubscribed'
    client.post(f'/api/best-ball/matches/{mid}/status', json={'status': 'in_progress'}, headers=admin_headers)
    assert read_messages(sio_client) == []


def test_disconnect_drops_viewer(flask_app, seed):
    from bestball.socketio_events import connected_viewers
    sio = socketio.test_client(flask_app, namespace='/ws', query_string=f"token={seed['admin_token']}")
    before = len(connected_viewers())
    sio.disconnect(namespace='/ws')
    assert len(connected_viewers()) == before - 1
