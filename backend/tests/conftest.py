import os
import sys
import pytest

# Ensure the backend root (containing the `bestball` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bestball import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    LOG_LEVEL = 'DEBUG'
    HOLES_PER_ROUND = 18
    COUNT_UNPLAYED_HOLES_AS_ZERO = False
    ALLOW_SCORES_AFTER_COMPLETION = False
    PING_INTERVAL_SEC = 25
    PING_TIMEOUT_SEC = 20


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import bestball.models  # noqa: F401
        db.create_all()
    # No context held open across requests: Flask-Login caches the user on g
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database, so each thread gets its own connection."""
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'bestball.db'}"

    application = create_app(FileConfig)
    with application.app_context():
        import bestball.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture()
def file_seed(file_app):
    with file_app.app_context():
        return _seed()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def seed(flask_app):
    """Admin + viewer users, two teams of two, one round and one pending match."""
    with flask_app.app_context():
        return _seed()


def _seed():
    from bestball.models import User, Team, Player, Round, BestBallMatch
    admin = User(username='admin', is_admin=True)
    admin.set_password('password')
    viewer = User(username='viewer')
    viewer.set_password('password')
    aviators = Team(name='Aviators', short_name='AVI', color_code='#004A7F')
    producers = Team(name='Producers', short_name='PRO', color_code='#800000')
    spares = Team(name='Spares', short_name='SPR', color_code='#333333')
    db.session.add_all([admin, viewer, aviators, producers, spares])
    db.session.flush()
    players = {
        name: Player(name=name, team_id=team.id)
        for name, team in [('A', aviators), ('B', aviators), ('C', producers), ('D', producers), ('E', spares)]
    }
    db.session.add_all(players.values())
    rnd = Round(name='Saturday', course_name='Home Course')
    db.session.add(rnd)
    db.session.flush()
    match = BestBallMatch(round_id=rnd.id, team1_id=aviators.id, team2_id=producers.id)
    db.session.add(match)
    db.session.commit()
    return {
        'admin_token': admin.token,
        'viewer_token': viewer.token,
        'team1_id': aviators.id,
        'team2_id': producers.id,
        'spare_team_id': spares.id,
        'round_id': rnd.id,
        'match_id': match.id,
        'players': {name: p.id for name, p in players.items()},
    }


@pytest.fixture()
def admin_headers(seed):
    return {'Authorization': f"Bearer {seed['admin_token']}"}


@pytest.fixture()
def viewer_headers(seed):
    return {'Authorization': f"Bearer {seed['viewer_token']}"}


@pytest.fixture()
def sio_client(flask_app, seed):
    test_client = socketio.test_client(
        flask_app,
        namespace='/ws',
        query_string=f"token={seed['viewer_token']}",
        flask_test_client=flask_app.test_client(),
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


def received_messages(sio_client):
    """Envelopes delivered on the `message` event, in arrival order."""
    messages = []
    for pkt in sio_client.get_received('/ws'):
        if pkt['name'] != 'message':
            continue
        args = pkt['args']
        messages.append(args[0] if isinstance(args, list) else args)
    return messages


@pytest.fixture()
def read_messages():
    return received_messages
