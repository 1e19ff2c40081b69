import os
import sys
import pytest

# Ensure the repository root (containing the `rankparty` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
REPO_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from rankparty import create_app, db, socketio
from rankparty.models import Topic, User
from rankparty.seed import seed_topics, seed_users
from rankparty.services import games as svc
from rankparty.services.games.notifications import Notifier


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = ['http://localhost:5173']
    MIN_PLAYERS = 2
    JOIN_CODE_LENGTH = 6
    JOIN_CODE_MAX_ATTEMPTS = 10
    DEFAULT_TARGET_SCORE = 1000
    DEFAULT_POINTS_PER_CORRECT = 100
    DEFAULT_BONUS_ALL_CORRECT = 200
    DEFAULT_PENALTY_ALL_WRONG = -50


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events = []

    def publish(self, event, game_code, payload):
        self.events.append((event, game_code, payload))

    def names(self):
        return [e[0] for e in self.events]


USERNAMES = ['alice', 'bob', 'cara', 'dave']


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import rankparty.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def users(flask_app):
    """username -> user id for the seeded demo users."""
    seed_users(USERNAMES, 'password')
    return {u.username: u.id for u in User.query.filter(User.username.in_(USERNAMES)).all()}


@pytest.fixture()
def topic(flask_app):
    """A three item topic: A, B, C. Returns (topic_id, {name: item_id})."""
    seed_topics({'Letters': ['A', 'B', 'C']})
    t = Topic.query.filter_by(name='Letters').first()
    return t.id, {i.name: i.id for i in t.items}


@pytest.fixture()
def notifier(flask_app):
    recorder = RecordingNotifier()
    flask_app.extensions['rankparty.notifier'] = recorder
    return recorder


@pytest.fixture()
def web_app():
    """App for HTTP tests; no context stays pushed, so each request gets its own ``g``.

    Seeds the demo users and the Letters topic and records notifications.
    """
    application = create_app(TestConfig)
    with application.app_context():
        db.create_all()
        seed_users(USERNAMES, 'password')
        seed_topics({'Letters': ['A', 'B', 'C']})
    application.extensions['rankparty.notifier'] = RecordingNotifier()
    yield application
    with application.app_context():
        db.drop_all()


@pytest.fixture()
def login_as(web_app):
    def _login(username):
        test_client = web_app.test_client()
        res = test_client.post('/login', json={'username': username, 'password': 'password'})
        assert res.status_code == 200
        test_client.user_id = res.get_json()['user']['id']
        return test_client
    return _login


@pytest.fixture()
def game_with_players(users):
    """Waiting game created by alice, joined by bob and cara."""
    def _make(**settings):
        game = svc.create_game(users['alice'], 'alice', **settings)
        svc.join_game(game.code, users['bob'], 'bob')
        svc.join_game(game.code, users['cara'], 'cara')
        return game
    return _make


@pytest.fixture()
def ranking_of():
    """Build [{item_id, position}] entries from an ordered list of item ids."""
    def _build(item_ids):
        return [{'item_id': item_id, 'position': pos} for pos, item_id in enumerate(item_ids)]
    return _build


@pytest.fixture()
def reveal_all():
    """Drive a round from player_guessing to complete."""
    def _reveal(round_id, vip_id):
        rnd = svc.start_reveal(round_id, vip_id)
        while rnd.status != 'complete':
            rnd = svc.advance_reveal(round_id, vip_id)
        return rnd
    return _reveal


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
