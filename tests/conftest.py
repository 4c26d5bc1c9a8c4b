"""
Pytest configuration and fixtures for lobby engine tests.
"""
import os
import sys
import random
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'
os.environ['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///:memory:'

from lobby_engine.app import create_app
from lobby_engine.models import db, User, Tournament, Player
from lobby_engine.lobby_service import LobbyService
from lobby_engine.notifier import LobbyNotifier


class SequenceRandom(random.Random):
    """random() only ever increases, so random tie-breaks keep insertion order."""

    def __init__(self, seed=0):
        super().__init__(seed)
        self.calls = 0

    def random(self):
        self.calls += 1
        return self.calls / 10 ** 9


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    service = LobbyService(notifier=LobbyNotifier(), rng=SequenceRandom())
    app = create_app('testing', lobby_service=service)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for testing."""
    # Clear all tables before each test
    db.session.remove()

    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture
def rng():
    return SequenceRandom()


@pytest.fixture
def sample_tournament(app, db_session):
    """Create a sample tournament for testing."""
    tournament = Tournament(name='Test Cup', status='collecting', price=0)
    db.session.add(tournament)
    db.session.commit()
    return tournament


@pytest.fixture
def make_players(app, db_session):
    """
    Factory creating users and players in one tournament. Players are
    created in the given MMR order, so ids follow that order.
    """
    counter = {'n': 0}

    def _make(tournament, mmrs, lives=3, chill_zone_value=0):
        players = []
        for mmr in mmrs:
            counter['n'] += 1
            n = counter['n']
            user = User(telegram_id=f'tg-{n}', username=f'user{n}', nickname=f'Player {n}')
            db.session.add(user)
            db.session.flush()

            player = Player(
                user_id=user.id,
                tournament_id=tournament.id,
                nickname=f'Player {n}',
                mmr=mmr,
                lives=lives,
                status='active' if lives > 0 else 'eliminated',
                chill_zone_value=chill_zone_value
            )
            db.session.add(player)
            players.append(player)

        db.session.commit()
        return players

    return _make


@pytest.fixture
def twelve_players(sample_tournament, make_players):
    """12 players with MMR 2000 down to 900 in steps of 100."""
    return make_players(sample_tournament, range(2000, 800, -100))


@pytest.fixture
def ten_players(sample_tournament, make_players):
    return make_players(sample_tournament, range(2000, 1000, -100))


@pytest.fixture
def mock_pubsub(mocker):
    """Mock redis pub/sub client."""
    mock = mocker.MagicMock()
    mock.publish_tournament_event = mocker.MagicMock()
    mock.publish_user_notification = mocker.MagicMock()
    return mock


@pytest.fixture
def formation(rng):
    from lobby_engine.formation import LobbyFormationEngine
    return LobbyFormationEngine(rng=rng)


@pytest.fixture
def draft(rng):
    from lobby_engine.draft import DraftEngine
    return DraftEngine(rng=rng)


@pytest.fixture
def pending_lobby(sample_tournament, ten_players, formation):
    return formation.generate_lobbies(sample_tournament.id)[0]


@pytest.fixture
def drafting_lobby(pending_lobby, draft):
    return draft.start_draft(pending_lobby.id)


@pytest.fixture
def playing_lobby(drafting_lobby, draft):
    """Captains alternate picks until both teams are full."""
    lobby = drafting_lobby
    picks = [p.player_id for p in lobby.participations if not p.is_captain]
    for i, player_id in enumerate(picks):
        lobby = draft.draft_pick(lobby.id, player_id, 1 if i % 2 == 0 else 2)
    return lobby
