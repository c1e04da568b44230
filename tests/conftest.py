import pytest
from datetime import date, timedelta

from app import create_app
from models import (
    db,
    User,
    Competition,
    Team,
    Player,
    Match,
    current_time,
    MATCH_SCHEDULED,
)
from store import DataStore


@pytest.fixture
def flask_app():
    """Create test application with in-memory SQLite database"""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_ENGINE_OPTIONS': {},
            'SECRET_KEY': 'test-secret-key',
        }
    )

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(flask_app):
    """Test client"""
    return flask_app.test_client()


@pytest.fixture
def store(flask_app):
    """DataStore bound to the test session"""
    return DataStore(db.session)


def _user(email, role, first_name, last_name, **extra):
    user = User(email=email, role=role, first_name=first_name, last_name=last_name, **extra)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin_user(flask_app):
    """The bootstrap administrator seeded by create_app"""
    return User.query.filter_by(email='admin@bifa.local').first()


@pytest.fixture
def secretariat_user(flask_app):
    return _user('secretariat@bifa.test', 'SECRETARIAT', 'Aline', 'Niyonzima')


@pytest.fixture
def referee_user(flask_app):
    return _user('referee@bifa.test', 'REFEREE', 'Jean', 'Ndayishimiye', license_number='REF-001')


@pytest.fixture
def other_referee(flask_app):
    return _user('referee2@bifa.test', 'REFEREE', 'Eric', 'Hakizimana', license_number='REF-002')


@pytest.fixture
def official_user(flask_app):
    return _user('official@bifa.test', 'FEDERATION_OFFICIAL', 'Claude', 'Irakoze')


@pytest.fixture
def competition(flask_app, admin_user):
    """An ongoing league that started five days ago"""
    competition = Competition(
        name='Primus League',
        start_date=date.today() - timedelta(days=5),
        end_date=date.today() + timedelta(days=60),
        location='Bujumbura',
        status='ONGOING',
        format='LEAGUE',
        created_by=admin_user.id,
    )
    db.session.add(competition)
    db.session.commit()
    return competition


def _team(name, code, city):
    team = Team(name=name, code=code, city=city)
    db.session.add(team)
    db.session.commit()
    return team


@pytest.fixture
def team(flask_app):
    return _team('Vital\'O FC', 'VIT', 'Bujumbura')


@pytest.fixture
def team2(flask_app):
    return _team('Aigle Noir', 'AIG', 'Makamba')


@pytest.fixture
def team3(flask_app):
    return _team('Flambeau du Centre', 'FDC', 'Gitega')


@pytest.fixture
def team4(flask_app):
    return _team('Musongati FC', 'MUS', 'Gitega')


@pytest.fixture
def player(flask_app, team):
    player = Player(first_name='Jules', last_name='Ulimwengu', team_id=team.id, position='FW', jersey_number=9)
    db.session.add(player)
    db.session.commit()
    return player


@pytest.fixture
def player2(flask_app, team2):
    player = Player(first_name='Cedric', last_name='Amissi', team_id=team2.id, position='FW', jersey_number=10)
    db.session.add(player)
    db.session.commit()
    return player


@pytest.fixture
def make_match(flask_app, competition):
    """Factory for matches in the test competition, two days ahead by default"""

    def _make(home, away, status=MATCH_SCHEDULED, scheduled_at=None, **extra):
        match = Match(
            competition_id=extra.pop('competition_id', competition.id),
            home_team_id=home.id,
            away_team_id=away.id,
            scheduled_at=scheduled_at or current_time() + timedelta(days=2),
            venue='Stade Intwari',
            status=status,
            standings_applied=extra.pop('standings_applied', False),
            **extra,
        )
        db.session.add(match)
        db.session.commit()
        return match

    return _make


@pytest.fixture
def match(make_match, team, team2):
    return make_match(team, team2)


@pytest.fixture
def login(client):
    """Return a function that puts a user id into the client session"""

    def _login(user):
        with client.session_transaction() as sess:
            sess['user_id'] = user.id
        return client

    return _login


@pytest.fixture
def authenticated_admin(login, admin_user):
    return login(admin_user)


@pytest.fixture
def authenticated_secretariat(login, secretariat_user):
    return login(secretariat_user)


@pytest.fixture
def authenticated_referee(login, referee_user):
    return login(referee_user)


@pytest.fixture
def authenticated_official(login, official_user):
    return login(official_user)
