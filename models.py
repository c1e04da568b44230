from datetime import datetime, timedelta
import os
import re
import pytz

from flask import current_app, has_app_context
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import or_, and_, inspect, text
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.orm import validates

from errors import ValidationError

db = SQLAlchemy()

DEFAULT_TIMEZONE = os.environ.get('BIFA_TIMEZONE', 'Africa/Bujumbura')

ROLES = ('ADMIN', 'SECRETARIAT', 'REFEREE', 'TEAM_MANAGER', 'FEDERATION_OFFICIAL')

COMPETITION_FORMATS = ('LEAGUE', 'KNOCKOUT', 'GROUP_STAGE', 'ROUND_ROBIN')
COMPETITION_STATUSES = ('UPCOMING', 'ONGOING', 'COMPLETED')

MATCH_SCHEDULED = 'SCHEDULED'
MATCH_LIVE = 'LIVE'
MATCH_FULL_TIME = 'FULL_TIME'
MATCH_FINISHED = 'FINISHED'
MATCH_POSTPONED = 'POSTPONED'
MATCH_CANCELLED = 'CANCELLED'
MATCH_STATUSES = (MATCH_SCHEDULED, MATCH_LIVE, MATCH_FULL_TIME, MATCH_FINISHED, MATCH_POSTPONED, MATCH_CANCELLED)
FINISHED_STATUSES = (MATCH_FULL_TIME, MATCH_FINISHED)
CLOSED_STATUSES = FINISHED_STATUSES + (MATCH_CANCELLED,)

EVENT_GOAL = 'GOAL'
EVENT_TYPES = (EVENT_GOAL, 'OWN_GOAL', 'PENALTY_MISSED', 'YELLOW_CARD', 'RED_CARD', 'SUBSTITUTION')
MAX_EVENT_MINUTE = 130

ASSIGNMENT_ROLES = ('MAIN_REFEREE', 'ASSISTANT_REFEREE', 'FOURTH_OFFICIAL', 'VAR')
ASSIGNMENT_STATUSES = ('PENDING', 'ACCEPTED', 'DECLINED')

REPORT_SEVERITIES = ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')
REPORT_STATUSES = ('SUBMITTED', 'UNDER_REVIEW', 'APPROVED', 'REJECTED')

POINTS_WIN = 3
POINTS_DRAW = 1
POINTS_LOSS = 0


def bifa_tz():
    """The federation timezone, taken from the active app's config when there is one."""
    if has_app_context():
        return pytz.timezone(current_app.config.get('BIFA_TIMEZONE', DEFAULT_TIMEZONE))
    return pytz.timezone(DEFAULT_TIMEZONE)


def current_time():
    """Naive wall-clock time in the federation's timezone."""
    return datetime.now(bifa_tz()).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    """Federation staff accounts; the role drives every capability check."""

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    role = db.Column(db.String(30), nullable=False)
    phone_number = db.Column(db.String(20))
    license_number = db.Column(db.String(40), unique=True)  # referees only
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=current_time)

    competitions_created = db.relationship(
        'Competition', backref='creator', lazy=True, foreign_keys='Competition.created_by'
    )
    assignments = db.relationship(
        'RefereeAssignment', backref='referee', lazy=True, cascade='all, delete-orphan'
    )

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<User {self.id} {self.email} role={self.role}>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def has_role(self, *roles: str) -> bool:
        return bool(self.is_active) and self.role in roles

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'role': self.role,
            'phoneNumber': self.phone_number,
            'licenseNumber': self.license_number,
            'isActive': self.is_active,
            'createdAt': _iso(self.created_at),
        }

    @staticmethod
    def validate_format(
        email: str,
        first_name: str,
        last_name: str,
        role: str,
        phone_number: str | None = None,
        license_number: str | None = None,
    ) -> list[str]:
        """Validate account data format without using the database."""
        errors: list[str] = []

        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not email or not re.match(email_pattern, email):
            errors.append("Valid email required")

        if not first_name or not first_name.strip():
            errors.append("First name is required")
        if not last_name or not last_name.strip():
            errors.append("Last name is required")

        if role not in ROLES:
            errors.append("Invalid role selected")

        if phone_number:
            phone_pattern = r'^\+?[0-9\s-]{7,15}$'
            if not re.fullmatch(phone_pattern, phone_number):
                errors.append("Phone number must contain 7-15 digits and may include + or -")

        if license_number and role != 'REFEREE':
            errors.append("Only referees carry a license number")

        return errors


class Competition(db.Model):
    __tablename__ = 'competition'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    location = db.Column(db.String(120))
    status = db.Column(db.String(20), default='UPCOMING')
    format = db.Column(db.String(20), default='LEAGUE')
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=current_time)

    matches = db.relationship(
        'Match', backref='competition', lazy=True, cascade='all, delete-orphan'
    )
    standings = db.relationship(
        'Standing', backref='competition', lazy=True, cascade='all, delete-orphan',
        order_by='Standing.position',
    )

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Competition {self.id} {self.name}>"

    @validates('end_date')
    def validate_end_date(self, key, value):
        if self.start_date and value and value < self.start_date:
            raise ValidationError('End date must be on or after the start date')
        return value

    @validates('start_date')
    def validate_start_date(self, key, value):
        if self.end_date and value and value > self.end_date:
            raise ValidationError('End date must be on or after the start date')
        return value

    def to_dict(self, include_standings: bool = False) -> dict:
        payload = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'startDate': _iso(self.start_date),
            'endDate': _iso(self.end_date),
            'location': self.location,
            'status': self.status,
            'format': self.format,
            'createdBy': self.created_by,
            'createdAt': _iso(self.created_at),
        }
        if include_standings:
            payload['standings'] = [standing.to_dict() for standing in self.standings]
        return payload


class Team(db.Model):
    __tablename__ = 'team'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    code = db.Column(db.String(10))
    city = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=current_time)

    players = db.relationship('Player', backref='team', lazy=True, cascade='all, delete-orphan')
    standings = db.relationship('Standing', backref='team', lazy=True, cascade='all, delete-orphan')

    home_matches = db.relationship(
        'Match', foreign_keys='Match.home_team_id', backref='home_team', lazy=True
    )
    away_matches = db.relationship(
        'Match', foreign_keys='Match.away_team_id', backref='away_team', lazy=True
    )

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Team {self.id} {self.name}>"

    def has_matches(self) -> bool:
        return Match.query.filter(
            or_(Match.home_team_id == self.id, Match.away_team_id == self.id)
        ).first() is not None

    def get_upcoming_matches(self, competition_id=None):
        query = Match.query.filter(
            or_(Match.home_team_id == self.id, Match.away_team_id == self.id),
            Match.status == MATCH_SCHEDULED,
            Match.scheduled_at >= current_time(),
        )
        if competition_id:
            query = query.filter(Match.competition_id == competition_id)
        return query.order_by(Match.scheduled_at).all()

    def to_dict(self, include_players: bool = False) -> dict:
        payload = {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'city': self.city,
            'isActive': self.is_active,
        }
        if include_players:
            payload['players'] = [player.to_dict() for player in self.players if player.is_active]
        return payload


class Player(db.Model):
    __tablename__ = 'player'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    position = db.Column(db.String(30))
    jersey_number = db.Column(db.Integer)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=current_time)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def update_player(self, **kwargs):
        for field, value in kwargs.items():
            if hasattr(self, field) and value is not None:
                if isinstance(value, str) and value.strip() == '':
                    continue
                setattr(self, field, value)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'teamId': self.team_id,
            'position': self.position,
            'jerseyNumber': self.jersey_number,
            'isActive': self.is_active,
        }


squad_players = db.Table(
    'squad_players',
    db.Column('squad_id', db.Integer, db.ForeignKey('national_squad.id'), primary_key=True),
    db.Column('player_id', db.Integer, db.ForeignKey('player.id'), primary_key=True),
)


class NationalSquad(db.Model):
    """A national team call-up list picked by federation officials from club players."""

    __tablename__ = 'national_squad'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=current_time)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    players = db.relationship(
        'Player', secondary=squad_players, backref='national_squads', lazy=True,
        order_by='Player.last_name',
    )
    creator = db.relationship('User')

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<NationalSquad {self.id} {self.name} players={len(self.players)}>"

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'creator': {'id': self.creator.id, 'name': self.creator.full_name} if self.creator else None,
            'players': [
                dict(player.to_dict(), team=player.team.to_dict()) for player in self.players
            ],
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


class Match(db.Model):
    __tablename__ = 'match'

    id = db.Column(db.Integer, primary_key=True)
    competition_id = db.Column(db.Integer, db.ForeignKey('competition.id'), nullable=False)
    home_team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    away_team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    scheduled_at = db.Column(db.DateTime, nullable=False)
    venue = db.Column(db.String(120))
    status = db.Column(db.String(20), default=MATCH_SCHEDULED, nullable=False)
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)
    standings_applied = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=current_time)

    events = db.relationship(
        'MatchEvent', backref='match', lazy=True, cascade='all, delete-orphan',
        order_by='MatchEvent.minute',
    )
    assignments = db.relationship(
        'RefereeAssignment', backref='match', lazy=True, cascade='all, delete-orphan'
    )
    reports = db.relationship(
        'DisciplinaryReport', backref='match', lazy=True, cascade='all, delete-orphan'
    )

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Match {self.id} {self.home_team_id} v {self.away_team_id} {self.status}>"

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def is_live(self) -> bool:
        return self.status == MATCH_LIVE

    @property
    def versus_display(self) -> str:
        home = self.home_team.name if self.home_team else 'TBD'
        away = self.away_team.name if self.away_team else 'TBD'
        return f"{home} vs {away}"

    def involves(self, team_id) -> bool:
        return team_id in (self.home_team_id, self.away_team_id)

    def to_dict(self, include_events: bool = False) -> dict:
        payload = {
            'id': self.id,
            'competitionId': self.competition_id,
            'homeTeam': self.home_team.to_dict() if self.home_team else None,
            'awayTeam': self.away_team.to_dict() if self.away_team else None,
            'scheduledAt': _iso(self.scheduled_at),
            'venue': self.venue,
            'status': self.status,
            'homeScore': self.home_score,
            'awayScore': self.away_score,
            'standingsApplied': self.standings_applied,
        }
        if include_events:
            payload['events'] = [event.to_dict() for event in self.events]
        return payload

    @classmethod
    def prune_expired(cls, retention_days: int) -> int:
        """Delete cancelled matches, and finished matches of completed competitions, past the window."""
        cutoff = current_time() - timedelta(days=retention_days)
        closed_competitions = db.session.query(Competition.id).filter(Competition.status == 'COMPLETED')
        expired = cls.query.filter(
            cls.scheduled_at < cutoff,
            or_(
                cls.status == MATCH_CANCELLED,
                and_(
                    cls.status.in_(FINISHED_STATUSES),
                    cls.competition_id.in_(closed_competitions),
                ),
            ),
        ).all()
        removed = len(expired)
        for match in expired:
            db.session.delete(match)
        if removed:
            db.session.commit()
        return removed


class MatchEvent(db.Model):
    """Goals, cards and substitutions filed with a match report."""

    __tablename__ = 'match_event'

    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'))
    type = db.Column(db.String(20), nullable=False)
    minute = db.Column(db.Integer, nullable=False)
    details = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=current_time)

    team = db.relationship('Team')
    player = db.relationship('Player')

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'matchId': self.match_id,
            'teamId': self.team_id,
            'player': self.player.to_dict() if self.player else None,
            'type': self.type,
            'minute': self.minute,
            'details': self.details,
        }


class Standing(db.Model):
    """One league-table row per (competition, team)."""

    __tablename__ = 'standing'

    id = db.Column(db.Integer, primary_key=True)
    competition_id = db.Column(db.Integer, db.ForeignKey('competition.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=1)
    played = db.Column(db.Integer, nullable=False, default=0)
    won = db.Column(db.Integer, nullable=False, default=0)
    drawn = db.Column(db.Integer, nullable=False, default=0)
    lost = db.Column(db.Integer, nullable=False, default=0)
    goals_for = db.Column(db.Integer, nullable=False, default=0)
    goals_against = db.Column(db.Integer, nullable=False, default=0)
    goal_diff = db.Column(db.Integer, nullable=False, default=0)
    points = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=current_time, onupdate=current_time)

    __table_args__ = (db.UniqueConstraint('competition_id', 'team_id', name='unique_competition_team'),)

    def __repr__(self):  # pragma: no cover - debug helper
        return f"<Standing c={self.competition_id} t={self.team_id} pos={self.position} pts={self.points}>"

    @classmethod
    def empty(cls, competition_id: int, team_id: int) -> 'Standing':
        # position 1 is a placeholder until the competition is reranked
        return cls(
            competition_id=competition_id,
            team_id=team_id,
            position=1,
            played=0,
            won=0,
            drawn=0,
            lost=0,
            goals_for=0,
            goals_against=0,
            goal_diff=0,
            points=0,
        )

    def apply(self, delta) -> None:
        self.played += 1
        self.won += delta.won
        self.drawn += delta.drawn
        self.lost += delta.lost
        self.goals_for += delta.goals_for
        self.goals_against += delta.goals_against
        self.goal_diff += delta.goals_for - delta.goals_against
        self.points += delta.points

    def invariant_violations(self) -> list[str]:
        problems = []
        if self.played != self.won + self.drawn + self.lost:
            problems.append('played does not equal won + drawn + lost')
        if self.goal_diff != self.goals_for - self.goals_against:
            problems.append('goal difference does not equal goals for minus goals against')
        if self.points != POINTS_WIN * self.won + POINTS_DRAW * self.drawn:
            problems.append('points do not match the win/draw record')
        return problems

    def sort_key(self) -> tuple[int, int, int]:
        return (-self.points, -self.goal_diff, -self.goals_for)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'competitionId': self.competition_id,
            'team': self.team.to_dict() if self.team else None,
            'position': self.position,
            'played': self.played,
            'won': self.won,
            'drawn': self.drawn,
            'lost': self.lost,
            'goalsFor': self.goals_for,
            'goalsAgainst': self.goals_against,
            'goalDiff': self.goal_diff,
            'points': self.points,
        }


class RefereeAssignment(db.Model):
    __tablename__ = 'referee_assignment'

    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    referee_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    role = db.Column(db.String(30), default='MAIN_REFEREE', nullable=False)
    status = db.Column(db.String(20), default='PENDING', nullable=False)
    status_updated_at = db.Column(db.DateTime, default=current_time)
    created_at = db.Column(db.DateTime, default=current_time)

    __table_args__ = (db.UniqueConstraint('match_id', 'referee_id', name='unique_match_referee'),)

    def set_status(self, new_status: str) -> None:
        self.status = new_status
        self.status_updated_at = current_time()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'matchId': self.match_id,
            'referee': {'id': self.referee.id, 'name': self.referee.full_name} if self.referee else None,
            'role': self.role,
            'status': self.status,
        }


class DisciplinaryReport(db.Model):
    __tablename__ = 'disciplinary_report'

    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    referee_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'))
    incident_type = db.Column(db.String(60), nullable=False)
    description = db.Column(db.Text, nullable=False)
    severity = db.Column(db.String(20), default='MEDIUM', nullable=False)
    status = db.Column(db.String(20), default='SUBMITTED', nullable=False)
    reviewed_by = db.Column(db.Integer, db.ForeignKey('users.id'))
    reviewed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=current_time)

    referee = db.relationship('User', foreign_keys=[referee_id], backref='reports_filed')
    reviewer = db.relationship('User', foreign_keys=[reviewed_by])
    player = db.relationship('Player')

    def review(self, new_status: str, reviewer) -> None:
        self.status = new_status
        self.reviewed_by = reviewer.id
        self.reviewed_at = current_time()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'matchId': self.match_id,
            'refereeId': self.referee_id,
            'player': self.player.to_dict() if self.player else None,
            'incidentType': self.incident_type,
            'description': self.description,
            'severity': self.severity,
            'status': self.status,
            'reviewedBy': self.reviewed_by,
            'reviewedAt': _iso(self.reviewed_at),
            'createdAt': _iso(self.created_at),
        }


def init_default_data():
    """Seed the bootstrap administrator account."""

    ensure_schema_integrity()

    admin = User.query.filter_by(email='admin@bifa.local').first()
    if not admin:
        admin = User(
            email='admin@bifa.local',
            first_name='System',
            last_name='Administrator',
            role='ADMIN',
        )
        db.session.add(admin)
    else:
        if not admin.role:
            admin.role = 'ADMIN'
        if admin.is_active is None:
            admin.is_active = True

    db.session.commit()


def ensure_schema_integrity():
    """Apply lightweight schema updates required for new fields."""

    inspector = inspect(db.engine)

    try:
        match_columns = {col['name'] for col in inspector.get_columns('match')}
    except NoSuchTableError:
        return

    if 'standings_applied' not in match_columns:
        # Older databases counted every finished match as soon as it was stored.
        with db.engine.begin() as connection:
            connection.execute(text('ALTER TABLE "match" ADD COLUMN standings_applied BOOLEAN DEFAULT FALSE NOT NULL'))
            connection.execute(
                text("""UPDATE "match" SET standings_applied = TRUE WHERE status IN ('FULL_TIME', 'FINISHED')""")
            )
