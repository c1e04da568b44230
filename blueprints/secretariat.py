from flask import Blueprint, jsonify, request, g

from blueprints.auth import require_role, json_payload
from errors import AuthorizationError, ConsistencyError, ValidationError
from models import (
    bifa_tz,
    Competition,
    Team,
    Player,
    Match,
    User,
    RefereeAssignment,
    COMPETITION_FORMATS,
    COMPETITION_STATUSES,
    ASSIGNMENT_ROLES,
    MATCH_SCHEDULED,
    MATCH_LIVE,
    MATCH_POSTPONED,
    MATCH_CANCELLED,
    CLOSED_STATUSES,
    FINISHED_STATUSES,
    MATCH_STATUSES,
)
from standings import ResultRecorder
from store import current_store
from validators import (
    parse_choice,
    parse_date,
    parse_datetime,
    parse_int,
    parse_optional_int,
    require_fields,
)

secretariat_bp = Blueprint('secretariat', __name__, url_prefix='/secretariat')

STAFF_ROLES = ('ADMIN', 'SECRETARIAT')
RESULT_ROLES = ('ADMIN', 'SECRETARIAT', 'REFEREE')
EDITABLE_MATCH_STATUSES = (MATCH_SCHEDULED, MATCH_LIVE, MATCH_POSTPONED, MATCH_CANCELLED)


def _text(payload: dict, field: str, default=None):
    value = payload.get(field, default)
    if value is None:
        return None
    return str(value).strip() or None


def _ensure_unique_team_name(name: str, exclude_id=None) -> None:
    existing = Team.query.filter(Team.name == name).first()
    if existing and existing.id != exclude_id:
        raise ConsistencyError(f'Team {name} already exists')


# ----------------------------------------------------------------------
# Competitions
# ----------------------------------------------------------------------
@secretariat_bp.route('/competitions', methods=['POST'])
@require_role(*STAFF_ROLES)
def create_competition():
    payload = json_payload()
    require_fields(payload, 'name', 'startDate', 'endDate')

    competition = Competition(
        name=_text(payload, 'name'),
        description=_text(payload, 'description'),
        start_date=parse_date(payload['startDate'], 'startDate'),
        end_date=parse_date(payload['endDate'], 'endDate'),
        location=_text(payload, 'location'),
        format=parse_choice(payload.get('format') or 'LEAGUE', 'format', COMPETITION_FORMATS),
        status=parse_choice(payload.get('status') or 'UPCOMING', 'status', COMPETITION_STATUSES),
        created_by=g.current_user.id,
    )
    with current_store().unit_of_work() as store:
        store.add(competition)

    return jsonify(competition.to_dict()), 201


@secretariat_bp.route('/competitions/<int:competition_id>', methods=['PUT'])
@require_role(*STAFF_ROLES)
def update_competition(competition_id):
    payload = json_payload()
    with current_store().unit_of_work() as store:
        competition = store.require(Competition, competition_id, 'Competition')

        start_date = parse_date(payload['startDate'], 'startDate') if payload.get('startDate') else competition.start_date
        end_date = parse_date(payload['endDate'], 'endDate') if payload.get('endDate') else competition.end_date
        if end_date < start_date:
            raise ValidationError('End date must be on or after the start date')
        # clear first so the per-field validators never see a half-updated range
        competition.end_date = None
        competition.start_date = start_date
        competition.end_date = end_date

        if payload.get('name'):
            competition.name = _text(payload, 'name')
        if 'description' in payload:
            competition.description = _text(payload, 'description')
        if 'location' in payload:
            competition.location = _text(payload, 'location')
        if payload.get('format'):
            competition.format = parse_choice(payload['format'], 'format', COMPETITION_FORMATS)
        if payload.get('status'):
            competition.status = parse_choice(payload['status'], 'status', COMPETITION_STATUSES)

    return jsonify(competition.to_dict())


@secretariat_bp.route('/competitions/<int:competition_id>', methods=['DELETE'])
@require_role('ADMIN')
def delete_competition(competition_id):
    """Deleting a competition cascades to its matches and standings."""
    with current_store().unit_of_work() as store:
        competition = store.require(Competition, competition_id, 'Competition')
        store.delete(competition)

    return jsonify({'message': 'Competition deleted successfully'})


@secretariat_bp.route('/competitions/<int:competition_id>/rebuild-standings', methods=['POST'])
@require_role(*STAFF_ROLES)
def rebuild_standings(competition_id):
    ranked = ResultRecorder(current_store()).rebuild_competition(competition_id)
    return jsonify([row.to_dict() for row in ranked])


@secretariat_bp.route('/standings/pending')
@require_role(*STAFF_ROLES)
def pending_standings():
    competition_id = parse_optional_int(request.args.get('competitionId'), 'competitionId')
    matches = ResultRecorder(current_store()).pending_matches(competition_id)
    return jsonify([match.to_dict() for match in matches])


# ----------------------------------------------------------------------
# Teams and players
# ----------------------------------------------------------------------
@secretariat_bp.route('/teams', methods=['POST'])
@require_role(*STAFF_ROLES)
def create_team():
    payload = json_payload()
    require_fields(payload, 'name')
    name = _text(payload, 'name')
    _ensure_unique_team_name(name)

    team = Team(
        name=name,
        code=(_text(payload, 'code') or '').upper() or None,
        city=_text(payload, 'city'),
    )
    with current_store().unit_of_work() as store:
        store.add(team)

    return jsonify(team.to_dict()), 201


@secretariat_bp.route('/teams/<int:team_id>', methods=['PUT'])
@require_role(*STAFF_ROLES)
def update_team(team_id):
    payload = json_payload()
    with current_store().unit_of_work() as store:
        team = store.require(Team, team_id, 'Team')
        if payload.get('name'):
            name = _text(payload, 'name')
            _ensure_unique_team_name(name, exclude_id=team.id)
            team.name = name
        if 'code' in payload:
            team.code = (_text(payload, 'code') or '').upper() or None
        if 'city' in payload:
            team.city = _text(payload, 'city')
        if 'isActive' in payload:
            team.is_active = bool(payload['isActive'])

    return jsonify(team.to_dict())


@secretariat_bp.route('/teams/<int:team_id>', methods=['DELETE'])
@require_role('ADMIN')
def delete_team(team_id):
    with current_store().unit_of_work() as store:
        team = store.require(Team, team_id, 'Team')
        if team.has_matches():
            raise ConsistencyError('Teams with scheduled or played matches cannot be deleted; deactivate them instead')
        store.delete(team)

    return jsonify({'message': 'Team deleted successfully'})


@secretariat_bp.route('/teams/<int:team_id>/players', methods=['POST'])
@require_role(*STAFF_ROLES)
def create_player(team_id):
    payload = json_payload()
    require_fields(payload, 'firstName', 'lastName')
    with current_store().unit_of_work() as store:
        team = store.require(Team, team_id, 'Team')
        player = store.add(
            Player(
                first_name=_text(payload, 'firstName'),
                last_name=_text(payload, 'lastName'),
                team_id=team.id,
                position=_text(payload, 'position'),
                jersey_number=parse_optional_int(payload.get('jerseyNumber'), 'jerseyNumber', minimum=1, maximum=99),
            )
        )

    return jsonify(player.to_dict()), 201


@secretariat_bp.route('/players/<int:player_id>', methods=['PUT'])
@require_role(*STAFF_ROLES)
def update_player(player_id):
    payload = json_payload()
    with current_store().unit_of_work() as store:
        player = store.require(Player, player_id, 'Player')
        player.update_player(
            first_name=_text(payload, 'firstName'),
            last_name=_text(payload, 'lastName'),
            position=_text(payload, 'position'),
            jersey_number=parse_optional_int(payload.get('jerseyNumber'), 'jerseyNumber', minimum=1, maximum=99),
        )
        if payload.get('teamId') is not None:
            player.team_id = store.require(Team, parse_int(payload['teamId'], 'teamId'), 'Team').id
        if 'isActive' in payload:
            player.is_active = bool(payload['isActive'])

    return jsonify(player.to_dict())


# ----------------------------------------------------------------------
# Matches
# ----------------------------------------------------------------------
@secretariat_bp.route('/matches', methods=['POST'])
@require_role(*STAFF_ROLES)
def create_match():
    payload = json_payload()
    require_fields(payload, 'competitionId', 'homeTeamId', 'awayTeamId', 'scheduledAt')

    with current_store().unit_of_work() as store:
        competition = store.require(Competition, parse_int(payload['competitionId'], 'competitionId'), 'Competition')
        home_team = store.require(Team, parse_int(payload['homeTeamId'], 'homeTeamId'), 'Team')
        away_team = store.require(Team, parse_int(payload['awayTeamId'], 'awayTeamId'), 'Team')

        if home_team.id == away_team.id:
            raise ValidationError('A team cannot play against itself')
        if not home_team.is_active or not away_team.is_active:
            raise ValidationError('Only active teams can be scheduled')

        scheduled_at = parse_datetime(payload['scheduledAt'], 'scheduledAt', tz=bifa_tz())
        if not competition.start_date <= scheduled_at.date() <= competition.end_date:
            raise ValidationError('Match date must fall within the competition dates')

        match = store.add(
            Match(
                competition_id=competition.id,
                home_team_id=home_team.id,
                away_team_id=away_team.id,
                scheduled_at=scheduled_at,
                venue=_text(payload, 'venue'),
                status=MATCH_SCHEDULED,
                standings_applied=False,
            )
        )

    return jsonify(match.to_dict()), 201


@secretariat_bp.route('/matches/<int:match_id>', methods=['PUT'])
@require_role(*STAFF_ROLES)
def update_match(match_id):
    """Reschedule a match or move it between scheduled, live, postponed and cancelled."""
    payload = json_payload()
    if 'homeScore' in payload or 'awayScore' in payload:
        raise ValidationError(f'Record scores through /secretariat/matches/{match_id}/result')

    with current_store().unit_of_work() as store:
        match = store.require(Match, match_id, 'Match')
        if match.is_finished or match.standings_applied:
            raise ConsistencyError('Finished matches cannot be changed')

        if payload.get('status'):
            new_status = parse_choice(payload['status'], 'status', MATCH_STATUSES)
            if new_status in FINISHED_STATUSES:
                raise ValidationError(f'Record the final score through /secretariat/matches/{match_id}/result')
            if new_status not in EDITABLE_MATCH_STATUSES:
                raise ValidationError('Unsupported status update')
            match.status = new_status

        if payload.get('scheduledAt'):
            scheduled_at = parse_datetime(payload['scheduledAt'], 'scheduledAt', tz=bifa_tz())
            competition = match.competition
            if not competition.start_date <= scheduled_at.date() <= competition.end_date:
                raise ValidationError('Match date must fall within the competition dates')
            match.scheduled_at = scheduled_at
        if 'venue' in payload:
            match.venue = _text(payload, 'venue')

    return jsonify(match.to_dict())


@secretariat_bp.route('/matches/<int:match_id>', methods=['DELETE'])
@require_role('ADMIN')
def delete_match(match_id):
    with current_store().unit_of_work() as store:
        match = store.require(Match, match_id, 'Match')
        if match.standings_applied:
            raise ConsistencyError('Matches counted in the standings cannot be deleted')
        store.delete(match)

    return jsonify({'message': 'Match deleted successfully'})


@secretariat_bp.route('/matches/<int:match_id>/result', methods=['POST'])
@require_role(*RESULT_ROLES)
def record_result(match_id):
    """Record the final score and events, then update and rerank the standings."""
    payload = json_payload()
    require_fields(payload, 'homeScore', 'awayScore')

    store = current_store()
    if g.current_user.role == 'REFEREE':
        match = store.require(Match, match_id, 'Match')
        if not any(a.referee_id == g.current_user.id and a.status == 'ACCEPTED' for a in match.assignments):
            raise AuthorizationError('Referees can only report results for matches they officiate')

    match = ResultRecorder(store).record_match_result(
        match_id,
        payload.get('homeScore'),
        payload.get('awayScore'),
        payload.get('events'),
    )
    standings = store.standings_for(match.competition_id)
    return jsonify(
        {
            'message': 'Match result updated successfully',
            'match': match.to_dict(include_events=True),
            'standings': [row.to_dict() for row in standings],
        }
    )


@secretariat_bp.route('/matches/<int:match_id>/repair-standings', methods=['POST'])
@require_role(*STAFF_ROLES)
def repair_standings(match_id):
    store = current_store()
    match = ResultRecorder(store).repair_match(match_id)
    return jsonify(
        {
            'match': match.to_dict(),
            'standings': [row.to_dict() for row in store.standings_for(match.competition_id)],
        }
    )


@secretariat_bp.route('/matches/<int:match_id>/assignments', methods=['POST'])
@require_role(*STAFF_ROLES)
def assign_referee(match_id):
    payload = json_payload()
    require_fields(payload, 'refereeId')

    with current_store().unit_of_work() as store:
        match = store.require(Match, match_id, 'Match')
        if match.status in CLOSED_STATUSES:
            raise ConsistencyError('Referees cannot be assigned to finished or cancelled matches')

        referee = store.require(User, parse_int(payload['refereeId'], 'refereeId'), 'User')
        if not referee.has_role('REFEREE'):
            raise ValidationError('Only active referees can be assigned to matches')
        if any(assignment.referee_id == referee.id for assignment in match.assignments):
            raise ConsistencyError('Referee is already assigned to this match')

        assignment = store.add(
            RefereeAssignment(
                match_id=match.id,
                referee_id=referee.id,
                role=parse_choice(payload.get('role') or 'MAIN_REFEREE', 'role', ASSIGNMENT_ROLES),
                status='PENDING',
            )
        )

    return jsonify(assignment.to_dict()), 201
