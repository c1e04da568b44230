"""Referee workflows: assignments, match events and disciplinary reports."""

from flask import Blueprint, jsonify, request, g

from blueprints.auth import require_role, json_payload
from errors import AuthorizationError, ConsistencyError, ValidationError
from models import (
    Match,
    Player,
    RefereeAssignment,
    DisciplinaryReport,
    CLOSED_STATUSES,
    REPORT_SEVERITIES,
    REPORT_STATUSES,
)
from standings import build_event
from store import current_store
from validators import parse_choice, parse_int, parse_optional_int, require_fields

referee_bp = Blueprint('referee', __name__, url_prefix='/referee')

REVIEWER_ROLES = ('ADMIN', 'FEDERATION_OFFICIAL')


def _own_assignment(store, assignment_id: int) -> RefereeAssignment:
    assignment = store.require(RefereeAssignment, assignment_id, 'Assignment')
    if assignment.referee_id != g.current_user.id:
        raise AuthorizationError('This assignment belongs to another referee.')
    return assignment


def _officiates(match: Match, user, statuses=('ACCEPTED',)) -> bool:
    return any(
        assignment.referee_id == user.id and assignment.status in statuses
        for assignment in match.assignments
    )


@referee_bp.route('/assignments')
@require_role('REFEREE')
def my_assignments():
    query = RefereeAssignment.query.filter_by(referee_id=g.current_user.id)
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status.upper())
    assignments = query.order_by(RefereeAssignment.created_at.desc()).all()
    return jsonify(
        [
            dict(assignment.to_dict(), match=assignment.match.to_dict())
            for assignment in assignments
        ]
    )


@referee_bp.route('/assignments/<int:assignment_id>/<action>', methods=['POST'])
@require_role('REFEREE')
def respond_to_assignment(assignment_id, action):
    """Accept or decline an appointment to officiate."""
    statuses = {'accept': 'ACCEPTED', 'decline': 'DECLINED'}
    if action not in statuses:
        raise ValidationError('Unsupported assignment action')

    with current_store().unit_of_work() as store:
        assignment = _own_assignment(store, assignment_id)
        if assignment.match.status in CLOSED_STATUSES:
            raise ConsistencyError('The match is already closed')
        assignment.set_status(statuses[action])

    return jsonify(assignment.to_dict())


@referee_bp.route('/matches/<int:match_id>/events', methods=['POST'])
@require_role('REFEREE', 'ADMIN')
def add_match_event(match_id):
    payload = json_payload()
    with current_store().unit_of_work() as store:
        match = store.require(Match, match_id, 'Match')
        if g.current_user.role == 'REFEREE' and not _officiates(match, g.current_user):
            raise AuthorizationError('Only the officiating referees can file events for this match.')
        if not (match.is_live or match.is_finished):
            raise ConsistencyError('Events can only be filed for live or finished matches')

        event = store.add(build_event(store, match, payload))

    return jsonify(event.to_dict()), 201


@referee_bp.route('/reports', methods=['POST'])
@require_role('REFEREE')
def create_report():
    payload = json_payload()
    require_fields(payload, 'matchId', 'incidentType', 'description')

    with current_store().unit_of_work() as store:
        match = store.require(Match, parse_int(payload['matchId'], 'matchId'), 'Match')
        if not _officiates(match, g.current_user, statuses=('PENDING', 'ACCEPTED')):
            raise AuthorizationError('You can only report on matches you are assigned to.')

        player_id = parse_optional_int(payload.get('playerId'), 'playerId')
        if player_id is not None:
            player = store.require(Player, player_id, 'Player')
            if not match.involves(player.team_id):
                raise ValidationError(f'Player {player_id} does not play for either team in this match')

        report = store.add(
            DisciplinaryReport(
                match_id=match.id,
                referee_id=g.current_user.id,
                player_id=player_id,
                incident_type=str(payload['incidentType']).strip(),
                description=str(payload['description']).strip(),
                severity=parse_choice(payload.get('severity') or 'MEDIUM', 'severity', REPORT_SEVERITIES),
                status='SUBMITTED',
            )
        )

    return jsonify(report.to_dict()), 201


@referee_bp.route('/reports')
@require_role('REFEREE', *REVIEWER_ROLES)
def list_reports():
    query = DisciplinaryReport.query
    if g.current_user.role == 'REFEREE':
        query = query.filter_by(referee_id=g.current_user.id)
    else:
        referee_id = parse_optional_int(request.args.get('refereeId'), 'refereeId')
        if referee_id is not None:
            query = query.filter_by(referee_id=referee_id)

    status = request.args.get('status')
    if status:
        query = query.filter_by(status=parse_choice(status, 'status', REPORT_STATUSES))

    reports = query.order_by(DisciplinaryReport.created_at.desc(), DisciplinaryReport.id.desc()).all()
    return jsonify([report.to_dict() for report in reports])


@referee_bp.route('/reports/<int:report_id>/status', methods=['PUT'])
@require_role(*REVIEWER_ROLES)
def review_report(report_id):
    payload = json_payload()
    require_fields(payload, 'status')
    new_status = parse_choice(payload['status'], 'status', REPORT_STATUSES)
    if new_status == 'SUBMITTED':
        raise ValidationError('Reports cannot be moved back to SUBMITTED')

    with current_store().unit_of_work() as store:
        report = store.require(DisciplinaryReport, report_id, 'Report')
        if report.status in ('APPROVED', 'REJECTED'):
            raise ConsistencyError('The report has already been decided')
        report.review(new_status, g.current_user)

    return jsonify(report.to_dict())
