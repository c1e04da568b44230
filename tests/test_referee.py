"""
Integration tests for the referee blueprint
Tests assignment responses, live match events and disciplinary reports
"""

import pytest

from models import db, DisciplinaryReport, MatchEvent, Player, RefereeAssignment, MATCH_LIVE


@pytest.fixture
def assignment(match, referee_user):
    assignment = RefereeAssignment(match_id=match.id, referee_id=referee_user.id, role='MAIN_REFEREE')
    db.session.add(assignment)
    db.session.commit()
    return assignment


@pytest.fixture
def accepted_assignment(assignment):
    assignment.set_status('ACCEPTED')
    db.session.commit()
    return assignment


@pytest.fixture
def report(assignment, referee_user, match):
    report = DisciplinaryReport(
        match_id=match.id,
        referee_id=referee_user.id,
        incident_type='Violent conduct',
        description='Elbow off the ball in the 70th minute',
        severity='HIGH',
    )
    db.session.add(report)
    db.session.commit()
    return report


class TestAssignments:
    def test_list_own_assignments(self, authenticated_referee, assignment, match):
        response = authenticated_referee.get('/referee/assignments')
        assert response.status_code == 200
        data = response.get_json()
        assert [item['id'] for item in data] == [assignment.id]
        assert data[0]['match']['id'] == match.id

    def test_list_filters_by_status(self, authenticated_referee, assignment):
        response = authenticated_referee.get('/referee/assignments?status=accepted')
        assert response.get_json() == []

    def test_accept_assignment(self, authenticated_referee, assignment):
        response = authenticated_referee.post(f'/referee/assignments/{assignment.id}/accept')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'ACCEPTED'

    def test_decline_assignment(self, authenticated_referee, assignment):
        response = authenticated_referee.post(f'/referee/assignments/{assignment.id}/decline')
        assert response.status_code == 200
        assert db.session.get(RefereeAssignment, assignment.id).status == 'DECLINED'

    def test_unknown_action(self, authenticated_referee, assignment):
        response = authenticated_referee.post(f'/referee/assignments/{assignment.id}/ignore')
        assert response.status_code == 400

    def test_cannot_answer_for_another_referee(self, login, other_referee, assignment):
        client = login(other_referee)
        response = client.post(f'/referee/assignments/{assignment.id}/accept')
        assert response.status_code == 403

    def test_assignments_require_referee_role(self, authenticated_secretariat):
        assert authenticated_secretariat.get('/referee/assignments').status_code == 403


class TestMatchEvents:
    def test_referee_files_live_event(self, authenticated_referee, accepted_assignment, match, team, player):
        match.status = MATCH_LIVE
        db.session.commit()

        response = authenticated_referee.post(f'/referee/matches/{match.id}/events', json={
            'teamId': team.id, 'playerId': player.id, 'type': 'yellow_card', 'minute': 38,
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['type'] == 'YELLOW_CARD'
        assert data['player']['id'] == player.id
        assert MatchEvent.query.count() == 1

    def test_event_needs_live_or_finished_match(self, authenticated_referee, accepted_assignment, match, team):
        response = authenticated_referee.post(f'/referee/matches/{match.id}/events', json={
            'teamId': team.id, 'type': 'GOAL', 'minute': 5,
        })
        assert response.status_code == 409

    def test_pending_referee_cannot_file_events(self, authenticated_referee, assignment, match, team):
        match.status = MATCH_LIVE
        db.session.commit()

        response = authenticated_referee.post(f'/referee/matches/{match.id}/events', json={
            'teamId': team.id, 'type': 'GOAL', 'minute': 5,
        })
        assert response.status_code == 403

    def test_event_minute_is_bounded(self, authenticated_admin, match, team):
        match.status = MATCH_LIVE
        db.session.commit()

        response = authenticated_admin.post(f'/referee/matches/{match.id}/events', json={
            'teamId': team.id, 'type': 'GOAL', 'minute': 131,
        })
        assert response.status_code == 400
        assert MatchEvent.query.count() == 0


class TestDisciplinaryReports:
    def test_file_report(self, authenticated_referee, assignment, match, player2):
        response = authenticated_referee.post('/referee/reports', json={
            'matchId': match.id,
            'playerId': player2.id,
            'incidentType': 'Dissent',
            'description': 'Repeated protests after the penalty decision',
            'severity': 'low',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'SUBMITTED'
        assert data['severity'] == 'LOW'
        assert data['player']['id'] == player2.id

    def test_report_requires_assignment(self, authenticated_referee, match):
        response = authenticated_referee.post('/referee/reports', json={
            'matchId': match.id, 'incidentType': 'Dissent', 'description': 'n/a',
        })
        assert response.status_code == 403

    def test_report_player_must_be_in_match(self, authenticated_referee, assignment, match, team3):
        stranger = Player(first_name='Out', last_name='Sider', team_id=team3.id)
        db.session.add(stranger)
        db.session.commit()

        response = authenticated_referee.post('/referee/reports', json={
            'matchId': match.id, 'playerId': stranger.id, 'incidentType': 'Dissent', 'description': 'n/a',
        })
        assert response.status_code == 400
        assert DisciplinaryReport.query.count() == 0

    def test_report_requires_fields(self, authenticated_referee, assignment, match):
        response = authenticated_referee.post('/referee/reports', json={'matchId': match.id})
        assert response.status_code == 400

    def test_referee_sees_only_own_reports(self, login, other_referee, report):
        client = login(other_referee)
        assert client.get('/referee/reports').get_json() == []

    def test_official_lists_and_reviews(self, authenticated_official, official_user, report):
        listed = authenticated_official.get('/referee/reports?status=submitted')
        assert [item['id'] for item in listed.get_json()] == [report.id]

        response = authenticated_official.put(f'/referee/reports/{report.id}/status', json={'status': 'approved'})

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'APPROVED'
        assert data['reviewedBy'] == official_user.id
        assert data['reviewedAt'] is not None

    def test_decided_report_is_final(self, authenticated_official, report):
        url = f'/referee/reports/{report.id}/status'
        authenticated_official.put(url, json={'status': 'REJECTED'})
        response = authenticated_official.put(url, json={'status': 'APPROVED'})
        assert response.status_code == 409

    def test_cannot_return_to_submitted(self, authenticated_official, report):
        response = authenticated_official.put(f'/referee/reports/{report.id}/status', json={'status': 'SUBMITTED'})
        assert response.status_code == 400

    def test_referee_cannot_review(self, authenticated_referee, report):
        response = authenticated_referee.put(f'/referee/reports/{report.id}/status', json={'status': 'APPROVED'})
        assert response.status_code == 403
