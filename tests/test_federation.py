"""
Integration tests for the federation blueprint
Tests national squad selection by federation officials
"""

import pytest

from models import db, NationalSquad, Player


@pytest.fixture
def squad(flask_app, official_user, player):
    squad = NationalSquad(name='Intamba mu Rugamba', description='AFCON qualifiers', created_by=official_user.id)
    squad.players = [player]
    db.session.add(squad)
    db.session.commit()
    return squad


class TestSquadSelection:
    def test_create_squad(self, authenticated_official, official_user, player, player2):
        response = authenticated_official.post('/federation/squads', json={
            'name': 'Intamba mu Rugamba',
            'description': 'CHAN preliminary list',
            'playerIds': [player.id, player2.id, player.id],
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['name'] == 'Intamba mu Rugamba'
        assert data['creator'] == {'id': official_user.id, 'name': official_user.full_name}
        assert {p['id'] for p in data['players']} == {player.id, player2.id}
        assert len(data['players']) == 2
        assert all('team' in p for p in data['players'])
        assert NationalSquad.query.count() == 1

    def test_create_requires_name(self, authenticated_official, player):
        response = authenticated_official.post('/federation/squads', json={'playerIds': [player.id]})
        assert response.status_code == 400
        assert NationalSquad.query.count() == 0

    def test_player_ids_must_be_a_list(self, authenticated_official, player):
        response = authenticated_official.post('/federation/squads', json={'name': 'U20', 'playerIds': player.id})
        assert response.status_code == 400

    def test_unknown_player(self, authenticated_official):
        response = authenticated_official.post('/federation/squads', json={'name': 'U20', 'playerIds': [999]})
        assert response.status_code == 404
        assert NationalSquad.query.count() == 0

    def test_inactive_player_is_rejected(self, authenticated_official, player):
        player.is_active = False
        db.session.commit()

        response = authenticated_official.post('/federation/squads', json={'name': 'U20', 'playerIds': [player.id]})

        assert response.status_code == 400
        assert NationalSquad.query.count() == 0

    def test_list_newest_first(self, authenticated_official, official_user, squad):
        newer = NationalSquad(name='U23', created_by=official_user.id)
        db.session.add(newer)
        db.session.commit()

        data = authenticated_official.get('/federation/squads').get_json()

        assert [item['id'] for item in data] == [newer.id, squad.id]

    def test_get_squad(self, authenticated_official, squad, player, team):
        data = authenticated_official.get(f'/federation/squads/{squad.id}').get_json()
        assert data['players'][0]['id'] == player.id
        assert data['players'][0]['team'] == team.to_dict()

    def test_unknown_squad(self, authenticated_official):
        assert authenticated_official.get('/federation/squads/77').status_code == 404

    def test_update_replaces_selection(self, authenticated_official, squad, player, player2):
        response = authenticated_official.put(f'/federation/squads/{squad.id}', json={
            'name': 'Intamba mu Rugamba (final)',
            'playerIds': [player2.id],
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data['name'] == 'Intamba mu Rugamba (final)'
        assert data['description'] == 'AFCON qualifiers'
        assert [p['id'] for p in data['players']] == [player2.id]

    def test_update_keeps_players_when_omitted(self, authenticated_official, squad, player):
        response = authenticated_official.put(f'/federation/squads/{squad.id}', json={'description': None})

        assert response.status_code == 200
        assert [p['id'] for p in response.get_json()['players']] == [player.id]

    def test_failed_update_changes_nothing(self, authenticated_official, squad, player):
        response = authenticated_official.put(f'/federation/squads/{squad.id}', json={
            'name': 'Renamed', 'playerIds': [404],
        })

        assert response.status_code == 404
        db.session.expire_all()
        reloaded = db.session.get(NationalSquad, squad.id)
        assert reloaded.name == 'Intamba mu Rugamba'
        assert [p.id for p in reloaded.players] == [player.id]


class TestAvailablePlayers:
    def test_lists_active_players_by_team_name(self, authenticated_official, team, team2, player, player2):
        benched = Player(first_name='Alain', last_name='Nduwimana', team_id=team.id, is_active=False)
        teammate = Player(first_name='Abdul', last_name='Bizimana', team_id=team.id)
        db.session.add_all([benched, teammate])
        db.session.commit()

        data = authenticated_official.get('/federation/squads/available-players').get_json()

        # Aigle Noir sorts before Vital'O FC
        assert [p['id'] for p in data] == [player2.id, teammate.id, player.id]
        assert data[0]['team']['name'] == team2.name

    def test_skips_inactive_teams(self, authenticated_official, team2, player, player2):
        team2.is_active = False
        db.session.commit()

        data = authenticated_official.get('/federation/squads/available-players').get_json()

        assert [p['id'] for p in data] == [player.id]


class TestSquadAccess:
    def test_secretariat_is_forbidden(self, authenticated_secretariat):
        assert authenticated_secretariat.get('/federation/squads').status_code == 403
        response = authenticated_secretariat.post('/federation/squads', json={'name': 'U17'})
        assert response.status_code == 403

    def test_anonymous_is_rejected(self, client):
        assert client.get('/federation/squads').status_code == 401
        assert client.get('/federation/squads/available-players').status_code == 401

    def test_admin_can_read_but_not_select(self, authenticated_admin, squad):
        assert authenticated_admin.get('/federation/squads').status_code == 200
        response = authenticated_admin.put(f'/federation/squads/{squad.id}', json={'name': 'Admin pick'})
        assert response.status_code == 403
