"""
Integration tests for the auth blueprint
Tests session loading, role checks and /auth/users account management
"""
from models import db, User


class TestSessionAndRoles:
    """Test g.current_user loading and the role decorators"""

    def test_me_requires_login(self, client):
        response = client.get('/auth/me')
        assert response.status_code == 401
        assert 'log in' in response.get_json()['error']

    def test_me_returns_current_user(self, authenticated_referee, referee_user):
        response = authenticated_referee.get('/auth/me')
        assert response.status_code == 200
        assert response.get_json()['email'] == referee_user.email

    def test_unknown_session_user_is_anonymous(self, client):
        with client.session_transaction() as sess:
            sess['user_id'] = 98765
        assert client.get('/auth/me').status_code == 401

    def test_deactivated_user_is_anonymous(self, authenticated_secretariat, secretariat_user):
        secretariat_user.is_active = False
        db.session.commit()

        response = authenticated_secretariat.get('/auth/me')
        assert response.status_code == 401

    def test_wrong_role_is_forbidden(self, authenticated_referee):
        response = authenticated_referee.get('/auth/users')
        assert response.status_code == 403
        assert 'Permission denied' in response.get_json()['error']


class TestUserManagement:
    """Test /auth/users routes (administrators only)"""

    def test_list_users(self, authenticated_admin, referee_user, secretariat_user):
        response = authenticated_admin.get('/auth/users')
        assert response.status_code == 200
        emails = {user['email'] for user in response.get_json()}
        assert {'admin@bifa.local', referee_user.email, secretariat_user.email} <= emails

    def test_list_users_filtered_by_role(self, authenticated_admin, referee_user, secretariat_user):
        response = authenticated_admin.get('/auth/users?role=referee')
        assert [user['email'] for user in response.get_json()] == [referee_user.email]

    def test_create_user(self, authenticated_admin):
        response = authenticated_admin.post('/auth/users', json={
            'email': 'newref@bifa.test',
            'firstName': 'Olivier',
            'lastName': 'Bizimana',
            'role': 'referee',
            'licenseNumber': 'REF-777',
            'phoneNumber': '+257 79 000 000',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['role'] == 'REFEREE'
        assert data['licenseNumber'] == 'REF-777'

        user = User.query.filter_by(email='newref@bifa.test').first()
        assert user is not None
        assert user.is_active is True

    def test_create_user_validates_format(self, authenticated_admin):
        response = authenticated_admin.post('/auth/users', json={
            'email': 'broken',
            'firstName': '',
            'lastName': 'X',
            'role': 'COACH',
        })
        assert response.status_code == 400
        error = response.get_json()['error']
        assert 'Valid email required' in error
        assert 'Invalid role selected' in error

    def test_create_user_rejects_duplicates(self, authenticated_admin, referee_user):
        response = authenticated_admin.post('/auth/users', json={
            'email': referee_user.email,
            'firstName': 'Dup',
            'lastName': 'Licate',
            'role': 'REFEREE',
            'licenseNumber': referee_user.license_number,
        })
        assert response.status_code == 400
        error = response.get_json()['error']
        assert 'Email already registered' in error
        assert 'License number already registered' in error

    def test_create_user_requires_admin(self, authenticated_secretariat):
        response = authenticated_secretariat.post('/auth/users', json={
            'email': 'x@bifa.test', 'firstName': 'X', 'lastName': 'Y', 'role': 'REFEREE',
        })
        assert response.status_code == 403

    def test_get_unknown_user(self, authenticated_admin):
        response = authenticated_admin.get('/auth/users/4040')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'User 4040 not found'

    def test_update_user_role_drops_license(self, authenticated_admin, referee_user):
        response = authenticated_admin.put(f'/auth/users/{referee_user.id}', json={'role': 'FEDERATION_OFFICIAL'})

        assert response.status_code == 200
        data = response.get_json()
        assert data['role'] == 'FEDERATION_OFFICIAL'
        assert data['licenseNumber'] is None

    def test_admin_cannot_demote_self(self, authenticated_admin, admin_user):
        response = authenticated_admin.put(f'/auth/users/{admin_user.id}', json={'role': 'SECRETARIAT'})
        assert response.status_code == 400
        assert db.session.get(User, admin_user.id).role == 'ADMIN'

    def test_deactivate_user(self, authenticated_admin, secretariat_user):
        response = authenticated_admin.delete(f'/auth/users/{secretariat_user.id}')

        assert response.status_code == 200
        assert response.get_json()['user']['isActive'] is False
        assert db.session.get(User, secretariat_user.id) is not None

    def test_admin_cannot_deactivate_self(self, authenticated_admin, admin_user):
        response = authenticated_admin.delete(f'/auth/users/{admin_user.id}')
        assert response.status_code == 400

    def test_admin_cannot_deactivate_self_via_update(self, authenticated_admin, admin_user):
        response = authenticated_admin.put(f'/auth/users/{admin_user.id}', json={'isActive': False})

        assert response.status_code == 400
        assert db.session.get(User, admin_user.id).is_active is True
        assert authenticated_admin.get('/auth/me').status_code == 200

    def test_update_can_deactivate_other_user(self, authenticated_admin, referee_user):
        response = authenticated_admin.put(f'/auth/users/{referee_user.id}', json={'isActive': False})

        assert response.status_code == 200
        assert response.get_json()['isActive'] is False
