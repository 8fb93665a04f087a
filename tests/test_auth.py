"""
Tests for login, sessions and user administration
"""
from reserve_api.core.permissions import Role
from reserve_api.core.security import create_access_token
from reserve_api.models.audit_log import AuditLog, AuditAction
from reserve_api.models.token import RefreshToken
from reserve_api.models.user import User, UserStatus

PASSWORD = 'correct-horse-battery'


def login(client, email, password=PASSWORD):
    return client.post('/api/auth/login', json={'email': email, 'password': password})


def test_login_success(client, db, staff):
    response = login(client, 'STAFF@army.mil.ph')
    assert response.status_code == 200
    data = response.json()
    assert data['token_type'] == 'bearer'
    assert data['refresh_token']
    assert data['user']['role'] == 'staff'

    [entry] = db.query(AuditLog).filter(AuditLog.action == AuditAction.login).all()
    assert entry.user_id == staff.id


def test_login_invalid_credentials(client, staff):
    response = login(client, staff.email, 'wrong-password')
    assert response.status_code == 401
    assert response.json()['error'] == 'Unauthorized'


def test_pending_user_cannot_login(client, user_factory):
    user = user_factory(Role.reservist, status=UserStatus.pending)
    response = login(client, user.email)
    assert response.status_code == 401
    assert 'pending' in response.json()['message']


def test_login_is_rate_limited(client, staff):
    statuses = [login(client, staff.email, 'wrong-password').status_code for _ in range(11)]
    assert statuses[:10] == [401] * 10
    assert statuses[10] == 429


def test_role_claim_in_token_is_ignored(client, reservist):
    token = create_access_token({'sub': str(reservist.id), 'email': reservist.email, 'role': 'director'})
    response = client.get('/api/audit-logs', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 403


def test_garbage_token(client):
    response = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})
    assert response.status_code == 401


def test_me(client, administrator, auth_headers):
    response = client.get('/api/auth/me', headers=auth_headers(administrator))
    assert response.status_code == 200
    data = response.json()
    assert data['name'] == 'Administrator Tester'
    assert data['role'] == 'administrator'
    assert data['status'] == 'active'


def test_refresh_and_logout(client, db, staff):
    tokens = login(client, staff.email).json()
    refreshed = client.post('/api/auth/refresh', json={'refresh_token': tokens['refresh_token']})
    assert refreshed.status_code == 200
    assert refreshed.json()['access_token']

    headers = {'Authorization': f"Bearer {tokens['access_token']}"}
    assert client.post('/api/auth/logout', headers=headers).status_code == 200
    assert db.query(RefreshToken).filter(RefreshToken.revoked_at.is_(None)).count() == 0
    assert db.query(AuditLog).filter(AuditLog.action == AuditAction.logout).count() == 1

    again = client.post('/api/auth/refresh', json={'refresh_token': tokens['refresh_token']})
    assert again.status_code == 401


def test_access_token_cannot_refresh(client, staff):
    tokens = login(client, staff.email).json()
    response = client.post('/api/auth/refresh', json={'refresh_token': tokens['access_token']})
    assert response.status_code == 401


def test_request_id_is_echoed_and_responses_are_not_cached(client, staff, auth_headers):
    response = client.get('/api/auth/permissions', headers={**auth_headers(staff), 'X-Request-Id': 'trace-42'})
    assert response.headers['X-Request-Id'] == 'trace-42'
    assert response.headers['Cache-Control'] == 'no-store'

    assert client.get('/api/auth/me', headers=auth_headers(staff)).headers['X-Request-Id']


class TestAdmin:
    """Test /api/admin routes"""

    def test_director_creates_administrator(self, client, db, director, auth_headers):
        response = client.post('/api/admin/users', headers=auth_headers(director), json={
            'firstName': 'Ana', 'lastName': 'Reyes', 'email': 'ana.reyes@army.mil.ph',
            'password': 'a-long-password', 'role': 'admin',
        })
        assert response.status_code == 201
        assert response.json()['role'] == 'administrator'
        assert db.query(User).filter(User.email == 'ana.reyes@army.mil.ph').one().role == Role.administrator

    def test_administrator_cannot_create_accounts(self, client, administrator, auth_headers):
        response = client.post('/api/admin/users', headers=auth_headers(administrator), json={
            'firstName': 'Ana', 'lastName': 'Reyes', 'email': 'ana.reyes@army.mil.ph',
            'password': 'a-long-password', 'role': 'staff',
        })
        assert response.status_code == 403

    def test_director_role_cannot_be_created(self, client, director, auth_headers):
        response = client.post('/api/admin/users', headers=auth_headers(director), json={
            'firstName': 'Ana', 'lastName': 'Reyes', 'email': 'ana.reyes@army.mil.ph',
            'password': 'a-long-password', 'role': 'director',
        })
        assert response.status_code == 400

    def test_deactivation_is_audited(self, client, db, director, staff, auth_headers):
        response = client.put(
            f'/api/admin/users/{staff.id}', headers=auth_headers(director), json={'status': 'deactivated'},
        )
        assert response.status_code == 200
        assert response.json()['status'] == 'deactivated'
        [entry] = db.query(AuditLog).filter(AuditLog.action == AuditAction.update).all()
        assert entry.resource_id == str(staff.id)
        assert 'status=deactivated' in entry.details

    def test_list_users(self, client, staff, reservist, auth_headers):
        response = client.get('/api/admin/users', headers=auth_headers(staff))
        assert response.status_code == 200
        assert response.json()['total'] == 2

    def test_dashboard_stats(self, client, administrator, pending_request, auth_headers):
        response = client.get('/api/admin/stats', headers=auth_headers(administrator))
        assert response.status_code == 200
        assert response.json() == {'pendingRequests': 1, 'personnel': 0, 'auditEvents': 0}

    def test_health(self, client):
        response = client.get('/api/admin/health')
        assert response.json() == {'status': 'ok', 'database': True, 'redis': True}
