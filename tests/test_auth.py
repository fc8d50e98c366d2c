from conftest import ADMIN_EMAIL, PASSWORD, login
from extensions import db
from models import Pilot


class TestLogin:

    def test_success_returns_identity(self, anon_client, pilot_id):
        response = login(anon_client, 'pilot@example.com')
        assert response.status_code == 200
        assert response.get_json()['user'] == {'id': pilot_id, 'name': '山田太郎'}

        me = anon_client.get('/api/current-user').get_json()
        assert me['user'] == {'id': pilot_id, 'name': '山田太郎'}

    def test_wrong_password_and_unknown_email_look_the_same(self, anon_client, pilot_id):
        wrong_password = login(anon_client, 'pilot@example.com', 'not-the-password')
        unknown_email = login(anon_client, 'nobody@example.com', PASSWORD)

        assert wrong_password.status_code == unknown_email.status_code == 401
        assert wrong_password.get_json() == unknown_email.get_json()

    def test_missing_fields(self, anon_client):
        response = anon_client.post('/api/login', json={'email': 'pilot@example.com'})
        assert response.status_code == 400

    def test_failed_login_keeps_no_session(self, anon_client, pilot_id):
        login(anon_client, 'pilot@example.com', 'bad-password')
        assert anon_client.get('/api/current-user').get_json() == {'user': None}


class TestSession:

    def test_current_user_without_session(self, anon_client):
        response = anon_client.get('/api/current-user')
        assert response.status_code == 200
        assert response.get_json() == {'user': None}

    def test_logout_is_idempotent(self, client, anon_client):
        assert client.post('/api/logout').status_code == 200
        assert client.post('/api/logout').status_code == 200
        assert anon_client.post('/api/logout').status_code == 200

    def test_logout_ends_session(self, client):
        client.post('/api/logout')
        assert client.get('/api/current-user').get_json() == {'user': None}
        assert client.get('/api/drones').status_code == 401

    def test_protected_route_requires_session(self, anon_client):
        for url in ('/api/drones', '/api/flight_logs', '/api/maintenance_records', '/api/dashboard-stats',
                    '/api/flight_logs/pdf?start=2024-01-01&end=2024-01-31'):
            assert anon_client.get(url).status_code == 401

    def test_csrf_token(self, anon_client):
        assert anon_client.get('/api/csrf-token').get_json()['csrf_token']


class TestRegister:

    payload = {'name': '新人', 'email': 'new@example.com', 'password': 'longenough'}

    def test_register_then_login(self, app, anon_client):
        response = anon_client.post('/api/register', json=self.payload)
        assert response.status_code == 201

        with app.app_context():
            pilot = db.session.get(Pilot, response.get_json()['id'])
            assert pilot.password != 'longenough'
            assert pilot.has_license is False
            assert pilot.initial_flight_minutes == 0

        assert login(anon_client, 'new@example.com', 'longenough').status_code == 200

    def test_duplicate_email(self, app, anon_client, pilot_id):
        response = anon_client.post('/api/register', json={**self.payload, 'email': 'pilot@example.com'})
        assert response.status_code == 409
        with app.app_context():
            assert Pilot.query.filter_by(email='pilot@example.com').count() == 1

    def test_short_password(self, anon_client):
        response = anon_client.post('/api/register', json={**self.payload, 'password': 'short'})
        assert response.status_code == 400
        assert response.get_json()['field'] == 'password'

    def test_closed_registration(self, app, anon_client):
        app.config['REGISTRATION_OPEN'] = False
        assert anon_client.post('/api/register', json=self.payload).status_code == 403

    def test_email_case_variant_is_duplicate(self, app, anon_client, admin_id):
        response = anon_client.post('/api/register', json={**self.payload, 'email': ADMIN_EMAIL.upper()})
        assert response.status_code == 409
        with app.app_context():
            assert Pilot.query.count() == 1

    def test_registration_cannot_grant_admin(self, app, anon_client, pilot_id, admin_id):
        response = anon_client.post('/api/register', json={
            **self.payload, 'email': ' Boss@Example.COM ', 'is_admin': True})
        assert response.status_code == 201

        with app.app_context():
            pilot = db.session.get(Pilot, response.get_json()['id'])
            assert pilot.email == 'boss@example.com'
            assert pilot.is_admin is False

        assert login(anon_client, 'BOSS@example.com', 'longenough').status_code == 200
        assert anon_client.get('/api/pilots').status_code == 403
        assert anon_client.delete(f'/api/pilots/{pilot_id}').status_code == 403
