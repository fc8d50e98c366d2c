import logging

from conftest import login
from extensions import db
from grant_admin import main, set_admin
from models import Pilot


class TestSetAdmin:

    def test_grant_opens_account_administration(self, app, client, pilot_id):
        assert client.get('/api/pilots').status_code == 403

        with app.app_context():
            pilot = set_admin('PILOT@example.com')
            assert pilot.id == pilot_id

        fresh = app.test_client()
        assert login(fresh, 'pilot@example.com').status_code == 200
        assert fresh.get('/api/pilots').status_code == 200

    def test_revoke(self, app, admin_id, admin_client):
        with app.app_context():
            set_admin('admin@example.com', granted=False)
            assert db.session.get(Pilot, admin_id).is_admin is False
        assert admin_client.get('/api/pilots').status_code == 403

    def test_unknown_email(self, app):
        with app.app_context():
            assert set_admin('nobody@example.com') is None

    def test_logged_to_security_channel(self, app, pilot_id, tmp_path):
        with app.app_context():
            set_admin('pilot@example.com')
        for handler in logging.getLogger('security').handlers:
            handler.flush()
        assert 'ADMIN_CAPABILITY_CHANGED' in (tmp_path / 'logs' / 'security.log').read_text(encoding='utf-8')


class TestCommandLine:

    def test_usage_without_email(self, capsys):
        assert main([]) == 2
        assert 'grant_admin.py' in capsys.readouterr().out

    def test_usage_with_two_emails(self):
        assert main(['a@example.com', 'b@example.com', '--revoke']) == 2
