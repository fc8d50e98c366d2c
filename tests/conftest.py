import datetime
import os

import pytest
import reportlab
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import Drone, FlightLog, MaintenanceRecord, Pilot
from pdf_report import find_cjk_font

PASSWORD = 'password123'
ADMIN_EMAIL = 'admin@example.com'

# Japońska czcionka systemowa, a gdy jej brak - TrueType dołączony do reportlab (osadzanie działa tak samo)
REPORT_FONT = find_cjk_font() or os.path.join(os.path.dirname(reportlab.__file__), 'fonts', 'Vera.ttf')


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

def make_app(tmp_path, **overrides):
    config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'SECRET_KEY': 'test-secret',
        'WTF_CSRF_ENABLED': False,
        'RATELIMIT_ENABLED': False,
        'LOG_DIR': str(tmp_path / 'logs'),
        'LOG_SECRET_KEY': 'log-secret',
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'REPORT_FONT_PATH': REPORT_FONT,
    }
    config.update(overrides)
    return create_app(config)


def dispose_app(app):
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def app(tmp_path):
    app = make_app(tmp_path)
    yield app
    dispose_app(app)


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------

def create_pilot(app, email, name='操縦者', initial_flight_minutes=0, is_admin=False):
    with app.app_context():
        pilot = Pilot(name=name, email=email, password=generate_password_hash(PASSWORD),
                      initial_flight_minutes=initial_flight_minutes, is_admin=is_admin)
        db.session.add(pilot)
        db.session.commit()
        return pilot.id


def create_drone(app, pilot_id, model='Mavic 3', **fields):
    with app.app_context():
        drone = Drone(pilot_id=pilot_id, model=model, **fields)
        db.session.add(drone)
        db.session.commit()
        return drone.id


def create_flight(app, pilot_id, drone_id, fly_date, start='09:00', end='09:30', **fields):
    def to_time(value):
        if value is None:
            return None
        hour, minute = value.split(':')
        return datetime.time(int(hour), int(minute))

    with app.app_context():
        log = FlightLog(pilot_id=pilot_id, drone_id=drone_id, fly_date=fly_date,
                        start_time=to_time(start), end_time=to_time(end),
                        actual_time_minutes=fields.pop('actual_time_minutes', 30), **fields)
        db.session.add(log)
        db.session.commit()
        return log.id


def create_maintenance(app, drone_id, **fields):
    with app.app_context():
        record = MaintenanceRecord(drone_id=drone_id, **fields)
        db.session.add(record)
        db.session.commit()
        return record.id


def login(client, email, password=PASSWORD):
    return client.post('/api/login', json={'email': email, 'password': password})


# ---------------------------------------------------------------------------
# Pilots
# ---------------------------------------------------------------------------

@pytest.fixture
def pilot_id(app):
    return create_pilot(app, 'pilot@example.com', name='山田太郎', initial_flight_minutes=480)


@pytest.fixture
def other_pilot_id(app):
    return create_pilot(app, 'other@example.com', name='佐藤花子')


@pytest.fixture
def admin_id(app):
    return create_pilot(app, ADMIN_EMAIL, name='管理者', is_admin=True)


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

@pytest.fixture
def anon_client(app):
    return app.test_client()


@pytest.fixture
def client(app, pilot_id):
    client = app.test_client()
    assert login(client, 'pilot@example.com').status_code == 200
    return client


@pytest.fixture
def other_client(app, other_pilot_id):
    client = app.test_client()
    assert login(client, 'other@example.com').status_code == 200
    return client


@pytest.fixture
def admin_client(app, admin_id):
    client = app.test_client()
    assert login(client, ADMIN_EMAIL).status_code == 200
    return client


# ---------------------------------------------------------------------------
# Drones
# ---------------------------------------------------------------------------

@pytest.fixture
def drone_id(app, pilot_id):
    return create_drone(app, pilot_id, manufacturer='DJI', serial_number='SN-001',
                        registration_symbol='JU0000000001', nickname='一号機')


@pytest.fixture
def other_drone_id(app, other_pilot_id):
    return create_drone(app, other_pilot_id, manufacturer='DJI', serial_number='SN-900', nickname='他人機')
