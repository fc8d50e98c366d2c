from datetime import date

import pytest

from conftest import create_flight
from extensions import db
from models import FlightLog


def flight_payload(drone_id, **overrides):
    payload = {
        'drone_id': drone_id,
        'fly_date': '2024-05-01',
        'start_time': '09:00',
        'end_time': '10:30',
        'start_location': '河川敷',
        'end_location': '河川敷',
        'purpose': '訓練',
        'flight_form': '目視内飛行',
    }
    payload.update(overrides)
    return payload


class TestCreateFlightLog:

    def test_minutes_computed_by_server(self, client, pilot_id, drone_id):
        response = client.post('/api/flight_logs', json=flight_payload(
            drone_id, actual_time_minutes=5, pilot_id=12345))
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['actual_time_minutes'] == 90
        assert data['pilot_id'] == pilot_id
        assert data['start_time'] == '09:00'

    def test_over_midnight(self, client, drone_id):
        response = client.post('/api/flight_logs', json=flight_payload(
            drone_id, start_time='23:30', end_time='00:15'))
        assert response.status_code == 201
        assert response.get_json()['data']['actual_time_minutes'] == 45

    @pytest.mark.parametrize('start,end,status', [
        ('00:00', '12:00', 201),
        ('00:00', '12:01', 400),
        ('10:00', '10:01', 201),
        ('10:00', '10:00', 400),
    ])
    def test_duration_boundaries(self, client, drone_id, start, end, status):
        response = client.post('/api/flight_logs', json=flight_payload(drone_id, start_time=start, end_time=end))
        assert response.status_code == status

    def test_purpose_vocabulary(self, client, drone_id):
        assert client.post('/api/flight_logs', json=flight_payload(drone_id, purpose='登山')).status_code == 400
        assert client.post('/api/flight_logs', json=flight_payload(drone_id, purpose='業務')).status_code == 201

    def test_flight_form_vocabulary(self, client, drone_id):
        response = client.post('/api/flight_logs', json=flight_payload(drone_id, flight_form='自由飛行'))
        assert response.status_code == 400
        assert response.get_json()['field'] == 'flight_form'

    def test_foreign_drone_is_forbidden(self, app, client, other_drone_id):
        response = client.post('/api/flight_logs', json=flight_payload(other_drone_id))
        assert response.status_code == 403
        with app.app_context():
            assert FlightLog.query.count() == 0

    def test_invalid_record_writes_nothing(self, app, client, drone_id):
        client.post('/api/flight_logs', json=flight_payload(drone_id, end_time='21:01'))
        with app.app_context():
            assert FlightLog.query.count() == 0


class TestListFlightLogs:

    def test_ordering_and_scope(self, app, client, pilot_id, drone_id, other_pilot_id, other_drone_id):
        older = create_flight(app, pilot_id, drone_id, date(2024, 4, 1))
        newer = create_flight(app, pilot_id, drone_id, date(2024, 5, 1))
        same_day = create_flight(app, pilot_id, drone_id, date(2024, 5, 1))
        create_flight(app, other_pilot_id, other_drone_id, date(2024, 5, 2))

        ids = [log['id'] for log in client.get('/api/flight_logs').get_json()['data']]
        assert ids == [same_day, newer, older]

    def test_filters(self, app, client, pilot_id, drone_id):
        create_flight(app, pilot_id, drone_id, date(2024, 4, 1), purpose='業務')
        may = create_flight(app, pilot_id, drone_id, date(2024, 5, 1), purpose='訓練')

        data = client.get('/api/flight_logs?start=2024-05-01&end=2024-05-31').get_json()['data']
        assert [log['id'] for log in data] == [may]

        data = client.get('/api/flight_logs', query_string={'purpose': '訓練'}).get_json()['data']
        assert [log['id'] for log in data] == [may]

        data = client.get(f'/api/flight_logs?drone_id={drone_id}').get_json()['data']
        assert len(data) == 2

    def test_invalid_filter_date(self, client):
        assert client.get('/api/flight_logs?start=05/01/2024').status_code == 400


class TestEditFlightLog:

    def test_minutes_recomputed(self, app, client, pilot_id, drone_id):
        flight_id = create_flight(app, pilot_id, drone_id, date(2024, 5, 1), start='09:00', end='09:30')

        response = client.put(f'/api/flight_logs/{flight_id}', json={'end_time': '11:00'})
        assert response.status_code == 200
        assert response.get_json()['data']['actual_time_minutes'] == 120

    def test_update_revalidated(self, app, client, pilot_id, drone_id):
        flight_id = create_flight(app, pilot_id, drone_id, date(2024, 5, 1))

        assert client.put(f'/api/flight_logs/{flight_id}', json={'purpose': '登山'}).status_code == 400
        assert client.put(f'/api/flight_logs/{flight_id}', json={'end_time': '09:00'}).status_code == 400
        with app.app_context():
            assert db.session.get(FlightLog, flight_id).end_time.strftime('%H:%M') == '09:30'

    def test_reassign_to_foreign_drone(self, app, client, pilot_id, drone_id, other_drone_id):
        flight_id = create_flight(app, pilot_id, drone_id, date(2024, 5, 1))
        response = client.put(f'/api/flight_logs/{flight_id}', json={'drone_id': other_drone_id})
        assert response.status_code == 403


class TestFlightLogOwnership:

    def test_foreign_log_is_not_found(self, app, client, other_pilot_id, other_drone_id):
        flight_id = create_flight(app, other_pilot_id, other_drone_id, date(2024, 5, 1))

        assert client.get(f'/api/flight_logs/{flight_id}').status_code == 404
        assert client.put(f'/api/flight_logs/{flight_id}', json={'place': 'x'}).status_code == 404
        assert client.delete(f'/api/flight_logs/{flight_id}').status_code == 404

        with app.app_context():
            assert db.session.get(FlightLog, flight_id) is not None

    def test_delete_own(self, app, client, pilot_id, drone_id):
        flight_id = create_flight(app, pilot_id, drone_id, date(2024, 5, 1))
        assert client.delete(f'/api/flight_logs/{flight_id}').status_code == 204
        assert client.get(f'/api/flight_logs/{flight_id}').status_code == 404
