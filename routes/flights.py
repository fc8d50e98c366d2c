"""
Moduł obsługi dziennika lotów (Flight Logs) z pełnym audytem operacyjnym.

Zarządza wpisami dziennika: wyświetlaniem listy z filtrowaniem, dodawaniem,
edycją i usuwaniem. Czas lotu (``actual_time_minutes``) jest zawsze wyliczany
po stronie serwera z godzin startu i lądowania - wartość przesłana przez klienta jest ignorowana.

**System Logowania Audytowego (Aviation Compliance)**

Każda operacja na dzienniku lotów jest logowana w formacie strukturyzowanym JSON.

Przykład logu dodania lotu (JSON)::
{
    "timestamp": "2026-10-19T19:45:00.123Z",
    "level": "INFO",
    "event": "FLIGHT_RECORD_ADD",
    "user": 7,
    "flight_id": 1250,
    "drone_id": 15,
    "src_ip": "10.0.0.5",
    "signature": "f29a88..."
}
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from errors import ForbiddenError, NotFoundError, StorageError
from extensions import db
from identity import current_identity
from models import FlightLog
from routes.drones import get_owned_drone
from validators import FLIGHT_LOG_FIELDS, clean_payload, parse_date, validate_flight_record

flights_bp = Blueprint('flights', __name__)
app_logger = logging.getLogger("application")
security_logger = logging.getLogger("security")
error_logger = logging.getLogger("error")

FLIGHT_NOT_FOUND = '飛行記録が見つかりません。'


def get_filter_clauses(args, pilot_id):
    """
        Generator warunków zapytania listy wpisów.

        Pierwszym warunkiem jest zawsze własność (``pilot_id``) - filtry z żądania
        mogą jedynie zawęzić wynik w obrębie danych zalogowanego pilota.

        Args:
            args (MultiDict): Obiekt request.args (``drone_id``, ``start``, ``end``, ``purpose``).
            pilot_id (int): ID działającego pilota.

        Returns:
            list: Lista wyrażeń SQLAlchemy do przekazania w ``where``.
    """
    clauses = [FlightLog.pilot_id == pilot_id]

    drone_id = args.get('drone_id', type=int)
    if drone_id:
        clauses.append(FlightLog.drone_id == drone_id)

    start = parse_date(args.get('start'), 'start')
    if start:
        clauses.append(FlightLog.fly_date >= start)

    end = parse_date(args.get('end'), 'end')
    if end:
        clauses.append(FlightLog.fly_date <= end)

    purpose = args.get('purpose')
    if purpose and purpose.strip():
        clauses.append(FlightLog.purpose == purpose.strip())

    return clauses


def get_owned_flight(flight_id, pilot_id):
    stmt = db.select(FlightLog).filter_by(id=flight_id, pilot_id=pilot_id)
    return db.session.execute(stmt).scalar_one_or_none()


def _require_drone(drone_id, identity):
    """Wpis może wskazywać wyłącznie drona zalogowanego pilota."""
    if not get_owned_drone(drone_id, identity.pilot_id):
        security_logger.warning("FOREIGN_DRONE_USE_ATTEMPT", extra={
            'event': 'ACCESS_VIOLATION',
            'user': identity.pilot_id,
            'drone_id': drone_id,
            'src_ip': request.remote_addr
        })
        raise ForbiddenError('指定された機体を使用する権限がありません。')


@flights_bp.route('/flight_logs', methods=['GET'])
@login_required
def index():
    """
        Lista wpisów dziennika zalogowanego pilota.

        Sortowanie: od najnowszej daty lotu, przy równych datach od najnowszego wpisu.
    """
    identity = current_identity()
    clauses = get_filter_clauses(request.args, identity.pilot_id)
    logs = db.session.execute(
        db.select(FlightLog).where(*clauses).order_by(FlightLog.fly_date.desc(), FlightLog.id.desc())
    ).scalars().all()
    return jsonify({'data': [log.to_dict() for log in logs]})


@flights_bp.route('/flight_logs/<int:flight_id>', methods=['GET'])
@login_required
def detail(flight_id):
    identity = current_identity()
    log = get_owned_flight(flight_id, identity.pilot_id)
    if not log:
        raise NotFoundError(FLIGHT_NOT_FOUND)
    return jsonify({'data': log.to_dict()})


@flights_bp.route('/flight_logs', methods=['POST'])
@login_required
def add_flight():
    """
        Obsługuje transakcję zapisu nowej operacji lotniczej.

        **Walidacja** (przed jakimkolwiek zapisem)

            - Czas lotu w przedziale (0, 720] minut, z obsługą lotu przez północ.
            - Cel i forma lotu ze słowników.
            - Dron musi należeć do zalogowanego pilota (inaczej 403).

        ``pilot_id`` wpisu pochodzi z sesji, nie z żądania.
    """
    identity = current_identity()
    payload = clean_payload(request.get_json(silent=True) or {}, FLIGHT_LOG_FIELDS)
    minutes = validate_flight_record(payload)
    _require_drone(payload['drone_id'], identity)

    log = FlightLog(pilot_id=identity.pilot_id, actual_time_minutes=minutes, **payload)
    try:
        db.session.add(log)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"FLIGHT_CREATION_FAILED: {str(e)}", exc_info=True, extra={'user': identity.pilot_id})
        raise StorageError('飛行記録の登録に失敗しました。')

    app_logger.info("FLIGHT_CREATED", extra={
        'event': 'FLIGHT_RECORD_ADD',
        'user': identity.pilot_id,
        'flight_id': log.id,
        'drone_id': log.drone_id,
        'src_ip': request.remote_addr
    })
    return jsonify({'data': log.to_dict()}), 201


@flights_bp.route('/flight_logs/<int:flight_id>', methods=['PUT'])
@login_required
def edit_flight(flight_id):
    """
        Korekta istniejącego wpisu dziennika.

        Przesłane pola są scalane z bieżącym stanem wpisu, a następnie cały wpis
        przechodzi te same reguły co przy tworzeniu (czas lotu jest przeliczany na nowo).
        Cudzy lub nieistniejący wpis → 404.
    """
    identity = current_identity()
    payload = clean_payload(request.get_json(silent=True) or {}, FLIGHT_LOG_FIELDS, partial=True)

    log = get_owned_flight(flight_id, identity.pilot_id)
    if not log:
        raise NotFoundError(FLIGHT_NOT_FOUND)

    record = {field: getattr(log, field) for field in FLIGHT_LOG_FIELDS}
    record.update(payload)
    minutes = validate_flight_record(record)
    _require_drone(record['drone_id'], identity)

    for field, value in payload.items():
        setattr(log, field, value)
    log.actual_time_minutes = minutes

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"FLIGHT_UPDATE_FAILED: {flight_id}, error: {str(e)}", exc_info=True)
        raise StorageError('飛行記録の更新に失敗しました。')

    app_logger.warning("FLIGHT_MODIFIED", extra={
        'event': 'FLIGHT_RECORD_UPDATE',
        'user': identity.pilot_id,
        'flight_id': flight_id,
        'src_ip': request.remote_addr,
        'changes': sorted(payload)
    })
    return jsonify({'data': log.to_dict()})


@flights_bp.route('/flight_logs/<int:flight_id>', methods=['DELETE'])
@login_required
def delete_flight(flight_id):
    """Usunięcie wpisu dziennika (tylko własnego)."""
    identity = current_identity()
    log = get_owned_flight(flight_id, identity.pilot_id)
    if not log:
        raise NotFoundError(FLIGHT_NOT_FOUND)

    try:
        db.session.delete(log)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"FLIGHT_DELETE_FAILED: {flight_id}, error: {str(e)}", exc_info=True)
        raise StorageError('飛行記録の削除に失敗しました。')

    app_logger.warning("FLIGHT_DELETED", extra={
        'event': 'FLIGHT_RECORD_DELETE',
        'user': identity.pilot_id,
        'flight_id': flight_id,
        'src_ip': request.remote_addr
    })
    return '', 204
