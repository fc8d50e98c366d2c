"""
Moduł ewidencji dronów (Drones) z pełnym audytem operacyjnym.

Odpowiada za rejestr statków powietrznych pilota: listę, rejestrację nowych
jednostek, edycję danych rejestracyjnych oraz usuwanie z kontrolą zależności.

**Izolacja danych**

Każde zapytanie zawiera ``pilot_id`` zalogowanego pilota. Dron innego pilota
jest nieodróżnialny od nieistniejącego (404), co zapobiega wyciekowi informacji
o istnieniu zasobów.

Przykład logu dodania drona (JSON)::
{
    "timestamp": "2026-10-19T20:15:00.123Z",
    "level": "INFO",
    "event": "DRONE_ADD",
    "user": 7,
    "drone_id": 15,
    "src_ip": "10.0.0.8",
    "signature": "a7b8c9..."
}
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import ConflictError, NotFoundError, StorageError
from extensions import db
from identity import current_identity
from models import Drone
from validators import DRONE_FIELDS, clean_payload, validate_period

drones_bp = Blueprint('drones', __name__)

app_logger = logging.getLogger("application")
error_logger = logging.getLogger("error")

DRONE_NOT_FOUND = '機体が見つかりません。'
DUPLICATE_DRONE = '同じ製造番号または登録記号の機体が既に登録されています。'


def get_owned_drone(drone_id, pilot_id, lock=False):
    """
        Pobiera drona należącego do pilota.

        Args:
            drone_id (int): ID drona.
            pilot_id (int): ID działającego pilota (predykat własności).
            lock (bool): Blokada wiersza (``SELECT ... FOR UPDATE``) na czas transakcji.

        Returns:
            Drone | None: Rekord lub ``None`` (brak lub cudzy).
    """
    stmt = db.select(Drone).filter_by(id=drone_id, pilot_id=pilot_id)
    if lock:
        stmt = stmt.with_for_update()
    return db.session.execute(stmt).scalar_one_or_none()


def _check_unique(pilot_id, serial_number, registration_symbol, exclude_id=None):
    """Numer seryjny i symbol rejestracyjny są unikalne w obrębie floty jednego pilota."""
    for column, value in ((Drone.serial_number, serial_number),
                          (Drone.registration_symbol, registration_symbol)):
        if not value:
            continue
        stmt = db.select(Drone.id).where(Drone.pilot_id == pilot_id, column == value)
        if exclude_id is not None:
            stmt = stmt.where(Drone.id != exclude_id)
        if db.session.execute(stmt).first():
            raise ConflictError(DUPLICATE_DRONE)


@drones_bp.route('/drones', methods=['GET'])
@login_required
def index():
    """Lista dronów zalogowanego pilota."""
    identity = current_identity()
    drones = db.session.execute(
        db.select(Drone).filter_by(pilot_id=identity.pilot_id).order_by(Drone.id)
    ).scalars().all()
    return jsonify({'data': [d.to_dict() for d in drones]})


@drones_bp.route('/drones/<int:drone_id>', methods=['GET'])
@login_required
def detail(drone_id):
    identity = current_identity()
    drone = get_owned_drone(drone_id, identity.pilot_id)
    if not drone:
        raise NotFoundError(DRONE_NOT_FOUND)
    return jsonify({'data': drone.to_dict()})


@drones_bp.route('/drones', methods=['POST'])
@login_required
def add():
    """
    Rejestracja nowego drona.

    **Przepływ Logiki**

    1. Filtrowanie danych przez białą listę pól (``pilot_id`` z żądania jest ignorowany).
    2. Walidacja okresu ważności i unikalności w obrębie floty pilota.
    3. Zapis z ``pilot_id`` pobranym z sesji.
    """
    identity = current_identity()
    payload = clean_payload(request.get_json(silent=True) or {}, DRONE_FIELDS)
    validate_period(payload.get('valid_period_start'), payload.get('valid_period_end'))
    _check_unique(identity.pilot_id, payload.get('serial_number'), payload.get('registration_symbol'))

    drone = Drone(pilot_id=identity.pilot_id, **payload)
    try:
        db.session.add(drone)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(DUPLICATE_DRONE)
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"DRONE_CREATION_FAILED: {str(e)}", exc_info=True, extra={'user': identity.pilot_id})
        raise StorageError('機体の登録に失敗しました。')

    app_logger.info("DRONE_CREATED", extra={
        'event': 'DRONE_ADD',
        'user': identity.pilot_id,
        'drone_id': drone.id,
        'src_ip': request.remote_addr
    })
    return jsonify({'data': drone.to_dict()}), 201


@drones_bp.route('/drones/<int:drone_id>', methods=['PUT'])
@login_required
def edit(drone_id):
    """
    Aktualizacja danych drona.

    Przesłane pola nadpisują bieżące wartości; właściciel drona nie może zostać zmieniony.
    """
    identity = current_identity()
    payload = clean_payload(request.get_json(silent=True) or {}, DRONE_FIELDS, partial=True)

    drone = get_owned_drone(drone_id, identity.pilot_id)
    if not drone:
        raise NotFoundError(DRONE_NOT_FOUND)

    merged = {**drone.to_dict(), **payload}
    validate_period(payload.get('valid_period_start', drone.valid_period_start),
                    payload.get('valid_period_end', drone.valid_period_end))
    _check_unique(identity.pilot_id, merged.get('serial_number'), merged.get('registration_symbol'),
                  exclude_id=drone_id)

    for field, value in payload.items():
        setattr(drone, field, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(DUPLICATE_DRONE)
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"DRONE_UPDATE_FAILED: {drone_id}, error: {str(e)}", exc_info=True)
        raise StorageError('機体の更新に失敗しました。')

    app_logger.warning("DRONE_MODIFIED", extra={
        'event': 'DRONE_UPDATE',
        'user': identity.pilot_id,
        'drone_id': drone_id,
        'src_ip': request.remote_addr,
        'changes': sorted(payload)
    })
    return jsonify({'data': drone.to_dict()})


@drones_bp.route('/drones/<int:drone_id>', methods=['DELETE'])
@login_required
def delete(drone_id):
    """
    Usunięcie drona z kontrolą zależności.

    Dron, do którego odwołuje się jakikolwiek wpis dziennika lotów lub obsługi,
    nie może zostać usunięty (409) - historia lotów musi zachować swój statek powietrzny.

    **Transakcyjność**

    Wiersz drona jest blokowany (``FOR UPDATE``), zanim zostaną policzone zależności,
    więc równoległy zapis nie wstawi wpisu między sprawdzeniem a ``DELETE``.
    Dowolny błąd wycofuje całą transakcję.
    """
    identity = current_identity()
    try:
        drone = get_owned_drone(drone_id, identity.pilot_id, lock=True)
        if not drone:
            raise NotFoundError(DRONE_NOT_FOUND)

        deps = db.session.execute(text("""
                                       SELECT (SELECT COUNT(*) FROM flight_logs WHERE drone_id = :did)         AS logs,
                                              (SELECT COUNT(*) FROM maintenance_records WHERE drone_id = :did) AS maintenance
                                       """), {'did': drone_id}).one()
        if deps.logs or deps.maintenance:
            raise ConflictError('この機体を使用した飛行記録または整備記録が存在するため削除できません。')

        db.session.delete(drone)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"DRONE_DELETE_FAILED: {drone_id}, error: {str(e)}", exc_info=True)
        raise StorageError('機体の削除に失敗しました。')

    app_logger.warning("DRONE_DELETED", extra={
        'event': 'DRONE_DELETE',
        'user': identity.pilot_id,
        'drone_id': drone_id,
        'src_ip': request.remote_addr
    })
    return '', 204
