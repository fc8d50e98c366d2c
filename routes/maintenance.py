"""
Moduł obsługi technicznej dronów (Maintenance) z nadzorem technicznym.

Obsługuje wpisy przeglądów i napraw dronów pilota oraz dokumentację
(zdjęcia, protokoły PDF) dołączaną do wpisu.

**Izolacja danych**

Wpis obsługi nie ma własnego ``pilot_id`` - własność wynika z drona.
Każde zapytanie łączy ``maintenance_records`` z ``drones`` i filtruje po ``drones.pilot_id``.

Przykład logu przesłania załącznika (JSON)::
{
    "timestamp": "2026-10-19T20:15:30.987Z",
    "level": "INFO",
    "event": "FILE_UPLOAD",
    "user": 7,
    "record_id": 5,
    "stored_name": "maintenance_5_3f2a....pdf",
    "src_ip": "10.0.1.20",
    "signature": "b7a2d3..."
}
"""

import logging
import os
import uuid

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from errors import ForbiddenError, NotFoundError, StorageError, ValidationError
from extensions import db
from identity import current_identity
from models import Drone, MaintenanceRecord
from routes.drones import get_owned_drone
from validators import MAINTENANCE_FIELDS, clean_payload

maintenance_bp = Blueprint('maintenance', __name__)
app_logger = logging.getLogger("application")
security_logger = logging.getLogger("security")
error_logger = logging.getLogger("error")

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'pdf'}
RECORD_NOT_FOUND = '整備記録が見つかりません。'


def allowed_file(filename):
    """
        Walidator rozszerzenia pliku załącznika.

        Sprawdza, czy przesyłany plik ma bezpieczne rozszerzenie (``ALLOWED_EXTENSIONS``).
        Bez tej weryfikacji można by przesłać skrypt wykonywalny zamiast zdjęcia.

        Args:
            filename (str): Oryginalna nazwa przesyłanego pliku.

        Returns:
            bool: ``True`` jeśli rozszerzenie jest na białej liście.
    """
    return bool(filename) and '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def get_owned_record(record_id, pilot_id):
    """Wpis obsługi dostępny tylko przez łańcuch własności drona."""
    stmt = (db.select(MaintenanceRecord)
            .join(Drone, Drone.id == MaintenanceRecord.drone_id)
            .where(MaintenanceRecord.id == record_id, Drone.pilot_id == pilot_id))
    return db.session.execute(stmt).scalar_one_or_none()


def _require_drone(drone_id, identity):
    if not get_owned_drone(drone_id, identity.pilot_id):
        security_logger.warning("FOREIGN_DRONE_USE_ATTEMPT", extra={
            'event': 'ACCESS_VIOLATION',
            'user': identity.pilot_id,
            'drone_id': drone_id,
            'src_ip': request.remote_addr
        })
        raise ForbiddenError('指定された機体を使用する権限がありません。')


@maintenance_bp.route('/maintenance_records', methods=['GET'])
@login_required
def index():
    """Lista wpisów obsługi dla dronów pilota (opcjonalny filtr ``drone_id``)."""
    identity = current_identity()
    stmt = (db.select(MaintenanceRecord)
            .join(Drone, Drone.id == MaintenanceRecord.drone_id)
            .where(Drone.pilot_id == identity.pilot_id))

    drone_id = request.args.get('drone_id', type=int)
    if drone_id:
        stmt = stmt.where(MaintenanceRecord.drone_id == drone_id)

    stmt = stmt.order_by(MaintenanceRecord.maintenance_date.desc(), MaintenanceRecord.id.desc())
    records = db.session.execute(stmt).scalars().all()
    return jsonify({'data': [r.to_dict() for r in records]})


@maintenance_bp.route('/maintenance_records/<int:record_id>', methods=['GET'])
@login_required
def detail(record_id):
    identity = current_identity()
    record = get_owned_record(record_id, identity.pilot_id)
    if not record:
        raise NotFoundError(RECORD_NOT_FOUND)
    return jsonify({'data': record.to_dict()})


@maintenance_bp.route('/maintenance_records', methods=['POST'])
@login_required
def add_record():
    """
        Rejestracja wykonania czynności obsługowej.

        Dron wskazany we wpisie musi należeć do zalogowanego pilota.
    """
    identity = current_identity()
    payload = clean_payload(request.get_json(silent=True) or {}, MAINTENANCE_FIELDS)
    _require_drone(payload['drone_id'], identity)
    if payload.get('is_maker_maintenance') is None:
        payload.pop('is_maker_maintenance', None)

    record = MaintenanceRecord(**payload)
    try:
        db.session.add(record)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"MAINTENANCE_CREATION_FAILED: {str(e)}", exc_info=True)
        raise StorageError('整備記録の登録に失敗しました。')

    app_logger.info("MAINTENANCE_RECORDED", extra={
        'event': 'MAINTENANCE_ADD',
        'user': identity.pilot_id,
        'record_id': record.id,
        'drone_id': record.drone_id,
        'maker_maintenance': record.is_maker_maintenance,
        'src_ip': request.remote_addr
    })
    return jsonify({'data': record.to_dict()}), 201


@maintenance_bp.route('/maintenance_records/<int:record_id>', methods=['PUT'])
@login_required
def edit_record(record_id):
    identity = current_identity()
    payload = clean_payload(request.get_json(silent=True) or {}, MAINTENANCE_FIELDS, partial=True)

    record = get_owned_record(record_id, identity.pilot_id)
    if not record:
        raise NotFoundError(RECORD_NOT_FOUND)
    if 'drone_id' in payload:
        _require_drone(payload['drone_id'], identity)
    if 'is_maker_maintenance' in payload and payload['is_maker_maintenance'] is None:
        payload['is_maker_maintenance'] = False

    for field, value in payload.items():
        setattr(record, field, value)

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"MAINTENANCE_UPDATE_FAILED: {record_id}, error: {str(e)}", exc_info=True)
        raise StorageError('整備記録の更新に失敗しました。')

    app_logger.warning("MAINTENANCE_MODIFIED", extra={
        'event': 'MAINTENANCE_UPDATE',
        'user': identity.pilot_id,
        'record_id': record_id,
        'src_ip': request.remote_addr,
        'changes': sorted(payload)
    })
    return jsonify({'data': record.to_dict()})


@maintenance_bp.route('/maintenance_records/<int:record_id>', methods=['DELETE'])
@login_required
def delete_record(record_id):
    """Usunięcie wpisu obsługi wraz z plikiem załącznika."""
    identity = current_identity()
    record = get_owned_record(record_id, identity.pilot_id)
    if not record:
        raise NotFoundError(RECORD_NOT_FOUND)

    attachment = record.attachment_path
    try:
        db.session.delete(record)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"MAINTENANCE_DELETE_FAILED: {record_id}, error: {str(e)}", exc_info=True)
        raise StorageError('整備記録の削除に失敗しました。')

    if attachment:
        _remove_upload(attachment)

    app_logger.warning("MAINTENANCE_DELETED", extra={
        'event': 'MAINTENANCE_DELETE',
        'user': identity.pilot_id,
        'record_id': record_id,
        'src_ip': request.remote_addr
    })
    return '', 204


@maintenance_bp.route('/maintenance_records/<int:record_id>/attachment', methods=['POST'])
@login_required
def upload_attachment(record_id):
    """
        Dołączenie dokumentacji (zdjęcie lub PDF) do wpisu obsługi.

        Plik otrzymuje losową nazwę UUID, aby zapobiec nadpisywaniu plików
        oraz atakom typu Path Traversal. Poprzedni załącznik jest usuwany.
    """
    identity = current_identity()
    record = get_owned_record(record_id, identity.pilot_id)
    if not record:
        raise NotFoundError(RECORD_NOT_FOUND)

    file = request.files.get('file')
    if not file or not file.filename:
        raise ValidationError('ファイルが選択されていません。', field='file')
    if not allowed_file(file.filename):
        security_logger.error("MALICIOUS_UPLOAD_ATTEMPT", extra={
            'event': 'UPLOAD_FAILURE_SECURITY',
            'user': identity.pilot_id,
            'uploaded_file_name': file.filename,
            'src_ip': request.remote_addr
        })
        raise ValidationError('許可されていないファイル形式です。', field='file')

    ext = file.filename.rsplit('.', 1)[1].lower()
    unique_filename = f"maintenance_{record_id}_{uuid.uuid4().hex}.{ext}"
    file.save(os.path.join(current_app.config['UPLOAD_FOLDER'], unique_filename))

    previous = record.attachment_path
    record.attachment_path = unique_filename
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        _remove_upload(unique_filename)
        error_logger.error(f"ATTACHMENT_SAVE_FAILED: {record_id}, error: {str(e)}", exc_info=True)
        raise StorageError('ファイルの保存に失敗しました。')

    if previous:
        _remove_upload(previous)

    security_logger.info("FILE_UPLOAD_MAINTENANCE", extra={
        'event': 'FILE_UPLOAD',
        'user': identity.pilot_id,
        'original_name': file.filename,
        'stored_name': unique_filename,
        'record_id': record_id,
        'src_ip': request.remote_addr
    })
    return jsonify({'data': record.to_dict()})


def _remove_upload(stored_name):
    path = os.path.join(current_app.config['UPLOAD_FOLDER'], stored_name)
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
