"""
Moduł kont pilotów z systemem pełnego nadzoru (Audit Trail).

Zarządzanie profilem pilota: podgląd własnych danych wraz z nalotem,
edycja danych osobowych i hasła, zakładanie kont oraz ich usuwanie
z kontrolą zależności.

**Model uprawnień**

- Pilot widzi i edytuje wyłącznie własne konto (inne ID → 403).
- Lista pilotów, zakładanie i usuwanie cudzych kont wymagają uprawnienia
  administracji kontami (kolumna ``pilots.is_admin``, nadawana narzędziem ``grant_admin.py``).
- Usunięcie aktualnie zalogowanego konta tą ścieżką nie jest nigdy możliwe.

Przykład logu blokady usunięcia (JSON)::
{
    "timestamp": "2026-10-19T09:05:12.456Z",
    "level": "WARNING",
    "event": "ACCOUNT_DELETE_BLOCKED",
    "admin": 3,
    "target_pilot_id": 42,
    "drones": 2,
    "signature": "8d969eef6ecad3c29a3a629280e686cf0c3f5d5a86aff3ca12020c923adc6c92"
}
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import login_required
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import generate_password_hash

from errors import ConflictError, ForbiddenError, NotFoundError, StorageError, ValidationError
from extensions import db
from identity import current_identity
from models import Pilot
from validators import PILOT_FIELDS, clean_payload

pilots_bp = Blueprint('pilots', __name__)
security_logger = logging.getLogger("security")
app_logger = logging.getLogger("application")
error_logger = logging.getLogger("error")

MIN_PASSWORD_LENGTH = 8
EMAIL_TAKEN = 'このメールアドレスは既に使用されています。'


def validate_password(password):
    """
        Walidator polityki haseł.

        Raises:
            ValidationError: Hasło puste lub krótsze niż ``MIN_PASSWORD_LENGTH``.
    """
    if not password or not isinstance(password, str):
        raise ValidationError('パスワードは必須です。', field='password')
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'パスワードは{MIN_PASSWORD_LENGTH}文字以上で入力してください。', field='password')


def _email_taken(email, exclude_id=None):
    query = Pilot.query.filter_by(email=email)
    if exclude_id is not None:
        query = query.filter(Pilot.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def insert_pilot(data, created_by=None):
    """
        Transakcyjne utworzenie konta pilota (rejestracja lub akcja administratora).

        **Unikalność e-mail:** sprawdzana przed zapisem, a dodatkowo chroniona
        ograniczeniem UNIQUE w bazie (wyścig dwóch rejestracji kończy się ``ConflictError``).

        Args:
            data (dict): Surowe dane żądania (pola spoza białej listy są ignorowane).
            created_by (int | None): ID administratora lub ``None`` dla samorejestracji.

        Returns:
            Pilot: Zapisany rekord.
    """
    payload = clean_payload(data, PILOT_FIELDS)
    validate_password(data.get('password'))
    if payload.get('initial_flight_minutes') is not None and payload['initial_flight_minutes'] < 0:
        raise ValidationError('初期飛行時間は0以上で入力してください。', field='initial_flight_minutes')

    if _email_taken(payload['email']):
        raise ConflictError(EMAIL_TAKEN)

    # Puste wartości zastępują domyślne kolumn (has_license, initial_flight_minutes)
    payload = {k: v for k, v in payload.items() if v is not None}
    pilot = Pilot(password=generate_password_hash(data['password']), **payload)
    try:
        db.session.add(pilot)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(EMAIL_TAKEN)
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"PILOT_CREATION_FAILED: {str(e)}", exc_info=True)
        raise StorageError('登録に失敗しました。')

    security_logger.info("PILOT_CREATED", extra={
        'event': 'USER_PROVISIONING',
        'created_by': created_by,
        'new_pilot_id': pilot.id,
        'src_ip': request.remote_addr
    })
    return pilot


def app_flight_minutes(pilot_id):
    """Suma minut zapisanych w dzienniku (0 gdy brak wpisów)."""
    total = db.session.execute(
        text("SELECT COALESCE(SUM(actual_time_minutes), 0) FROM flight_logs WHERE pilot_id = :pid"),
        {'pid': pilot_id}
    ).scalar()
    return int(total or 0)


@pilots_bp.route('/pilots', methods=['GET'])
@login_required
def list_pilots():
    """
        Lista pilotów - dostępna wyłącznie z uprawnieniem administracji kontami.

        Publiczna lista wszystkich kont stanowiłaby wyciek danych osobowych,
        dlatego zwykły pilot otrzymuje 403.
    """
    identity = current_identity()
    if not identity.is_admin:
        raise ForbiddenError('この機能は使用できません。')

    app_logger.info("ADMIN_VIEW_PILOT_LIST", extra={
        'event': 'DATA_ACCESS',
        'admin': identity.pilot_id,
        'src_ip': request.remote_addr
    })
    pilots = Pilot.query.order_by(Pilot.id).all()
    return jsonify({'data': [p.to_dict() for p in pilots]})


@pilots_bp.route('/pilots/<int:pilot_id>', methods=['GET'])
@login_required
def get_pilot(pilot_id):
    """
        Profil pilota wraz z nalotem zapisanym w aplikacji (``app_flight_minutes``).

        Dostępny dla właściciela konta oraz administratora kont.
    """
    identity = current_identity()
    if pilot_id != identity.pilot_id and not identity.is_admin:
        raise ForbiddenError()

    pilot = db.session.get(Pilot, pilot_id)
    if not pilot:
        raise NotFoundError('操縦者が見つかりません。')

    data = pilot.to_dict()
    data['app_flight_minutes'] = app_flight_minutes(pilot_id)
    return jsonify({'data': data})


@pilots_bp.route('/pilots', methods=['POST'])
@login_required
def create_pilot():
    """Założenie konta przez administratora kont."""
    identity = current_identity()
    if not identity.is_admin:
        raise ForbiddenError()

    pilot = insert_pilot(request.get_json(silent=True) or {}, created_by=identity.pilot_id)
    return jsonify({'id': pilot.id, 'message': '作成しました'}), 201


@pilots_bp.route('/pilots/<int:pilot_id>', methods=['PUT'])
@login_required
def update_pilot(pilot_id):
    """
        Aktualizacja własnego profilu (Self-Service).

        Przesyłane są tylko zmieniane pola. Nowe hasło (opcjonalne) jest haszowane
        przed zapisem. Zmiana e-maila na zajęty kończy się ``ConflictError``.
    """
    identity = current_identity()
    if pilot_id != identity.pilot_id:
        security_logger.warning("UNAUTHORIZED_PILOT_EDIT_ATTEMPT", extra={
            'event': 'ACCESS_VIOLATION',
            'user': identity.pilot_id,
            'target_pilot_id': pilot_id,
            'src_ip': request.remote_addr
        })
        raise ForbiddenError()

    data = request.get_json(silent=True) or {}
    payload = clean_payload(data, PILOT_FIELDS, partial=True)
    if payload.get('initial_flight_minutes') is not None and payload['initial_flight_minutes'] < 0:
        raise ValidationError('初期飛行時間は0以上で入力してください。', field='initial_flight_minutes')
    if 'initial_flight_minutes' in payload and payload['initial_flight_minutes'] is None:
        payload['initial_flight_minutes'] = 0
    if 'has_license' in payload and payload['has_license'] is None:
        payload['has_license'] = False

    pilot = db.session.get(Pilot, pilot_id)
    if not pilot:
        raise NotFoundError('操縦者が見つかりません。')

    if 'email' in payload and _email_taken(payload['email'], exclude_id=pilot_id):
        raise ConflictError(EMAIL_TAKEN)

    password_changed = bool(data.get('password'))
    if password_changed:
        validate_password(data['password'])
        pilot.password = generate_password_hash(data['password'])

    for field, value in payload.items():
        setattr(pilot, field, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(EMAIL_TAKEN)
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"PILOT_UPDATE_FAILED: {pilot_id}, error: {str(e)}", exc_info=True)
        raise StorageError('更新に失敗しました。')

    security_logger.info("PILOT_PROFILE_UPDATED", extra={
        'event': 'USER_MODIFICATION',
        'user': pilot_id,
        'password_reset': password_changed,
        'src_ip': request.remote_addr
    })
    return jsonify({'id': pilot_id})


@pilots_bp.route('/pilots/<int:pilot_id>', methods=['DELETE'])
@login_required
def delete_pilot(pilot_id):
    """
        Usunięcie konta pilota z kontrolą zależności (Referential Guard).

        **Kolejność kontroli**

        1. Aktualnie zalogowane konto → 403 zawsze (nawet bez zależności).
        2. Brak uprawnienia administracji kontami → 403.
        3. Konto nie istnieje → 404.
        4. Pilot posiada drony, wpisy dziennika lub wpisy obsługi → 409.

        Sprawdzenie zależności i ``DELETE`` wykonują się w jednej transakcji,
        a wiersz pilota jest blokowany (``SELECT ... FOR UPDATE``).
    """
    identity = current_identity()
    if pilot_id == identity.pilot_id:
        security_logger.warning("SELF_DELETE_ATTEMPT", extra={
            'event': 'ACCESS_VIOLATION',
            'user': identity.pilot_id,
            'src_ip': request.remote_addr
        })
        raise ForbiddenError('ログイン中のアカウントは削除できません。')
    if not identity.is_admin:
        raise ForbiddenError('他人アカウントは削除できません。')

    try:
        pilot = db.session.execute(
            db.select(Pilot).filter_by(id=pilot_id).with_for_update()
        ).scalar_one_or_none()
        if not pilot:
            raise NotFoundError('操縦者が見つかりません。')

        deps = db.session.execute(text("""
                                       SELECT (SELECT COUNT(*) FROM drones WHERE pilot_id = :pid)      AS drones,
                                              (SELECT COUNT(*) FROM flight_logs WHERE pilot_id = :pid) AS logs,
                                              (SELECT COUNT(*)
                                               FROM maintenance_records m
                                                        JOIN drones d ON d.id = m.drone_id
                                               WHERE d.pilot_id = :pid)                                AS maintenance
                                       """), {'pid': pilot_id}).one()

        if deps.drones or deps.logs or deps.maintenance:
            security_logger.warning("ACCOUNT_DELETE_BLOCKED", extra={
                'event': 'DEPENDENCY_GUARD',
                'admin': identity.pilot_id,
                'target_pilot_id': pilot_id,
                'drones': deps.drones,
                'logs': deps.logs,
                'maintenance': deps.maintenance
            })
            raise ConflictError('機体または飛行記録が登録されている操縦者は削除できません。')

        db.session.delete(pilot)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        error_logger.error(f"PILOT_DELETE_FAILED: {pilot_id}, error: {str(e)}", exc_info=True)
        raise StorageError('削除に失敗しました。')

    security_logger.warning("PILOT_DELETED", extra={
        'event': 'USER_DELETION',
        'admin': identity.pilot_id,
        'target_pilot_id': pilot_id,
        'src_ip': request.remote_addr
    })
    return '', 204
