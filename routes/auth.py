"""
Moduł uwierzytelniania (Authentication) z systemem Audit Trail.

Obsługuje logowanie, wylogowywanie, odczyt bieżącej sesji oraz samorejestrację pilotów.

**System Logowania i Audytu (Cybersecurity Compliance)**
Wszystkie zdarzenia w tym module są logowane do kanału `security` w formacie JSON
z cyfrowym podpisem HMAC-SHA256, co zapewnia integralność logów (nienaruszalność).

Przykład logu bezpieczeństwa (JSON):
{
    "timestamp": "2026-10-19T08:20:01.123Z",
    "level": "WARNING",
    "event": "AUTH_FAILURE",
    "user_attempted": "pilot@example.com",
    "src_ip": "192.168.1.15",
    "message": "USER_LOGIN_FAILURE",
    "signature": "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
}
"""
import logging

from flask import Blueprint, current_app, jsonify, request, session
from flask_login import login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash

from errors import AuthFailedError, ForbiddenError, ValidationError
from extensions import limiter
from identity import identity_or_none
from models import Pilot
from routes.pilots import insert_pilot
from validators import normalize_email

auth_bp = Blueprint('auth', __name__)
security_logger = logging.getLogger("security")
app_logger = logging.getLogger("application")


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("5 per minute")
def login():
    """
        Proces uwierzytelniania z wielowarstwowym mechanizmem obronnym.

        **Warstwy bezpieczeństwa**
        1. Rate Limiting: Ograniczenie prób logowania na poziomie IP (Flask-Limiter)
           w celu mitigacji ataków Brute-force i Dictionary.
        2. Kryptografia: Weryfikacja hasła funkcją `check_password_hash` z solą
           (odporność na Rainbow Tables).
        3. Jednolity komunikat błędu: klient nie dowiaduje się, czy błędny był e-mail, czy hasło.
        4. Session Management: Nowa sesja (HttpOnly, Secure flag) wiąże ID pilota i nazwę wyświetlaną.

        Sesja jest zapisywana w ciasteczku tej samej odpowiedzi, która potwierdza
        sukces - klient nie otrzyma potwierdzenia przed utrwaleniem sesji.

        Returns:
            Response: JSON z tożsamością pilota (200) lub błąd 401.
    """
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    password = data.get('password')
    src_ip = request.remote_addr

    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        raise ValidationError('メールアドレスとパスワードを入力してください。')

    pilot = Pilot.query.filter_by(email=normalize_email(email)).first()

    if not pilot or not check_password_hash(pilot.password, password):
        security_logger.warning("USER_LOGIN_FAILURE", extra={
            'event': 'AUTH_FAILURE',
            'user_attempted': email,
            'src_ip': src_ip,
            'details': 'Nieudana próba logowania: błędne poświadczenia'
        })
        raise AuthFailedError()

    # Zapobiega Session Fixation - stara zawartość sesji nie przechodzi do nowej
    session.clear()
    login_user(pilot)
    session['display_name'] = pilot.name
    security_logger.info("USER_LOGIN_SUCCESS", extra={
        'event': 'AUTH_SUCCESS',
        'user': pilot.id,
        'src_ip': src_ip,
        'details': 'Pilot zalogowany pomyślnie'
    })
    return jsonify({'message': 'ログインしました。', 'user': {'id': pilot.id, 'name': pilot.name}})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """
        Terminuje sesję pilota.

        Operacja idempotentna: wywołanie bez aktywnej sesji również kończy się sukcesem.
        Po wylogowaniu stary token sesyjny przestaje identyfikować pilota
        (ochrona przed Session Hijacking).
    """
    identity = identity_or_none()
    logout_user()
    session.clear()
    if identity:
        security_logger.info("USER_LOGOUT", extra={
            'event': 'AUTH_LOGOUT',
            'user': identity.pilot_id,
            'src_ip': request.remote_addr,
            'details': 'Pilot wylogował się poprawnie'
        })
    return jsonify({'message': 'ログアウトしました。'})


@auth_bp.route('/current-user', methods=['GET'])
def current_user_info():
    """Zwraca tożsamość z sesji albo ``{"user": null}`` - nigdy błąd."""
    identity = identity_or_none()
    if identity is None:
        return jsonify({'user': None})
    return jsonify({'user': {'id': identity.pilot_id, 'name': identity.display_name}})


@auth_bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    """Token CSRF dla klienta (nagłówek ``X-CSRFToken`` w żądaniach zapisu)."""
    return jsonify({'csrf_token': generate_csrf()})


@auth_bp.route('/register', methods=['POST'])
@limiter.limit("10 per hour")
def register():
    """
        Samorejestracja pilota.

        Dostępna, gdy ``REGISTRATION_OPEN`` jest włączone. Duplikat adresu e-mail
        kończy się ``ConflictError`` bez utworzenia drugiego rekordu.
    """
    if not current_app.config.get('REGISTRATION_OPEN', True):
        raise ForbiddenError('新規登録は現在受け付けていません。')

    pilot = insert_pilot(request.get_json(silent=True) or {})
    app_logger.info("PILOT_SELF_REGISTERED", extra={
        'event': 'SELF_REGISTRATION',
        'new_pilot_id': pilot.id,
        'src_ip': request.remote_addr
    })
    return jsonify({'id': pilot.id, 'message': '作成しました'}), 201
