"""
Główny plik startowy aplikacji (Application Factory).

Zawiera funkcję `create_app`, która:
1. Konfiguruje aplikację Flask ze zmiennych środowiskowych (.env).
2. Inicjalizuje połączenie z bazą danych i zakłada schemat.
3. Konfiguruje zabezpieczenia (CSRF, Limiter, Secure Cookies, Cryptographic Auditing).
4. Rejestruje Blueprints (moduły routingu) i handlery błędów.
"""

import atexit
import logging
import os
import sys

from dotenv import load_dotenv
from flask import Flask, request

from extensions import db, login_manager, csrf, limiter
from errors import AuthRequiredError, ConfigError, register_error_handlers
from logger_config import setup_logging
from pdf_report import resolve_report_font
from models import Pilot
from routes.auth import auth_bp
from routes.drones import drones_bp
from routes.flights import flights_bp
from routes.maintenance import maintenance_bp
from routes.pilots import pilots_bp
from routes.reports import reports_bp

load_dotenv()


def _env_flag(name, default):
    return os.getenv(name, default).lower() == 'true'


def create_app(test_config=None):
    """
    Implementacja wzorca Application Factory dla frameworka Flask.

    Konfiguracja stosu technologicznego:
    - Inicjalizacja rozszerzeń (ORM, Security, Rate Limiter).
    - Konfiguracja middleware bezpieczeństwa: CSRF Protection, Secure Cookie.
    - Rejestracja modułów routingu (Blueprints) pod prefiksem ``/api``.
    - Konfiguracja globalnych handlerów błędów (Audit Trails).
    - Utworzenie schematu bazy (``db.create_all``).

    Args:
        test_config (dict | None): Nadpisania konfiguracji (używane w testach).

    Returns:
        Flask: Skonfigurowana aplikacja gotowa do uruchomienia.

    Raises:
        ConfigError: Brak ``DATABASE_URL`` lub czcionki raportu - błąd fatalny.
    """
    app = Flask(__name__)

    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY')
    uri = os.getenv('DATABASE_URL')
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    app.config['SQLALCHEMY_DATABASE_URI'] = uri
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {'pool_pre_ping': True}

    is_production = os.getenv('FLASK_ENV') == 'production'
    app.config['SESSION_COOKIE_SECURE'] = is_production
    app.config['SESSION_COOKIE_HTTPONLY'] = True
    app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

    # Debug Mode
    app.config['DEBUG'] = _env_flag('FLASK_DEBUG', 'False')

    app.config['LOG_DIR'] = os.getenv('LOG_DIR', 'logs')
    app.config['LOG_SECRET_KEY'] = os.getenv('LOG_SECRET_KEY', '')
    app.config['REGISTRATION_OPEN'] = _env_flag('REGISTRATION_OPEN', 'True')
    app.config['REPORT_FONT_PATH'] = os.getenv('REPORT_FONT_PATH') or None
    app.config['UPLOAD_FOLDER'] = os.getenv('UPLOAD_FOLDER', os.path.join(app.root_path, 'uploads'))
    app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024
    app.config['RATELIMIT_STORAGE_URI'] = "memory://"
    app.config['RATELIMIT_DEFAULT'] = "200 per day;50 per hour"

    if test_config:
        app.config.update(test_config)

    setup_logging(app.config['LOG_DIR'], app.config['LOG_SECRET_KEY'])
    error_logger = logging.getLogger("error")

    if not app.config['SQLALCHEMY_DATABASE_URI']:
        error_logger.critical("MISSING_DATABASE_URL", extra={
            'event': 'SYSTEM_BOOT_FAILURE',
            'details': 'Zmienna środowiskowa DATABASE_URL nie jest ustawiona'
        })
        raise ConfigError('DATABASE_URL is not set')

    try:
        app.config['REPORT_FONT_PATH'] = resolve_report_font(app.config['REPORT_FONT_PATH'])
    except ConfigError as e:
        error_logger.critical("MISSING_REPORT_FONT", extra={
            'event': 'SYSTEM_BOOT_FAILURE',
            'details': str(e)
        })
        raise

    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    db.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        """Ładowanie pilota dla Flask-Login."""
        return db.session.get(Pilot, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        """API nie przekierowuje na stronę logowania - zwraca 401."""
        raise AuthRequiredError()

    app.register_blueprint(auth_bp, url_prefix='/api')
    app.register_blueprint(drones_bp, url_prefix='/api')
    app.register_blueprint(flights_bp, url_prefix='/api')
    app.register_blueprint(maintenance_bp, url_prefix='/api')
    app.register_blueprint(pilots_bp, url_prefix='/api')
    app.register_blueprint(reports_bp, url_prefix='/api')

    register_error_handlers(app)

    access_logger = logging.getLogger("access")

    @app.after_request
    def log_access(response):
        """Jedna linia w access.log na każde żądanie."""
        access_logger.info("HTTP_REQUEST", extra={
            'method': request.method,
            'path': request.path,
            'status': response.status_code,
            'src_ip': request.remote_addr
        })
        return response

    with app.app_context():
        try:
            db.create_all()
        except Exception:
            error_logger.critical("SCHEMA_SETUP_FAILED", exc_info=True, extra={'event': 'SYSTEM_BOOT_FAILURE'})
            raise

    # Zamknięcie puli połączeń przy wyłączaniu procesu
    def dispose_engine():
        with app.app_context():
            db.engine.dispose()

    atexit.register(dispose_engine)

    logging.getLogger("application").info("APP_STARTUP", extra={
        'event': 'SYSTEM_BOOT',
        'env': os.getenv('FLASK_ENV', 'development'),
        'debug_mode': app.config['DEBUG']
    })

    return app


if __name__ == '__main__':
    try:
        app = create_app()
    except Exception as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(1)
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 5000)))
