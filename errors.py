"""
Taksonomia błędów domenowych API.

Każdy wyjątek niesie kod statusu HTTP i komunikat przeznaczony dla klienta.
Szczegóły techniczne (treść wyjątku SQL, stos wywołań) trafiają wyłącznie
do kanału ``error`` w logach - nigdy do odpowiedzi.

Mapowanie na odpowiedzi JSON realizuje ``register_error_handlers`` wywoływane w ``app.create_app``.
"""

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

security_logger = logging.getLogger("security")
error_logger = logging.getLogger("error")


class AppError(Exception):
    """Bazowy błąd aplikacji."""
    status_code = 500
    message = 'サーバーエラーが発生しました。'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {'error': self.message}


class AuthRequiredError(AppError):
    """Brak aktywnej sesji."""
    status_code = 401
    message = 'ログインが必要です。'


class AuthFailedError(AppError):
    """Błędne poświadczenia - komunikat nie zdradza, czy chodziło o e-mail, czy hasło."""
    status_code = 401
    message = 'メールアドレスまたはパスワードが正しくありません。'


class ValidationError(AppError):
    """Niepoprawne dane wejściowe (format, zakres, wartość spoza słownika)."""
    status_code = 400
    message = '入力内容が不正です。'

    def __init__(self, message=None, field=None):
        super().__init__(message)
        self.field = field

    def to_dict(self):
        data = super().to_dict()
        if self.field:
            data['field'] = self.field
        return data


class ForbiddenError(AppError):
    status_code = 403
    message = '権限がありません。'


class NotFoundError(AppError):
    """Zasób nie istnieje albo należy do innego pilota (celowo nierozróżnialne)."""
    status_code = 404
    message = '対象が見つかりません。'


class ConflictError(AppError):
    status_code = 409
    message = '他のデータと競合しています。'


class StorageError(AppError):
    status_code = 500
    message = 'データベース処理に失敗しました。'


class ReportError(AppError):
    status_code = 500
    message = 'PDFの生成に失敗しました。'


class AggregationError(AppError):
    status_code = 500
    message = '集計に失敗しました。'


class ConfigError(RuntimeError):
    """Brak wymaganej konfiguracji - błąd fatalny przy starcie."""


def register_error_handlers(app):
    """
        Rejestruje globalne handlery błędów (Audit Trails).

        - Błędy domenowe (``AppError``) są mapowane na status i komunikat JSON.
        - Odmowy dostępu są dodatkowo odnotowywane w kanale ``security``.
        - Wyjątki HTTP z Werkzeug (np. 404 nieznanej ścieżki, 405) zachowują swój status.
        - Każdy inny wyjątek to awaria: pełny stos trafia do kanału ``error``,
          klient otrzymuje ogólny komunikat 500.
    """
    from extensions import db

    @app.errorhandler(AppError)
    def handle_app_error(e):
        db.session.rollback()
        if isinstance(e, (ForbiddenError, AuthRequiredError)):
            security_logger.warning("ACCESS_DENIED", extra={
                'event': 'ACCESS_VIOLATION',
                'status': e.status_code,
                'url': request.path,
                'src_ip': request.remote_addr
            })
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        if e.code == 404:
            security_logger.warning("PAGE_NOT_FOUND", extra={
                'event': 'RECONNAISSANCE',
                'url': request.url,
                'src_ip': request.remote_addr,
                'user_agent': request.headers.get('User-Agent')
            })
        return jsonify({'error': e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        db.session.rollback()
        error_logger.critical("INTERNAL_SERVER_ERROR", exc_info=e, extra={
            'event': 'SYSTEM_FAILURE',
            'url': request.url,
            'src_ip': request.remote_addr
        })
        return jsonify(StorageError().to_dict()), 500
