"""
Tożsamość sesji pilota.

Flask-Login przechowuje w ciasteczku sesji identyfikator pilota, a trasa
logowania dokłada nazwę wyświetlaną. Na tej podstawie ``current_identity`` buduje jedną, typowaną strukturę
``SessionIdentity``, przekazywaną jawnie do logiki tras.

Uprawnienie administracji kontami (``is_admin``) pochodzi z kolumny w bazie,
ustawianej wyłącznie narzędziem ``grant_admin.py`` - żadna trasa API jej nie zapisuje.
"""

from collections import namedtuple

from flask import session
from flask_login import current_user

from errors import AuthRequiredError

SessionIdentity = namedtuple('SessionIdentity', ['pilot_id', 'display_name', 'is_admin'])


def identity_or_none():
    """Tożsamość zalogowanego pilota albo ``None`` - nigdy nie rzuca wyjątku."""
    if not current_user or not current_user.is_authenticated:
        return None
    return SessionIdentity(
        pilot_id=current_user.id,
        display_name=session.get('display_name', current_user.name),
        is_admin=bool(current_user.is_admin),
    )


def current_identity():
    """
        Rozwiązuje tożsamość działającego pilota.

        Raises:
            AuthRequiredError: Brak aktywnej sesji (przed jakimkolwiek dostępem do danych).
    """
    identity = identity_or_none()
    if identity is None:
        raise AuthRequiredError()
    return identity
