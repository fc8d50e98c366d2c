"""
Inicjalizacja rozszerzeń Flask.

Plik ten służy do rozwiązania problemu cyklicznych importów.
Tutaj tworzone są instancje rozszerzeń (DB, Login, CSRF, Limiter),
które następnie są konfigurowane w `app.py` (``init_app``) i importowane w modelach/trasach.
Żadne z nich nie otwiera połączeń przy imporcie - silnik bazy powstaje dopiero
w fabryce aplikacji i jest zwalniany przy jej zamknięciu.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

#: Obiekt bazy danych SQLAlchemy (pula połączeń + sesja na żądanie)
db = SQLAlchemy()

#: Obiekt zarządzający sesją pilota
login_manager = LoginManager()

#: Ochrona przed atakami CSRF (Cross-Site Request Forgery)
csrf = CSRFProtect()

#: Ochrona przed atakami Brute-Force (Limitowanie zapytań)
limiter = Limiter(key_func=get_remote_address)
