"""
Narzędzie administracyjne: nadawanie i odbieranie uprawnienia administracji kontami.

Flaga ``pilots.is_admin`` nie jest dostępna przez API (rejestracja ani edycja
profilu jej nie zapisują) - zmienia się ją wyłącznie tym skryptem, uruchamianym
przez operatora z dostępem do serwera.

Użycie::

    python grant_admin.py admin@example.com            # nadanie
    python grant_admin.py admin@example.com --revoke   # odebranie
"""

import logging
import sys

from extensions import db
from models import Pilot
from validators import normalize_email

security_logger = logging.getLogger("security")


def set_admin(email, granted=True):
    """
        Ustawia flagę ``is_admin`` pilota o podanym adresie e-mail.

        Returns:
            Pilot | None: Zaktualizowany rekord lub ``None`` gdy konto nie istnieje.
    """
    pilot = Pilot.query.filter_by(email=normalize_email(email)).first()
    if not pilot:
        return None

    pilot.is_admin = granted
    db.session.commit()
    security_logger.warning("ADMIN_CAPABILITY_CHANGED", extra={
        'event': 'PRIVILEGE_CHANGE',
        'target_pilot_id': pilot.id,
        'granted': granted,
        'source': 'cli'
    })
    return pilot


def main(argv):
    emails = [arg for arg in argv if not arg.startswith('--')]
    if len(emails) != 1:
        print(__doc__)
        return 2

    from app import create_app

    granted = '--revoke' not in argv
    email = emails[0]
    app = create_app()
    with app.app_context():
        pilot = set_admin(email, granted)

    if pilot is None:
        print(f"BŁĄD: Brak pilota o adresie {email}.")
        return 1
    print(f"✅ {'Nadano' if granted else 'Odebrano'} uprawnienie administratora: {pilot.email}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
