"""
Skrypt zakładający konto demonstracyjne pilota (środowisko deweloperskie).

Tworzy pilota ``test@example.com`` / ``password123`` z nalotem początkowym 480 minut,
o ile takie konto jeszcze nie istnieje. Ponowne uruchomienie niczego nie zmienia.
"""

from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import Pilot

DEMO_EMAIL = 'test@example.com'
DEMO_PASSWORD = 'password123'


def seed_demo_pilot():
    """Zwraca ``True`` gdy konto zostało utworzone, ``False`` gdy już istniało."""
    if Pilot.query.filter_by(email=DEMO_EMAIL).first():
        return False

    db.session.add(Pilot(
        name='テスト操縦士',
        email=DEMO_EMAIL,
        password=generate_password_hash(DEMO_PASSWORD),
        initial_flight_minutes=480,
    ))
    db.session.commit()
    return True


if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        if seed_demo_pilot():
            print(f"✅ Dodano pilota demonstracyjnego: {DEMO_EMAIL}")
        else:
            print(f"Pilot {DEMO_EMAIL} już istnieje - bez zmian.")
