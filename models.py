"""
Modele bazy danych (ORM).

Definiują strukturę tabel w bazie danych PostgreSQL oraz relacje między nimi.
Łańcuch własności: Pilot 1—* Drone 1—* FlightLog / MaintenanceRecord.

Każdy rekord drona i dziennika nosi ``pilot_id`` właściciela - jest to
granica izolacji danych (tenant boundary) wykorzystywana przez wszystkie zapytania.
"""

from extensions import db
from flask_login import UserMixin


class Pilot(UserMixin, db.Model):
    """
    Reprezentuje operatora drona i jednocześnie konto systemowe do logowania.

    Przechowuje hasz hasła (werkzeug, scrypt/pbkdf2), nalot sprzed
    korzystania z aplikacji (``initial_flight_minutes``) oraz flagę ``is_admin``,
    której nie da się ustawić przez API.
    """
    __tablename__ = 'pilots'

    id = db.Column(db.Integer, primary_key=True)
    #: Imię i nazwisko
    name = db.Column(db.String(100), nullable=False)
    #: Zapis fonetyczny (katakana)
    name_kana = db.Column(db.String(100))
    postal_code = db.Column(db.String(20))
    prefecture = db.Column(db.String(50))
    address1 = db.Column(db.String(255))
    address2 = db.Column(db.String(255))
    #: Unikalny identyfikator logowania
    email = db.Column(db.String(100), unique=True, nullable=False)
    phone = db.Column(db.String(30))
    #: Czy pilot posiada licencję (certyfikat umiejętności)
    has_license = db.Column(db.Boolean, nullable=False, default=False)
    #: Minuty wylatane poza tym systemem (do bilansu total)
    initial_flight_minutes = db.Column(db.Integer, nullable=False, default=0)
    #: Zahaszowane hasło
    password = db.Column(db.Text, nullable=False)
    #: Uprawnienie administracji kontami - nadawane wyłącznie narzędziem ``grant_admin.py``
    is_admin = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        """Reprezentacja JSON bez hasza hasła."""
        return {
            'id': self.id,
            'name': self.name,
            'name_kana': self.name_kana,
            'postal_code': self.postal_code,
            'prefecture': self.prefecture,
            'address1': self.address1,
            'address2': self.address2,
            'email': self.email,
            'phone': self.phone,
            'has_license': self.has_license,
            'initial_flight_minutes': self.initial_flight_minutes,
            'is_admin': self.is_admin,
        }


# E-mail jest zapisywany małymi literami; indeks pilnuje unikalności niezależnie od wielkości liter
db.Index('uq_pilots_email_lower', db.func.lower(Pilot.email), unique=True)


class Drone(db.Model):
    """
    Reprezentuje zarejestrowany statek powietrzny (dron) należący do dokładnie jednego pilota.
    """
    __tablename__ = 'drones'
    __table_args__ = (
        db.Index('idx_drones_pilot', 'pilot_id'),
        db.UniqueConstraint('pilot_id', 'serial_number', name='uq_drones_pilot_serial'),
        db.UniqueConstraint('pilot_id', 'registration_symbol', name='uq_drones_pilot_registration'),
    )

    id = db.Column(db.Integer, primary_key=True)
    manufacturer = db.Column(db.Text)
    #: Model (wymagany)
    model = db.Column(db.Text, nullable=False)
    type = db.Column(db.Text)
    serial_number = db.Column(db.Text)
    #: Symbol rejestracyjny (np. 'JU0123456789')
    registration_symbol = db.Column(db.Text)
    valid_period_start = db.Column(db.Date)
    valid_period_end = db.Column(db.Date)
    nickname = db.Column(db.Text)
    #: Właściciel - ustawiany z sesji, niezmienny
    pilot_id = db.Column(db.Integer, db.ForeignKey('pilots.id', ondelete='CASCADE'), nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'manufacturer': self.manufacturer,
            'model': self.model,
            'type': self.type,
            'serial_number': self.serial_number,
            'registration_symbol': self.registration_symbol,
            'valid_period_start': _iso(self.valid_period_start),
            'valid_period_end': _iso(self.valid_period_end),
            'nickname': self.nickname,
            'pilot_id': self.pilot_id,
        }


class FlightLog(db.Model):
    """
    Pojedynczy wpis dziennika lotów: inspekcja przedlotowa, czasy, miejsca i cel lotu.

    ``actual_time_minutes`` jest zawsze wyliczany po stronie serwera
    z ``start_time`` i ``end_time`` (zob. ``validators.compute_minutes``).
    """
    __tablename__ = 'flight_logs'
    __table_args__ = (
        db.Index('idx_flight_logs_pilot_date', 'pilot_id', 'fly_date'),
        db.Index('idx_flight_logs_drone_date', 'drone_id', 'fly_date'),
    )

    id = db.Column(db.Integer, primary_key=True)
    #: Inspekcja przedlotowa
    precheck_date = db.Column(db.Date)
    inspector = db.Column(db.Text)
    place = db.Column(db.Text)
    body = db.Column(db.Text)
    propeller = db.Column(db.Text)
    frame = db.Column(db.Text)
    comm = db.Column(db.Text)
    engine = db.Column(db.Text)
    power = db.Column(db.Text)
    autocontrol = db.Column(db.Text)
    controller = db.Column(db.Text)
    battery = db.Column(db.Text)
    #: Dane lotu
    fly_date = db.Column(db.Date)
    start_location = db.Column(db.Text)
    end_location = db.Column(db.Text)
    start_time = db.Column(db.Time)
    end_time = db.Column(db.Time)
    actual_time_minutes = db.Column(db.Integer)
    flight_abnormal = db.Column(db.Text)
    aftercheck = db.Column(db.Text)
    copilot_name = db.Column(db.Text)
    #: Cel lotu (訓練 / 業務 / その他)
    purpose = db.Column(db.Text)
    #: Forma lotu (np. 目視外飛行)
    flight_form = db.Column(db.Text)
    drone_id = db.Column(db.Integer, db.ForeignKey('drones.id', ondelete='RESTRICT'), nullable=False)
    pilot_id = db.Column(db.Integer, db.ForeignKey('pilots.id', ondelete='CASCADE'), nullable=False)

    def to_dict(self):
        data = {c.name: getattr(self, c.name) for c in self.__table__.columns}
        for key in ('precheck_date', 'fly_date'):
            data[key] = _iso(data[key])
        for key in ('start_time', 'end_time'):
            data[key] = data[key].strftime('%H:%M') if data[key] else None
        return data


class MaintenanceRecord(db.Model):
    """
    Wpis obsługi technicznej drona (przegląd, naprawa, serwis producenta).
    """
    __tablename__ = 'maintenance_records'
    __table_args__ = (
        db.Index('idx_maintenance_drone_date', 'drone_id', 'maintenance_date'),
    )

    id = db.Column(db.Integer, primary_key=True)
    drone_id = db.Column(db.Integer, db.ForeignKey('drones.id', ondelete='RESTRICT'), nullable=False)
    maintenance_date = db.Column(db.Date)
    #: Zakres wykonanych prac
    content = db.Column(db.Text)
    reason = db.Column(db.Text)
    performer = db.Column(db.Text)
    notes = db.Column(db.Text)
    #: Czy obsługę wykonał producent
    is_maker_maintenance = db.Column(db.Boolean, nullable=False, default=False)
    #: Nazwa zapisanego pliku załącznika (UUID) w UPLOAD_FOLDER
    attachment_path = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id,
            'drone_id': self.drone_id,
            'maintenance_date': _iso(self.maintenance_date),
            'content': self.content,
            'reason': self.reason,
            'performer': self.performer,
            'notes': self.notes,
            'is_maker_maintenance': self.is_maker_maintenance,
            'attachment_path': self.attachment_path,
        }


def _iso(value):
    return value.isoformat() if value else None
