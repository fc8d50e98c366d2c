"""
Reguły walidacji i obliczeń domenowych.

Zawiera:

- białe listy pól (allow-list) dla każdej encji wraz z typem i wymagalnością,
- konwersję danych z żądania JSON na typy Pythona,
- kalkulator czasu lotu w minutach z obsługą przejścia przez północ,
- reguły zapisu dziennika lotów (zakres czasu, słowniki celu i formy lotu).

**Bezpieczeństwo (Mass Assignment)**

Dane z żądania nigdy nie są przekazywane do bazy w całości. Funkcja ``clean_payload``
przepuszcza wyłącznie pola z białej listy danej encji - klucze chronione
(``id``, ``pilot_id``, ``actual_time_minutes``) oraz nieznane są pomijane.
"""

import re
from datetime import date, datetime, time

from errors import ValidationError

#: Górna granica czasu pojedynczego lotu (12 godzin)
MAX_FLIGHT_MINUTES = 720
MINUTES_PER_DAY = 1440

PURPOSES = ('訓練', '業務', 'その他')

FLIGHT_FORMS = (
    '目視内飛行',
    '目視外飛行',
    '夜間飛行',
    '25kg以上の機体の飛行',
    'イベント上空飛行',
    '危険物輸送',
    '物件投下',
)

DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_RE = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')

# Typy pól: str, email, int, bool, date, time
PILOT_FIELDS = {
    'name': ('str', True),
    'name_kana': ('str', False),
    'postal_code': ('str', False),
    'prefecture': ('str', False),
    'address1': ('str', False),
    'address2': ('str', False),
    'email': ('email', True),
    'phone': ('str', False),
    'has_license': ('bool', False),
    'initial_flight_minutes': ('int', False),
}

DRONE_FIELDS = {
    'manufacturer': ('str', False),
    'model': ('str', True),
    'type': ('str', False),
    'serial_number': ('str', False),
    'registration_symbol': ('str', False),
    'valid_period_start': ('date', False),
    'valid_period_end': ('date', False),
    'nickname': ('str', False),
}

FLIGHT_LOG_FIELDS = {
    'precheck_date': ('date', False),
    'inspector': ('str', False),
    'place': ('str', False),
    'body': ('str', False),
    'propeller': ('str', False),
    'frame': ('str', False),
    'comm': ('str', False),
    'engine': ('str', False),
    'power': ('str', False),
    'autocontrol': ('str', False),
    'controller': ('str', False),
    'battery': ('str', False),
    'fly_date': ('date', False),
    'start_location': ('str', False),
    'end_location': ('str', False),
    'start_time': ('time', False),
    'end_time': ('time', False),
    'flight_abnormal': ('str', False),
    'aftercheck': ('str', False),
    'copilot_name': ('str', False),
    'purpose': ('str', False),
    'flight_form': ('str', False),
    'drone_id': ('int', True),
}

MAINTENANCE_FIELDS = {
    'drone_id': ('int', True),
    'maintenance_date': ('date', False),
    'content': ('str', False),
    'reason': ('str', False),
    'performer': ('str', False),
    'notes': ('str', False),
    'is_maker_maintenance': ('bool', False),
}


def parse_date(value, field):
    """Konwertuje 'YYYY-MM-DD' na ``date``; puste wartości dają ``None``."""
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_RE.match(value):
        raise ValidationError('日付は YYYY-MM-DD 形式で入力してください。', field=field)
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError('存在しない日付です。', field=field)


def parse_time(value, field):
    """Konwertuje 'HH:MM' (opcjonalnie ':SS') na ``time``."""
    if value in (None, ''):
        return None
    if isinstance(value, time):
        return value
    match = TIME_RE.match(value) if isinstance(value, str) else None
    if not match:
        raise ValidationError('時刻は HH:MM 形式で入力してください。', field=field)
    hour, minute, second = int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValidationError('存在しない時刻です。', field=field)
    return time(hour, minute, second)


def _coerce(kind, value, field):
    if kind == 'date':
        return parse_date(value, field)
    if kind == 'time':
        return parse_time(value, field)
    if value in (None, ''):
        return None
    if kind == 'int':
        if isinstance(value, bool):
            raise ValidationError('数値を入力してください。', field=field)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError('数値を入力してください。', field=field)
    if kind == 'bool':
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ('true', '1', 'on', 'false', '0', 'off'):
            return value.lower() in ('true', '1', 'on')
        if isinstance(value, int):
            return bool(value)
        raise ValidationError('真偽値を入力してください。', field=field)
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    if kind == 'email':
        return normalize_email(value) or None
    return value or None


def normalize_email(value):
    """Adres e-mail w postaci kanonicznej (bez białych znaków, małe litery)."""
    return value.strip().lower() if isinstance(value, str) else value


def clean_payload(data, fields, partial=False):
    """
        Filtruje i konwertuje dane żądania według białej listy pól encji.

        Args:
            data (dict): Surowe dane JSON z żądania.
            fields (dict): Specyfikacja pól ``{nazwa: (typ, wymagane)}``.
            partial (bool): Tryb aktualizacji - brakujące pola wymagane nie są błędem,
                ale jawnie wyczyszczone (null/'') już tak.

        Returns:
            dict: Wyłącznie rozpoznane pola ze skonwertowanymi wartościami.
    """
    if not isinstance(data, dict):
        raise ValidationError('リクエストの形式が不正です。')

    cleaned = {}
    for field, (kind, required) in fields.items():
        if field not in data:
            if required and not partial:
                raise ValidationError(f'{field} は必須です。', field=field)
            continue
        value = _coerce(kind, data[field], field)
        if required and value is None:
            raise ValidationError(f'{field} は必須です。', field=field)
        cleaned[field] = value
    return cleaned


def _to_minutes(value):
    if isinstance(value, str):
        value = parse_time(value, 'time')
    return value.hour * 60 + value.minute


def compute_minutes(start, end):
    """
        Oblicza czas lotu w minutach między godziną startu i lądowania.

        Lot przechodzący przez północ (koniec wcześniej niż początek) jest
        modelowany przez dodanie doby (1440 min), np. 23:30 → 00:15 daje 45 minut.

        Args:
            start (str | datetime.time | None): Godzina startu 'HH:MM'.
            end (str | datetime.time | None): Godzina lądowania 'HH:MM'.

        Returns:
            int: Liczba minut; 0 gdy którakolwiek wartość nie została podana.
    """
    if not start or not end:
        return 0
    minutes = _to_minutes(end) - _to_minutes(start)
    if minutes < 0:
        minutes += MINUTES_PER_DAY
    return minutes


def validate_flight_record(record):
    """
        Reguły zapisu wpisu dziennika, wspólne dla tworzenia i edycji.

        Wylicza ``actual_time_minutes`` i sprawdza:

        1. czas lotu w przedziale (0, 720] minut,
        2. cel lotu (``purpose``) ze słownika ``PURPOSES``,
        3. formę lotu (``flight_form``) ze słownika ``FLIGHT_FORMS``.

        Własność drona weryfikuje trasa (wymaga zapytania do bazy).

        Args:
            record (dict): Kompletny stan wpisu po scaleniu zmian.

        Returns:
            int: Wyliczony czas lotu w minutach.
    """
    minutes = compute_minutes(record.get('start_time'), record.get('end_time'))
    if minutes <= 0 or minutes > MAX_FLIGHT_MINUTES:
        raise ValidationError('飛行時間が不正です。開始時刻と終了時刻を確認してください（最大12時間）。',
                              field='end_time')

    purpose = record.get('purpose')
    if purpose is not None and purpose not in PURPOSES:
        raise ValidationError('飛行目的の値が不正です。', field='purpose')

    flight_form = record.get('flight_form')
    if flight_form is not None and flight_form not in FLIGHT_FORMS:
        raise ValidationError('飛行形態の値が不正です。', field='flight_form')

    return minutes


def validate_period(start, end, field='valid_period_end'):
    """Okres ważności: początek nie może być późniejszy niż koniec."""
    if start and end and start > end:
        raise ValidationError('有効期間の開始日が終了日より後になっています。', field=field)


def parse_report_range(start_raw, end_raw):
    """
        Walidacja zakresu dat raportu PDF.

        Obie daty muszą mieć dokładnie format ``YYYY-MM-DD`` i być rzeczywistymi datami,
        a początek nie może być późniejszy niż koniec.

        Returns:
            tuple: (date_start, date_end)
    """
    if not start_raw or not end_raw:
        raise ValidationError('開始日と終了日を指定してください。', field='start' if not start_raw else 'end')
    start = parse_date(start_raw, 'start')
    end = parse_date(end_raw, 'end')
    if start > end:
        raise ValidationError('開始日は終了日以前の日付を指定してください。', field='start')
    return start, end
