"""
Moduł raportów i statystyk z audytem dostępu.

Udostępnia pulpit statystyk pilota oraz eksport dziennika lotów do pliku PDF
w zadanym zakresie dat.

**System Logowania Audytowego (Data Privacy Audit)**

Eksport dziennika jest traktowany jako zdarzenie wysokiego ryzyka i logowany
do kanału `security` wraz z zakresem dat i IP.

Przykład logu eksportu (JSON)::
{
    "timestamp": "2026-10-19T20:45:12.123Z",
    "level": "INFO",
    "event": "DATA_EXPORT_PDF",
    "user": 7,
    "report": "flight_logs_2026-10-01_2026-10-31.pdf",
    "records": 12,
    "src_ip": "192.168.1.100",
    "signature": "df8a92..."
}
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date

from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import login_required
from sqlalchemy import Date, Integer, Text, Time, bindparam, column, text

from errors import AggregationError, ReportError
from extensions import db
from identity import current_identity
from pdf_report import render_flight_log_pdf
from validators import parse_report_range

reports_bp = Blueprint('reports', __name__)
app_logger = logging.getLogger("application")
security_logger = logging.getLogger("security")
error_logger = logging.getLogger("error")

REPORT_SQL = text("""
                  SELECT f.id,
                         f.fly_date,
                         f.start_time,
                         f.end_time,
                         f.actual_time_minutes,
                         f.start_location,
                         f.end_location,
                         f.purpose,
                         f.flight_form,
                         f.copilot_name,
                         f.flight_abnormal,
                         f.aftercheck,
                         d.nickname AS drone_nickname,
                         d.model    AS drone_model,
                         p.name     AS pilot_name
                  FROM flight_logs f
                           JOIN drones d ON d.id = f.drone_id
                           JOIN pilots p ON p.id = f.pilot_id
                  WHERE f.pilot_id = :pid
                    AND f.fly_date BETWEEN :date_start AND :date_end
                  ORDER BY f.fly_date ASC, f.start_time ASC NULLS LAST, f.id ASC
                  """).bindparams(
    bindparam('date_start', type_=Date),
    bindparam('date_end', type_=Date),
).columns(
    column('id', Integer),
    column('fly_date', Date),
    column('start_time', Time),
    column('end_time', Time),
    column('actual_time_minutes', Integer),
    column('start_location', Text),
    column('end_location', Text),
    column('purpose', Text),
    column('flight_form', Text),
    column('copilot_name', Text),
    column('flight_abnormal', Text),
    column('aftercheck', Text),
    column('drone_nickname', Text),
    column('drone_model', Text),
    column('pilot_name', Text),
)

#: Zapytania pulpitu - niezależne od siebie, wykonywane równolegle
DASHBOARD_QUERIES = {
    'monthly_logs': text("""
                         SELECT COUNT(*)
                         FROM flight_logs
                         WHERE pilot_id = :pid
                           AND fly_date >= :month_start
                         """).bindparams(bindparam('month_start', type_=Date)),
    'total_logs': text("SELECT COUNT(*) FROM flight_logs WHERE pilot_id = :pid"),
    'total_minutes': text("""
                          SELECT p.initial_flight_minutes +
                                 COALESCE((SELECT SUM(f.actual_time_minutes)
                                           FROM flight_logs f
                                           WHERE f.pilot_id = p.id), 0)
                          FROM pilots p
                          WHERE p.id = :pid
                          """),
    'flight_areas': text("""
                         SELECT COUNT(DISTINCT start_location)
                         FROM flight_logs
                         WHERE pilot_id = :pid
                           AND start_location IS NOT NULL
                         """),
}


def fetch_report_rows(pilot_id, date_start, date_end):
    """Wpisy pilota z zakresu dat, posortowane deterministycznie (data, godzina startu, ID)."""
    return db.session.execute(REPORT_SQL, {
        'pid': pilot_id,
        'date_start': date_start,
        'date_end': date_end
    }).fetchall()


@reports_bp.route('/flight_logs/pdf', methods=['GET'])
@login_required
def export_pdf():
    """
        Eksport dziennika lotów do PDF (``?start=YYYY-MM-DD&end=YYYY-MM-DD``).

        **Gwarancja kompletności:**

        Dokument jest budowany w całości w pamięci przed wysłaniem nagłówków.
        Błąd zapytania lub renderowania kończy się ogólnym komunikatem 500
        (szczegóły wyłącznie w ``error.log``) - klient nigdy nie otrzyma uciętego pliku.

        Returns:
            Response: ``application/pdf`` z ``Content-Disposition: inline``.
    """
    identity = current_identity()
    date_start, date_end = parse_report_range(request.args.get('start'), request.args.get('end'))
    filename = f"flight_logs_{date_start.isoformat()}_{date_end.isoformat()}.pdf"

    try:
        rows = fetch_report_rows(identity.pilot_id, date_start, date_end)
        content = render_flight_log_pdf(rows, date_start, date_end,
                                        font_path=current_app.config['REPORT_FONT_PATH'])
    except Exception as e:
        db.session.rollback()
        error_logger.error(f"PDF_GENERATION_FAILED: {str(e)}", exc_info=True, extra={
            'user': identity.pilot_id,
            'report': filename
        })
        raise ReportError()

    security_logger.info("EXPORT_FLIGHT_LOG_PDF", extra={
        'event': 'DATA_EXPORT_PDF',
        'user': identity.pilot_id,
        'report': filename,
        'records': len(rows),
        'src_ip': request.remote_addr
    })
    return Response(
        content,
        mimetype="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'}
    )


def _run_scalar(engine, sql, params):
    """Jedno zapytanie na osobnym połączeniu z puli (wykonywane w wątku roboczym)."""
    with engine.connect() as conn:
        return conn.execute(sql, params).scalar()


def collect_dashboard_stats(engine, pilot_id, today=None):
    """
        Agreguje statystyki pulpitu pilota.

        Cztery zapytania nie zależą od siebie, więc są wysyłane równolegle
        (każde na własnym połączeniu z puli), a wynik jest składany dopiero
        po zakończeniu wszystkich. Wywołujący nie może w tym czasie trzymać
        połączenia z puli - żądanie potrzebuje wtedy najwyżej czterech.

        Args:
            engine (sqlalchemy.engine.Engine): Silnik bazy (pula połączeń).
            pilot_id (int): ID działającego pilota.
            today (datetime.date | None): Data odniesienia dla licznika miesięcznego.

        Returns:
            dict: ``monthly_logs``, ``total_logs``, ``total_minutes``, ``flight_areas``.
    """
    today = today or date.today()
    params = {'pid': pilot_id, 'month_start': today.replace(day=1)}

    with ThreadPoolExecutor(max_workers=len(DASHBOARD_QUERIES)) as executor:
        futures = {key: executor.submit(_run_scalar, engine, sql, params)
                   for key, sql in DASHBOARD_QUERIES.items()}
        results = {key: future.result() for key, future in futures.items()}

    return {key: int(value or 0) for key, value in results.items()}


@reports_bp.route('/dashboard-stats', methods=['GET'])
@login_required
def dashboard_stats():
    """
        Pulpit statystyk pilota.

        - ``monthly_logs``: loty od pierwszego dnia bieżącego miesiąca,
        - ``total_logs``: wszystkie loty,
        - ``total_minutes``: nalot sprzed aplikacji + suma minut z dziennika,
        - ``flight_areas``: liczba różnych miejsc startu.

        Pilot bez wpisów otrzymuje zera (nie ``null``).
    """
    identity = current_identity()
    # Połączenie sesji żądania (user_loader) wraca do puli przed równoległymi zapytaniami
    db.session.close()
    try:
        stats = collect_dashboard_stats(db.engine, identity.pilot_id)
    except Exception as e:
        error_logger.error(f"DASHBOARD_AGGREGATION_FAILED: {str(e)}", exc_info=True, extra={
            'user': identity.pilot_id
        })
        raise AggregationError()

    app_logger.info("ACCESS_DASHBOARD", extra={
        'event': 'ANALYTICS_VIEW',
        'user': identity.pilot_id,
        'src_ip': request.remote_addr
    })
    return jsonify(stats)
