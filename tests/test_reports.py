import io
import re
from collections import namedtuple
from datetime import date, time

import pytest
from pypdf import PdfReader
from reportlab.pdfbase import pdfmetrics

import pdf_report
from conftest import REPORT_FONT, create_flight, create_pilot, dispose_app, login, make_app
from errors import ConfigError
from extensions import db
from pdf_report import (BODY_SIZE, USABLE_WIDTH, build_record_lines, build_report_blocks, register_report_font,
                        render_flight_log_pdf, resolve_report_font, wrap_block, wrap_line)
from routes.reports import collect_dashboard_stats, fetch_report_rows

ReportRow = namedtuple('ReportRow', [
    'id', 'fly_date', 'start_time', 'end_time', 'actual_time_minutes', 'start_location', 'end_location',
    'purpose', 'flight_form', 'copilot_name', 'flight_abnormal', 'aftercheck', 'drone_nickname',
    'drone_model', 'pilot_name',
])


def make_row(row_id, fly_date, **fields):
    values = dict.fromkeys(ReportRow._fields)
    values.update(id=row_id, fly_date=fly_date, start_time=time(9, 0), end_time=time(9, 30),
                  actual_time_minutes=30, drone_model='Mavic 3', pilot_name='山田太郎')
    values.update(fields)
    return ReportRow(**values)


def page_count(pdf_bytes):
    return len(re.findall(rb'/Type /Page(?!s)', pdf_bytes))


class TestReportRows:

    def test_rows_ordered_by_date_then_start_time(self, app, pilot_id, drone_id, other_pilot_id,
                                                  other_drone_id):
        create_flight(app, pilot_id, drone_id, date(2024, 1, 20), start='08:00', end='08:30')
        create_flight(app, pilot_id, drone_id, date(2024, 1, 5), start='15:00', end='15:30')
        create_flight(app, pilot_id, drone_id, date(2024, 1, 5), start='07:00', end='07:30')
        create_flight(app, pilot_id, drone_id, date(2024, 1, 5), start=None, end=None)
        create_flight(app, pilot_id, drone_id, date(2024, 2, 1))
        create_flight(app, other_pilot_id, other_drone_id, date(2024, 1, 10))

        with app.app_context():
            rows = fetch_report_rows(pilot_id, date(2024, 1, 1), date(2024, 1, 31))

        assert [(r.fly_date, r.start_time) for r in rows] == [
            (date(2024, 1, 5), time(7, 0)),
            (date(2024, 1, 5), time(15, 0)),
            (date(2024, 1, 5), None),
            (date(2024, 1, 20), time(8, 0)),
        ]
        assert all(r.pilot_name == '山田太郎' for r in rows)

    def test_blocks_start_with_date_marker(self):
        rows = [make_row(1, date(2024, 1, 5)), make_row(2, date(2024, 1, 20), copilot_name='補助者B',
                                                        flight_abnormal='GPS喪失', aftercheck='良好')]
        blocks = build_report_blocks(rows)

        markers = [block[0][:10] for block in blocks]
        assert markers == ['2024-01-05', '2024-01-20']
        assert len(blocks[0]) == 2
        assert any('補助者B' in line for line in blocks[1])
        assert any('GPS喪失' in line for line in blocks[1])
        assert any('良好' in line for line in blocks[1])


def render(rows, start=date(2024, 1, 1), end=date(2024, 1, 31)):
    return render_flight_log_pdf(rows, start, end, font_path=REPORT_FONT)


def pdf_text(pdf_bytes):
    """Tekst wszystkich stron bez białych znaków."""
    reader = PdfReader(io.BytesIO(pdf_bytes))
    return ''.join(''.join(page.extract_text().split()) for page in reader.pages)


class TestRenderPdf:

    def test_single_page_document(self):
        content = render([make_row(1, date(2024, 1, 5))])
        assert content.startswith(b'%PDF')
        assert page_count(content) == 1

    def test_font_is_embedded(self):
        assert b'/FontFile2' in render([make_row(1, date(2024, 1, 5))])
        assert b'/FontFile2' in render([])

    def test_date_markers_in_document_order(self):
        days = [date(2024, 1, 3), date(2024, 1, 9), date(2024, 1, 17), date(2024, 1, 28)]
        rows = [make_row(i, day) for i, day in enumerate(days)]
        text = pdf_text(render(rows))

        positions = [text.index(day.isoformat()) for day in days]
        assert positions == sorted(positions)
        assert len(re.findall(r'2024-01-\d{2}(?=\d{2}:\d{2})', text)) == len(days)

    def test_empty_range_states_no_records(self):
        content = render([])
        assert page_count(content) == 1
        assert '該当する飛行記録はありません。' in pdf_text(content)

    def test_overflow_starts_new_pages(self):
        rows = [make_row(i, date(2024, 1, 1 + i % 28)) for i in range(80)]
        content = render(rows)
        assert page_count(content) >= 3
        assert pdf_text(content).count('2024-01-') >= 80

    def test_missing_font_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            render_flight_log_pdf([], date(2024, 1, 1), date(2024, 1, 31), font_path=str(tmp_path / 'none.ttf'))


class TestLineWrapping:

    def test_long_text_fits_page_width(self):
        abnormality = 'バッテリー残量警告が表示されたため、予定を切り上げて離陸地点へ帰還し着陸した。' * 4
        font_name = register_report_font(REPORT_FONT)
        lines = wrap_block(build_record_lines(make_row(1, date(2024, 1, 5), flight_abnormal=abnormality)),
                           font_name)

        assert all(pdfmetrics.stringWidth(line, font_name, BODY_SIZE) <= USABLE_WIDTH for line in lines)
        assert lines[0].startswith('2024-01-05')
        assert abnormality in ''.join(line.strip() for line in lines)

    def test_short_line_untouched(self):
        font_name = register_report_font(REPORT_FONT)
        assert wrap_line('短い行', font_name) == ['短い行']

    def test_wrapped_block_moves_to_next_page(self):
        abnormality = '機体振動あり。' * 60
        rows = [make_row(i, date(2024, 1, 5), flight_abnormal=abnormality) for i in range(12)]
        content = render(rows)

        assert page_count(content) >= 2
        assert pdf_text(content).count('機体振動あり。') == 12 * 60


class TestReportFontConfig:

    def test_missing_configured_font(self, tmp_path):
        with pytest.raises(ConfigError):
            resolve_report_font(str(tmp_path / 'missing.ttf'))

    def test_no_font_available(self, monkeypatch):
        monkeypatch.setattr(pdf_report, 'find_cjk_font', lambda: None)
        with pytest.raises(ConfigError):
            resolve_report_font(None)

    def test_app_refuses_to_start_without_font(self, tmp_path):
        with pytest.raises(ConfigError):
            make_app(tmp_path, REPORT_FONT_PATH=str(tmp_path / 'missing.ttf'))


class TestPdfEndpoint:

    def test_headers(self, app, client, pilot_id, drone_id):
        create_flight(app, pilot_id, drone_id, date(2024, 1, 5))

        response = client.get('/api/flight_logs/pdf?start=2024-01-01&end=2024-01-31')
        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.headers['Content-Disposition'] == \
            'inline; filename="flight_logs_2024-01-01_2024-01-31.pdf"'
        assert response.data.startswith(b'%PDF')

    def test_empty_range_still_renders(self, client):
        response = client.get('/api/flight_logs/pdf?start=2030-01-01&end=2030-01-31')
        assert response.status_code == 200
        assert '該当する飛行記録はありません。' in pdf_text(response.data)

    def test_invalid_ranges(self, client):
        for query in ('start=2024-01-31&end=2024-01-01', 'start=2024-13-01&end=2024-12-31',
                      'start=2024-01-01', 'start=2024/01/01&end=2024-01-31'):
            response = client.get(f'/api/flight_logs/pdf?{query}')
            assert response.status_code == 400, query
            assert response.mimetype == 'application/json'

    def test_render_failure_is_generic(self, app, client, tmp_path):
        app.config['REPORT_FONT_PATH'] = str(tmp_path / 'missing.ttf')
        response = client.get('/api/flight_logs/pdf?start=2024-01-01&end=2024-01-31')
        assert response.status_code == 500
        assert response.get_json() == {'error': 'PDFの生成に失敗しました。'}


class TestDashboard:

    def test_zeros_without_logs(self, app, client, other_pilot_id):
        response = client.get('/api/dashboard-stats')
        assert response.status_code == 200
        assert response.get_json() == {'monthly_logs': 0, 'total_logs': 0, 'total_minutes': 480, 'flight_areas': 0}

        with app.app_context():
            assert collect_dashboard_stats(db.engine, other_pilot_id) == {
                'monthly_logs': 0, 'total_logs': 0, 'total_minutes': 0, 'flight_areas': 0}

    def test_aggregates(self, app, pilot_id, drone_id, other_pilot_id, other_drone_id):
        create_flight(app, pilot_id, drone_id, date(2024, 6, 3), start_location='河川敷', actual_time_minutes=30)
        create_flight(app, pilot_id, drone_id, date(2024, 6, 20), start_location='河川敷', actual_time_minutes=45)
        create_flight(app, pilot_id, drone_id, date(2024, 5, 31), start_location='公園', actual_time_minutes=15)
        create_flight(app, pilot_id, drone_id, date(2024, 5, 1), actual_time_minutes=10)
        create_flight(app, other_pilot_id, other_drone_id, date(2024, 6, 4), start_location='海岸')

        with app.app_context():
            stats = collect_dashboard_stats(db.engine, pilot_id, today=date(2024, 6, 25))

        assert stats == {
            'monthly_logs': 2,
            'total_logs': 4,
            'total_minutes': 480 + 100,
            'flight_areas': 2,
        }

    def test_endpoint_counts_current_month(self, app, client, pilot_id, drone_id):
        create_flight(app, pilot_id, drone_id, date.today(), start_location='河川敷')
        data = client.get('/api/dashboard-stats').get_json()
        assert data['monthly_logs'] == 1
        assert data['total_logs'] == 1
        assert data['total_minutes'] == 510

    def test_endpoint_fits_pool_of_four(self, tmp_path):
        app = make_app(tmp_path, SQLALCHEMY_ENGINE_OPTIONS={'pool_size': 4, 'max_overflow': 0, 'pool_timeout': 1})
        try:
            create_pilot(app, 'pool@example.com')
            client = app.test_client()
            assert login(client, 'pool@example.com').status_code == 200

            for _ in range(3):
                response = client.get('/api/dashboard-stats')
                assert response.status_code == 200
                assert response.get_json()['total_logs'] == 0
        finally:
            dispose_app(app)
