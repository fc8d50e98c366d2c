"""
Generator raportu PDF z dziennika lotów.

Rysuje wpisy na stronach A4 za pomocą niskopoziomowego API ``reportlab.pdfgen.canvas``
(tekst umieszczany w punktach x, y). Każdy wpis to blok kilku linii; linie dłuższe
niż szerokość strony są łamane. Gdy blok nie zmieściłby się nad dolnym marginesem,
rozpoczynana jest nowa strona, a kursor wraca do górnego marginesu.

**Czcionka (CJK):**

Raport zawiera tekst japoński, więc standardowe czcionki PDF (Helvetica) nie wystarczą.
Plik TrueType (``REPORT_FONT_PATH`` lub pierwsza znaleziona czcionka systemowa
z ``CJK_FONT_CANDIDATES``) jest zawsze osadzany w dokumencie (subset). Brak czcionki
jest błędem konfiguracji wykrywanym przy starcie aplikacji.
"""

import io
import logging
import os

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from errors import ConfigError

app_logger = logging.getLogger("application")

REPORT_TITLE = '飛行日誌'
EMBEDDED_FONT_PREFIX = 'ReportJP'
EMPTY_MESSAGE = '該当する飛行記録はありません。'

#: Czcionki TrueType (kontury glyf) z japońskimi glifami w typowych lokalizacjach
CJK_FONT_CANDIDATES = (
    '/usr/share/fonts/opentype/ipaexfont-gothic/ipaexg.ttf',
    '/usr/share/fonts/truetype/ipaexfont-gothic/ipaexg.ttf',
    '/usr/share/fonts/opentype/ipafont-gothic/ipag.ttf',
    '/usr/share/fonts/truetype/fonts-japanese-gothic.ttf',
    '/usr/share/fonts/truetype/takao-gothic/TakaoGothic.ttf',
    '/usr/share/fonts/truetype/vlgothic/VL-Gothic-Regular.ttf',
    '/usr/share/fonts/truetype/droid/DroidSansFallbackFull.ttf',
    '/usr/share/fonts/ipa-gothic/ipag.ttf',
    '/Library/Fonts/Arial Unicode.ttf',
    'C:/Windows/Fonts/msgothic.ttc',
)

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN_LEFT = 15 * mm
MARGIN_RIGHT = 15 * mm
MARGIN_TOP = 20 * mm
MARGIN_BOTTOM = 20 * mm
USABLE_WIDTH = PAGE_WIDTH - MARGIN_LEFT - MARGIN_RIGHT
TITLE_SIZE = 16
BODY_SIZE = 9
LINE_HEIGHT = 13
BLOCK_GAP = 6
CONTINUATION_INDENT = '      '


def find_cjk_font(candidates=CJK_FONT_CANDIDATES):
    """Pierwsza istniejąca czcionka z listy kandydatów albo ``None``."""
    for path in candidates:
        if os.path.isfile(path):
            return path
    return None


def resolve_report_font(configured=None):
    """
        Ustala plik czcionki osadzanej w raporcie (wywoływane przy starcie aplikacji).

        Args:
            configured (str | None): Wartość ``REPORT_FONT_PATH``.

        Returns:
            str: Ścieżka do istniejącego pliku TrueType.

        Raises:
            ConfigError: Skonfigurowany plik nie istnieje albo nie znaleziono żadnej czcionki CJK.
    """
    if configured:
        if not os.path.isfile(configured):
            raise ConfigError(f'REPORT_FONT_PATH does not exist: {configured}')
        return configured

    found = find_cjk_font()
    if not found:
        raise ConfigError('REPORT_FONT_PATH is not set and no CJK TrueType font was found')
    app_logger.info("REPORT_FONT_DISCOVERED", extra={'event': 'REPORT_CONFIG', 'font': found})
    return found


def register_report_font(font_path):
    """
        Rejestruje (jednorazowo) czcionkę TrueType osadzaną w raporcie.

        Nazwa czcionki pochodzi od nazwy pliku, więc zmiana ``REPORT_FONT_PATH``
        nie trafi na wcześniej zarejestrowaną czcionkę.

        Args:
            font_path (str): Ścieżka do pliku .ttf / .ttc.

        Returns:
            str: Nazwa zarejestrowanej czcionki do użycia w ``setFont``.
    """
    stem = os.path.splitext(os.path.basename(font_path))[0].replace(' ', '')
    font_name = f"{EMBEDDED_FONT_PREFIX}-{stem}"
    if font_name not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(TTFont(font_name, font_path))
    return font_name


def wrap_line(text, font_name, font_size=BODY_SIZE, max_width=USABLE_WIDTH):
    """
        Łamie linię tekstu na linie fizyczne mieszczące się w ``max_width``.

        Tekst japoński nie zawiera spacji między słowami, dlatego łamanie odbywa się
        po znakach; linie kontynuacji są wcięte (``CONTINUATION_INDENT``).
    """
    if pdfmetrics.stringWidth(text, font_name, font_size) <= max_width:
        return [text]

    lines = []
    current = ''
    for char in text:
        candidate = current + char
        if current.strip() and pdfmetrics.stringWidth(candidate, font_name, font_size) > max_width:
            lines.append(current)
            current = CONTINUATION_INDENT + char
        else:
            current = candidate
    if current.strip():
        lines.append(current)
    return lines


def wrap_block(lines, font_name, font_size=BODY_SIZE):
    return [part for line in lines for part in wrap_line(line, font_name, font_size)]


def _hhmm(value):
    if not value:
        return '--:--'
    if hasattr(value, 'strftime'):
        return value.strftime('%H:%M')
    return str(value)[:5]


def _text(value):
    return value if value else '-'


def build_record_lines(row):
    """
        Zamienia jeden wiersz zapytania na linie tekstu bloku wpisu.

        Pierwsza linia zaczyna się zawsze od daty lotu (YYYY-MM-DD) - stanowi znacznik wpisu.
    """
    fly_date = row.fly_date.isoformat() if row.fly_date else '----------'
    drone_label = row.drone_nickname or row.drone_model or '-'
    lines = [
        f"{fly_date}  {_hhmm(row.start_time)}〜{_hhmm(row.end_time)}  "
        f"({row.actual_time_minutes or 0}分)  機体: {drone_label}  操縦者: {_text(row.pilot_name)}",
        f"    離陸: {_text(row.start_location)}  着陸: {_text(row.end_location)}  "
        f"目的: {_text(row.purpose)}  飛行形態: {_text(row.flight_form)}",
    ]
    if row.copilot_name:
        lines.append(f"    補助者: {row.copilot_name}")
    if row.flight_abnormal:
        lines.append(f"    不具合: {row.flight_abnormal}")
    if row.aftercheck:
        lines.append(f"    飛行後点検: {row.aftercheck}")
    return lines


def build_report_blocks(rows):
    """Bloki linii w kolejności wierszy (kolejność ustala zapytanie SQL)."""
    return [build_record_lines(row) for row in rows]


def render_flight_log_pdf(rows, date_start, date_end, font_path):
    """
        Renderuje raport dziennika lotów do bajtów PDF.

        Dokument jest w całości budowany w buforze pamięci - do klienta
        trafia wyłącznie kompletny plik.

        Args:
            rows (list): Wiersze z zapytania raportowego (posortowane).
            date_start (datetime.date): Początek zakresu.
            date_end (datetime.date): Koniec zakresu.
            font_path (str): Plik TrueType osadzany w dokumencie.

        Returns:
            bytes: Zawartość pliku PDF.
    """
    if not font_path or not os.path.exists(font_path):
        raise FileNotFoundError(font_path)
    font_name = register_report_font(font_path)

    blocks = [wrap_block(lines, font_name) for lines in build_report_blocks(rows)]

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4, pageCompression=0)
    pdf.setTitle(f"{REPORT_TITLE} {date_start.isoformat()}_{date_end.isoformat()}")

    y = PAGE_HEIGHT - MARGIN_TOP
    pdf.setFont(font_name, TITLE_SIZE)
    pdf.drawString(MARGIN_LEFT, y, REPORT_TITLE)
    y -= LINE_HEIGHT + 8

    pdf.setFont(font_name, BODY_SIZE + 1)
    pdf.drawString(MARGIN_LEFT, y,
                   f"期間: {date_start.isoformat()} 〜 {date_end.isoformat()}  ({len(blocks)}件)")
    y -= LINE_HEIGHT + BLOCK_GAP

    pdf.setFont(font_name, BODY_SIZE)
    if not blocks:
        pdf.drawString(MARGIN_LEFT, y, EMPTY_MESSAGE)

    for lines in blocks:
        if y - len(lines) * LINE_HEIGHT < MARGIN_BOTTOM and y < PAGE_HEIGHT - MARGIN_TOP:
            y = _new_page(pdf, font_name)
        for line in lines:
            # Blok dłuższy niż cała strona
            if y < MARGIN_BOTTOM:
                y = _new_page(pdf, font_name)
            pdf.drawString(MARGIN_LEFT, y, line)
            y -= LINE_HEIGHT
        y -= BLOCK_GAP

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def _new_page(pdf, font_name):
    pdf.showPage()
    pdf.setFont(font_name, BODY_SIZE)
    return PAGE_HEIGHT - MARGIN_TOP
