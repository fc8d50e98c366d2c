"""
Konfiguracja systemu logowania strukturyzowanego (JSON).

Ten moduł implementuje mechanizm 'Log Chaining', który tworzy kryptograficzny
łańcuch dowodowy dla wszystkich logów systemowych. Wykorzystuje HMAC-SHA256
do zapewnienia nienaruszalności (Integrity) wpisów dziennika lotów i zdarzeń
uwierzytelniania.

Zastosowane standardy:
- Format: JSON (łatwa integracja z SIEM).
- Kryptografia: HMAC-SHA256 z soleniem poprzednim podpisem.
- Separacja: Podział na kanały access, application, security, error.
"""

import hashlib
import hmac
import json
import logging
import os
import threading
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger

GENESIS_HASH = "0" * 64
CHANNELS = ("access", "application", "security", "error")


def compute_signature(secret, prev_hash, timestamp, level, message):
    """HMAC-SHA256 nad poprzednim podpisem i treścią bieżącego wpisu."""
    payload = f"{prev_hash}|{timestamp}|{level}|{message}"
    return hmac.new(secret, msg=payload.encode('utf-8'), digestmod=hashlib.sha256).hexdigest()


class ChainedJsonFormatter(jsonlogger.JsonFormatter):
    """
        Formatter JSON implementujący kryptograficzne łańcuchowanie logów.

        Każdy wpis zawiera podpis (signature) wyliczony z treści bieżącego logu
        oraz podpisu poprzedniego wpisu tego samego kanału. Uniemożliwia to usunięcie
        lub zmianę linii logu bez wykrycia przerwania ciągłości łańcucha.
    """

    def __init__(self, *args, secret=b'', **kwargs):
        super().__init__(*args, **kwargs)
        self.secret = secret
        self.last_hashes = {name: GENESIS_HASH for name in CHANNELS}
        self._lock = threading.Lock()

    def add_fields(self, log_record, record, message_dict):
        """
            Wzbogaca rekord logu o metadane bezpieczeństwa i podpisy cyfrowe.

            Args:
                log_record (dict): Słownik danych logu do sformatowania.
                record (logging.LogRecord): Obiekt rekordu logu z biblioteki standardowej.
                message_dict (dict): Dodatkowe pola przekazane w parametrze 'extra'.
        """
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname

        channel = record.name if record.name in self.last_hashes else "error"
        with self._lock:
            prev_hash = self.last_hashes[channel]
            new_hash = compute_signature(self.secret, prev_hash, log_record['timestamp'],
                                         log_record['level'], log_record.get('message', ''))
            self.last_hashes[channel] = new_hash

        log_record['prev_signature'] = prev_hash
        log_record['signature'] = new_hash


def setup_logging(log_dir="logs", secret=None, level=logging.INFO):
    """
        Inicjalizuje hierarchię loggerów i konfiguruje handlery plików.

        Tworzy dedykowane pliki dla różnych kanałów:
        - access.log: Ruch sieciowy (jedna linia na żądanie HTTP).
        - application.log: Logika biznesowa (drony, dziennik lotów, obsługa).
        - security.log: Zdarzenia uwierzytelniania i autoryzacji.
        - error.log: Błędy bazy danych, generowania PDF i awarie krytyczne.

        Wywołanie ponowne (np. druga instancja aplikacji w testach) podmienia
        poprzednie handlery zamiast je dublować.
    """
    if secret is None:
        secret = os.getenv('LOG_SECRET_KEY', '')
    if isinstance(secret, str):
        secret = secret.encode()

    os.makedirs(log_dir, exist_ok=True)

    formatter = ChainedJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s', secret=secret)

    def create_handler(filename, handler_level):
        """Pomocnicza funkcja do tworzenia FileHandlera z formatterem."""
        handler = logging.FileHandler(os.path.join(log_dir, filename), encoding='utf-8')
        handler.setFormatter(formatter)
        handler.setLevel(handler_level)
        handler.set_name(f"chained:{filename}")
        return handler

    handlers = {channel: create_handler(f"{channel}.log", level) for channel in CHANNELS}
    handlers["error"].setLevel(logging.ERROR)

    for channel, handler in handlers.items():
        logger = logging.getLogger(channel)
        _drop_chained_handlers(logger)
        logger.setLevel(level)
        logger.addHandler(handler)
        logger.propagate = False

    # Błędy spoza kanałów (biblioteki) trafiają do tego samego łańcucha error.log
    root_logger = logging.getLogger()
    _drop_chained_handlers(root_logger)
    root_logger.setLevel(level)
    root_logger.addHandler(handlers["error"])

    return formatter


def _drop_chained_handlers(logger):
    for handler in list(logger.handlers):
        if (handler.get_name() or '').startswith('chained:'):
            logger.removeHandler(handler)
            handler.close()


def verify_log_file(file_path, secret):
    """
        Weryfikuje integralność łańcucha logów w podanym pliku JSON.

        Args:
            file_path (str): Ścieżka do pliku logu (jeden kanał).
            secret (bytes | str): Klucz HMAC użyty przy zapisie.

        Returns:
            list: Lista problemów ``(numer_linii, opis)``; pusta oznacza nienaruszony łańcuch.
    """
    if isinstance(secret, str):
        secret = secret.encode()

    problems = []
    expected_prev_hash = GENESIS_HASH

    with open(file_path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, start=1):
            try:
                log_record = json.loads(line.strip())
            except json.JSONDecodeError:
                problems.append((line_number, "INVALID_JSON"))
                continue

            if log_record.get('prev_signature') != expected_prev_hash:
                problems.append((line_number, "BROKEN_CHAIN"))

            computed_hash = compute_signature(secret, log_record.get('prev_signature'),
                                              log_record.get('timestamp'), log_record.get('level'),
                                              log_record.get('message', ''))
            if log_record.get('signature') != computed_hash:
                problems.append((line_number, "TAMPERED_RECORD"))

            expected_prev_hash = log_record.get('signature')

    return problems
