"""
Narzędzie CLI do weryfikacji łańcucha podpisów w plikach logów.

Użycie::

    python verify_audit.py              # sprawdza logs/security.log, application.log, error.log
    python verify_audit.py logs/access.log
"""

import os
import sys

from dotenv import load_dotenv

from logger_config import verify_log_file

DEFAULT_FILES = ["security.log", "application.log", "error.log", "access.log"]


def check(file_path, secret):
    """Wypisuje wynik weryfikacji jednego pliku; zwraca True gdy łańcuch jest nienaruszony."""
    if not os.path.exists(file_path):
        print(f"BŁĄD: Plik {file_path} nie istnieje.")
        return False

    print(f"--- Weryfikacja pliku: {file_path} ---")
    problems = verify_log_file(file_path, secret)
    for line_number, problem in problems:
        print(f"[LINIA {line_number}] {problem}")

    if problems:
        print(f"ALARM: Wykryto manipulację w {file_path}!")
        return False
    print("SUKCES: Integralność pliku potwierdzona.")
    return True


def main(argv):
    load_dotenv()
    secret = os.getenv('LOG_SECRET_KEY')
    if not secret:
        print("BŁĄD: Brak LOG_SECRET_KEY w środowisku!")
        return 2

    if argv:
        files = argv
    else:
        log_dir = os.getenv('LOG_DIR', 'logs')
        files = [os.path.join(log_dir, name) for name in DEFAULT_FILES
                 if os.path.exists(os.path.join(log_dir, name))]

    results = [check(path, secret) for path in files]
    return 0 if all(results) else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
