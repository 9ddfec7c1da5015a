import os

class Config:
    # cheia pentru semnarea cookie-urilor de sesiune
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-money-tracker-change-me'

    # calea catre baza de date SQLite
    BASE_DIR = os.path.abspath(os.path.dirname(__file__))
    SQLALCHEMY_DATABASE_URI = (
        os.environ.get('DATABASE_URL') or
        'sqlite:///' + os.path.join(BASE_DIR, 'money_tracker.db')
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # API-ul JSON foloseste cookie-ul de sesiune, formularele nu poarta token CSRF
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_HTTPONLY = True

    # Configurare pentru logare
    LOG_TO_STDOUT = os.environ.get('LOG_TO_STDOUT')

    # Configurare pentru deployment
    ENVIRONMENT = os.environ.get('FLASK_ENV') or 'development'
    DEBUG = ENVIRONMENT == 'development'

    # Configurații Flask-Limiter
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_STRATEGY = 'fixed-window'
    RATELIMIT_DEFAULT = '200 per day;50 per hour'

    # Configurare pentru ciclurile lunare
    DEFAULT_CURRENCY = os.environ.get('DEFAULT_CURRENCY') or 'EUR'
    # de cate ori se reincearca recalcularea totalurilor la un conflict de versiune
    LEDGER_RECOMPUTE_RETRIES = int(os.environ.get('LEDGER_RECOMPUTE_RETRIES') or 3)
    # permite modificarea cheltuielilor dintr-un ciclu inchis (totalurile raman inghetate)
    ALLOW_CLOSED_CYCLE_EDITS = os.environ.get('ALLOW_CLOSED_CYCLE_EDITS', '').lower() in ('1', 'true', 'yes')

    # Configurare pentru statistici
    EVOLUTION_DEFAULT_MONTHS = 6
    RECENT_EXPENSES_LIMIT = 5
    COMPARISON_THRESHOLD = 5
