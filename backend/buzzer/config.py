import os


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Comma separated list of origins allowed for HTTP and Socket.IO
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            'CORS_ORIGINS',
            'http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173',
        ).split(',')
        if o.strip()
    ]
    # Round defaults (seconds)
    DEFAULT_TIME_LIMIT_SEC = int(os.environ.get('DEFAULT_TIME_LIMIT_SEC', '30'))
    DEFAULT_COUNTDOWN_SEC = int(os.environ.get('DEFAULT_COUNTDOWN_SEC', '3'))
    COUNTDOWN_TICK_SEC = float(os.environ.get('COUNTDOWN_TICK_SEC', '1'))
    # Backup sweep that force-locks rounds whose timer should already have fired
    SWEEP_INTERVAL_SEC = float(os.environ.get('SWEEP_INTERVAL_SEC', '1'))
    BACKUP_SWEEP_ENABLED = _env_bool('BACKUP_SWEEP_ENABLED', True)
    SESSION_CODE_LENGTH = int(os.environ.get('SESSION_CODE_LENGTH', '6'))
    OPEN_SESSION_QUESTION = os.environ.get('OPEN_SESSION_QUESTION', 'Open Buzzer Session')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
