import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///planning_poker.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Origins allowed for both HTTP and Socket.IO (comma-separated)
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:5173,http://127.0.0.1:5173,http://localhost:5174,http://127.0.0.1:5174',
    ).split(',') if o.strip()]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Disconnected users are evicted from their room after this many seconds
    DISCONNECT_GRACE_SEC = float(os.environ.get('DISCONNECT_GRACE_SEC', '30'))
    # Countdown timers (seconds)
    TIMER_TICK_SEC = float(os.environ.get('TIMER_TICK_SEC', '1'))
    DEFAULT_TIMER_DURATION_SEC = int(os.environ.get('DEFAULT_TIMER_DURATION_SEC', '60'))
    # Finalized stories returned with a room snapshot
    STORY_HISTORY_LIMIT = int(os.environ.get('STORY_HISTORY_LIMIT', '20'))
    DEFAULT_CARD_DECK = os.environ.get('DEFAULT_CARD_DECK', 'fibonacci')
