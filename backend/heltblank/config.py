import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Origins allowed to open Socket.IO connections and call the HTTP API
    CORS_ORIGINS = [
        o.strip() for o in os.environ.get(
            'CORS_ORIGINS', 'https://noerpol.github.io,http://localhost:3000'
        ).split(',') if o.strip()
    ]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    PORT = int(os.environ.get('PORT', '4000'))
    # Prompt word source: JSON list, or JSON object of category -> list
    WORDS_PATH = os.environ.get('WORDS_PATH') or os.path.join(BASE_DIR, 'data', 'words.json')
    # Cumulative score that ends the game
    WIN_SCORE = int(os.environ.get('WIN_SCORE', '30'))
    # Keep a player's score when the same name joins again with a new connection
    REJOIN_BY_NAME = _env_flag('REJOIN_BY_NAME', True)
    # Filler players top the table up to MIN_PLAYERS
    MIN_PLAYERS = int(os.environ.get('MIN_PLAYERS', '3'))
    FILLER_ENABLED = _env_flag('FILLER_ENABLED', False)
    FILLER_MODEL = os.environ.get('FILLER_MODEL', 'gpt-4o-mini')
    FILLER_TIMEOUT_SEC = float(os.environ.get('FILLER_TIMEOUT_SEC', '8'))
    # Retries multiply the timeout; 0 means one attempt per filler answer
    FILLER_MAX_RETRIES = int(os.environ.get('FILLER_MAX_RETRIES', '0'))
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
    OPENAI_BASE_URL = os.environ.get('OPENAI_BASE_URL')
