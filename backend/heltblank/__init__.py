from flask import Flask, current_app
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from heltblank.config import Config

socketio = SocketIO(async_mode=None)

REGISTRY_KEY = 'heltblank.registry'


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or '*'
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from heltblank.services.games import (
        FillerAgent,
        OpenAIAnswerGenerator,
        RoundCoordinator,
        SessionRegistry,
        WordBank,
    )
    from heltblank.socketio_events import broadcast, register_socketio_handlers

    # An empty word source is fatal: let EmptyWordBankError propagate
    word_bank = WordBank.from_json(flask_app.config['WORDS_PATH'])
    flask_app.logger.info(f"[words] loaded {len(word_bank)} prompts from {flask_app.config['WORDS_PATH']}")

    filler_agent = None
    if flask_app.config.get('FILLER_ENABLED'):
        generator = OpenAIAnswerGenerator(
            api_key=flask_app.config.get('OPENAI_API_KEY'),
            model=flask_app.config.get('FILLER_MODEL', 'gpt-4o-mini'),
            base_url=flask_app.config.get('OPENAI_BASE_URL'),
            timeout_s=float(flask_app.config.get('FILLER_TIMEOUT_SEC', 8)),
            max_retries=int(flask_app.config.get('FILLER_MAX_RETRIES', 0)),
        )
        if not generator.configured:
            flask_app.logger.warning('[filler] OPENAI_API_KEY missing; fillers will answer with random words')
        # Run generation inline in tests for deterministic control flow
        spawn = None if flask_app.config.get('TESTING') else socketio.start_background_task
        filler_agent = FillerAgent(
            generator,
            word_bank,
            min_players=int(flask_app.config.get('MIN_PLAYERS', 3)),
            spawn=spawn,
        )

    flask_app.extensions[REGISTRY_KEY] = SessionRegistry(
        word_bank,
        RoundCoordinator(win_score=int(flask_app.config.get('WIN_SCORE', 30))),
        emit=broadcast,
        filler_agent=filler_agent,
        rejoin_by_name=bool(flask_app.config.get('REJOIN_BY_NAME', True)),
    )

    # Import and register blueprints here
    from heltblank.main import main
    flask_app.register_blueprint(main)

    from heltblank.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    register_socketio_handlers()

    @click.command('words')
    @click.option('--sample', default=0, help='Print this many random prompts.')
    def words_command(sample):
        """Summarize the loaded prompt word bank."""
        for category, words in word_bank.categories.items():
            click.echo(f"{category}: {len(words)}")
        click.echo(f"total: {len(word_bank)}")
        for _ in range(sample):
            click.echo(word_bank.random_word())

    flask_app.cli.add_command(words_command)

    return flask_app


def get_registry(flask_app=None):
    """The SessionRegistry owned by ``flask_app`` (default: the current app)."""
    if flask_app is None:
        flask_app = current_app
    return flask_app.extensions[REGISTRY_KEY]
