"""Game domain services: words, sessions, scoring and filler players.

This package contains the game logic that socket handlers and HTTP routes
import, keeping transport concerns separated from core game mechanics.
"""

from .errors import (
    EmptyWordBankError,
    FillerGenerationFailed,
    GameError,
    InvalidAnswerError,
    PlayerNotFoundError,
    RoundInProgressError,
    SessionNotFoundError,
    WordsExhaustedError,
)
from .filler import FillerAgent, OpenAIAnswerGenerator
from .scoring import RoundCoordinator, score_answers
from .session import JoinResult, Session, SessionRegistry, room_for
from .words import WordBank
