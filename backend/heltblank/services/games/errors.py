"""Errors raised by the game services.

Socket handlers and HTTP routes catch ``GameError`` subclasses and turn them
into ``error`` events or 4xx responses. ``EmptyWordBankError`` is the only one
that should stop the server, and it is raised while the app is being built.
"""


class GameError(Exception):
    """Base class for game-domain errors."""

    message = 'Game error'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


class SessionNotFoundError(GameError):
    message = 'Game not found'


class PlayerNotFoundError(GameError):
    message = 'Player is not in this game'


class RoundInProgressError(GameError):
    message = 'Please wait for the next round'


class InvalidAnswerError(GameError):
    message = 'Answer cannot be empty'


class WordsExhaustedError(GameError):
    """Every word is excluded; the caller resets its used-word set."""

    message = 'All prompt words have been used'


class FillerGenerationFailed(GameError):
    message = 'Filler answer generation failed'


class EmptyWordBankError(GameError):
    message = 'The prompt word source is empty'
