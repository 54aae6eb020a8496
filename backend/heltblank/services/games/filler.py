"""Filler players: synthetic participants that keep a table playable.

The agent tops a session up to ``min_players`` and asks a text generator for
each filler's answer whenever a prompt is issued. Generation runs in a
background task without the session lock; the result goes back through
``Session.apply_filler_answer``, which drops it if the round has moved on.
"""

import logging
import re
import uuid
from typing import Any, Callable, Dict, List, Optional

import openai
from openai import OpenAI

from heltblank.models import Player
from .errors import FillerGenerationFailed
from .words import WordBank

logger = logging.getLogger(__name__)

FILLER_NAMES = (
    'Robot Rasmus',
    'Robot Ronja',
    'Robot Rolf',
    'Robot Rikke',
    'Robot Rune',
    'Robot Rita',
)

SYSTEM_PROMPT = (
    "You are playing a Danish word-association party game. Players score when "
    "their answer matches other players' answers. Reply with exactly one "
    "common Danish word that most people would associate with the prompt."
)

_EDGE_PUNCTUATION = re.compile(r"^[\W_]+|[\W_]+$", re.UNICODE)


def first_token(text: Optional[str]) -> str:
    """First whitespace-delimited token, stripped of surrounding punctuation."""
    parts = (text or '').split()
    if not parts:
        return ''
    return _EDGE_PUNCTUATION.sub('', parts[0])


class OpenAIAnswerGenerator:
    """Asks an OpenAI-compatible chat model for a one-word association."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = 'gpt-4o-mini',
        base_url: Optional[str] = None,
        timeout_s: float = 8.0,
        temperature: float = 0.7,
        max_retries: int = 0,
    ):
        self._model = model
        self._timeout_s = timeout_s
        self._temperature = temperature
        self._client = None
        if api_key:
            # The SDK retries twice by default, which would stretch the timeout
            client_kwargs: Dict[str, Any] = {'api_key': api_key, 'max_retries': max_retries}
            if base_url:
                client_kwargs['base_url'] = base_url
            self._client = OpenAI(**client_kwargs)

    @property
    def configured(self) -> bool:
        return self._client is not None

    def generate(self, prompt: str) -> str:
        if self._client is None:
            raise FillerGenerationFailed('OPENAI_API_KEY is not configured')
        try:
            completion = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {'role': 'system', 'content': SYSTEM_PROMPT},
                    {'role': 'user', 'content': f"Prompt: {prompt}"},
                ],
                max_tokens=10,
                temperature=self._temperature,
                timeout=self._timeout_s,
            )
        except openai.APITimeoutError as e:
            raise FillerGenerationFailed(f"timeout: {e}") from e
        except openai.APIError as e:
            raise FillerGenerationFailed(f"api_error: {e}") from e
        if not completion.choices:
            raise FillerGenerationFailed('API returned no choices')
        return completion.choices[0].message.content or ''


class FillerAgent:
    def __init__(
        self,
        generator,
        word_bank: WordBank,
        min_players: int = 3,
        spawn: Optional[Callable[..., Any]] = None,
    ):
        self.generator = generator
        self.word_bank = word_bank
        self.min_players = int(min_players)
        # spawn(fn, *args) starts fn in the background; None runs it inline
        self._spawn = spawn

    def rebalance(self, session) -> List[Player]:
        """Add or remove fillers so humans plus fillers reach ``min_players``.

        Returns the fillers that were added. Called with the session lock held.
        """
        wanted = max(0, self.min_players - len(session.humans()))
        fillers = session.fillers()
        added: List[Player] = []
        while len(fillers) + len(added) < wanted:
            player = Player(
                id=f"filler-{uuid.uuid4().hex[:8]}",
                name=self._next_name(session),
                is_filler=True,
            )
            session.add_filler(player)
            added.append(player)
        surplus = len(fillers) - wanted
        if surplus > 0:
            # Unanswered fillers go first so finished answers are kept
            for player in sorted(fillers, key=lambda p: p.has_answered)[:surplus]:
                session.remove_filler(player.id)
        if added and session.prompt:
            self.dispatch(session, added)
        return added

    def on_new_prompt(self, session) -> None:
        fillers = session.fillers()
        if fillers:
            self.dispatch(session, fillers)

    def dispatch(self, session, fillers: List[Player]) -> None:
        prompt = session.prompt
        round_no = session.round_no
        for player in fillers:
            if self._spawn is None:
                self._answer(session, player.id, round_no, prompt)
            else:
                self._spawn(self._answer, session, player.id, round_no, prompt)

    def answer_for(self, prompt: str) -> str:
        """Generated one-word answer, or a random bank word on failure."""
        try:
            answer = first_token(self.generator.generate(prompt))
            if not answer:
                raise FillerGenerationFailed('empty reply')
            return answer
        except FillerGenerationFailed as exc:
            logger.warning(f"[filler-fail] prompt={prompt!r} reason={exc.message}")
        except Exception:
            logger.exception(f"[filler-fail] prompt={prompt!r} unexpected generator error")
        return self.word_bank.random_word()

    def _answer(self, session, player_id: str, round_no: int, prompt: str) -> None:
        answer = self.answer_for(prompt)
        session.apply_filler_answer(player_id, round_no, answer)

    def _next_name(self, session) -> str:
        taken = {p.name for p in session.players.values()}
        for name in FILLER_NAMES:
            if name not in taken:
                return name
        n = len(FILLER_NAMES) + 1
        while f"Robot {n}" in taken:
            n += 1
        return f"Robot {n}"
