import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from heltblank.models import (
    Player,
    SessionState,
    generate_game_code,
    normalize_code,
    normalize_name,
)
from .errors import (
    InvalidAnswerError,
    PlayerNotFoundError,
    RoundInProgressError,
    SessionNotFoundError,
    WordsExhaustedError,
)
from .scoring import RoundCoordinator, RoundOutcome
from .words import WordBank

logger = logging.getLogger(__name__)

ANSWER_MAX_LEN = 40

# emit(event, payload, to) where ``to`` is a room name or a connection id
Emitter = Callable[[str, Any, str], None]


def room_for(code: str) -> str:
    return f"game:{code}"


@dataclass
class JoinResult:
    prompt: str
    players: Dict[str, Dict[str, Any]]
    round_no: int
    score: int = 0


class Session:
    """One game, keyed by its join code.

    Every mutation happens under ``self._lock``, including the round
    resolution a submit or leave can cascade into. The lock is reentrant so
    the filler agent can call back into the session while it rebalances.
    """

    def __init__(
        self,
        code: str,
        word_bank: WordBank,
        coordinator: RoundCoordinator,
        emit: Emitter,
        filler_agent=None,
        rejoin_by_name: bool = True,
        on_destroy: Optional[Callable[['Session'], None]] = None,
    ):
        self.code = code
        self.room = room_for(code)
        self.players: Dict[str, Player] = {}
        self.prompt: Optional[str] = None
        self.used_words = set()
        self.state = SessionState.FORMING
        self.round_no = 0
        self.history: List[Dict[str, Any]] = []
        self.word_bank = word_bank
        self.coordinator = coordinator
        self.filler_agent = filler_agent
        self.rejoin_by_name = rejoin_by_name
        self._emit = emit
        self._on_destroy = on_destroy
        # normalized name -> (score, joined_at) of humans who left
        self._departed: Dict[str, Tuple[int, float]] = {}
        self._filler_stash: Dict[str, str] = {}
        self._lock = threading.RLock()

    # ---- queries ----

    @property
    def ended(self) -> bool:
        return self.state is SessionState.ENDED

    def humans(self) -> List[Player]:
        return [p for p in self.players.values() if not p.is_filler]

    def fillers(self) -> List[Player]:
        return [p for p in self.players.values() if p.is_filler]

    def all_answered(self) -> bool:
        return bool(self.players) and all(p.has_answered for p in self.players.values())

    def humans_answered(self) -> bool:
        return all(p.has_answered for p in self.humans())

    def roster(self, include_answers=False) -> Dict[str, Dict[str, Any]]:
        return {pid: p.to_dict(include_answer=include_answers) for pid, p in self.players.items()}

    def standings(self) -> List[Dict[str, Any]]:
        """Players ordered for display: score first, then join order."""
        ordered = sorted(self.players.values(), key=lambda p: (-p.score, p.joined_at))
        return [p.to_dict() for p in ordered]

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'game_code': self.code,
                'state': self.state.value,
                'prompt': self.prompt,
                'round': self.round_no,
                'win_score': self.coordinator.win_score,
                'players': self.standings(),
                'history': list(self.history),
            }

    # ---- operations ----

    def join(self, player_id: str, name: str) -> JoinResult:
        with self._lock:
            if self.ended:
                raise SessionNotFoundError()
            if any(p.has_answered for pid, p in self.players.items() if pid != player_id):
                logger.info(f"[join-reject] game={self.code} player={player_id} round={self.round_no} in progress")
                raise RoundInProgressError()
            if self.state is SessionState.FORMING:
                self.prompt = self._draw_prompt()
                self.round_no = 1
                self.state = SessionState.ROUND_OPEN
                logger.info(f"[round] game={self.code} round=1 prompt={self.prompt!r}")
            player = self._admit(player_id, name)
            if self.filler_agent is not None:
                self.filler_agent.rebalance(self)
            logger.info(f"[join] game={self.code} player={player_id} name={name!r} score={player.score}")
            return JoinResult(
                prompt=self.prompt,
                players=self.roster(),
                round_no=self.round_no,
                score=player.score,
            )

    def submit_answer(self, player_id: str, text: str) -> bool:
        """Record an answer; returns False when it was ignored as a repeat."""
        with self._lock:
            if self.ended:
                raise SessionNotFoundError()
            player = self.players.get(player_id)
            if player is None:
                raise PlayerNotFoundError()
            if not self._accept_answer(player, text):
                return False
            self._maybe_resolve()
            return True

    def leave(self, player_id: str) -> bool:
        with self._lock:
            if self.ended:
                return False
            player = self.players.pop(player_id, None)
            if player is None:
                return False
            self._filler_stash.pop(player_id, None)
            if not player.is_filler and self.rejoin_by_name:
                self._departed[normalize_name(player.name)] = (player.score, player.joined_at)
            logger.info(f"[leave] game={self.code} player={player_id} name={player.name!r}")
            if not self.humans():
                self._destroy('no players left')
                return True
            if self.filler_agent is not None:
                self.filler_agent.rebalance(self)
                if self.ended:
                    return True
            self._emit_roster()
            if self.state is SessionState.ROUND_OPEN:
                self._maybe_resolve()
            return True

    def broadcast_roster(self) -> None:
        with self._lock:
            if not self.ended:
                self._emit_roster()

    # ---- filler hooks (called by the filler agent) ----

    def add_filler(self, player: Player) -> None:
        with self._lock:
            player.is_filler = True
            self.players[player.id] = player
            logger.info(f"[filler-add] game={self.code} player={player.id} name={player.name!r}")

    def remove_filler(self, player_id: str) -> None:
        with self._lock:
            player = self.players.get(player_id)
            if player is None or not player.is_filler:
                return
            del self.players[player_id]
            self._filler_stash.pop(player_id, None)
            logger.info(f"[filler-remove] game={self.code} player={player_id}")

    def apply_filler_answer(self, player_id: str, round_no: int, text: str) -> bool:
        """Apply a generated answer if its session and round are still current.

        Answers that arrive before every human has answered are held back and
        submitted once the humans are done.
        """
        with self._lock:
            player = self.players.get(player_id)
            if self.ended or round_no != self.round_no or player is None or player.has_answered:
                logger.debug(f"[filler-late] game={self.code} player={player_id} round={round_no} discarded")
                return False
            if not self.humans_answered():
                self._filler_stash[player_id] = text
                return True
            try:
                accepted = self._accept_answer(player, text)
            except InvalidAnswerError:
                accepted = self._accept_answer(player, self.word_bank.random_word())
            if accepted:
                self._maybe_resolve()
            return accepted

    # ---- internals (lock held) ----

    def _admit(self, player_id: str, name: str) -> Player:
        existing = self.players.get(player_id)
        if existing is not None:
            existing.name = name
            return existing
        if self.rejoin_by_name:
            key = normalize_name(name)
            for other in list(self.players.values()):
                if not other.is_filler and normalize_name(other.name) == key:
                    player = Player(id=player_id, name=name, score=other.score, joined_at=other.joined_at)
                    # The new connection takes the old record's seat
                    self.players = {
                        (player_id if pid == other.id else pid): (player if pid == other.id else p)
                        for pid, p in self.players.items()
                    }
                    logger.info(f"[rejoin] game={self.code} name={name!r} {other.id} -> {player_id} score={player.score}")
                    return player
            if key in self._departed:
                score, joined_at = self._departed.pop(key)
                player = Player(id=player_id, name=name, score=score, joined_at=joined_at)
                self.players[player_id] = player
                return player
        player = Player(id=player_id, name=name)
        self.players[player_id] = player
        return player

    def _accept_answer(self, player: Player, text) -> bool:
        if player.has_answered:
            logger.debug(f"[answer-repeat] game={self.code} player={player.id} ignored")
            return False
        if self.state is not SessionState.ROUND_OPEN:
            return False
        answer = str(text or '').strip()[:ANSWER_MAX_LEN].strip()
        if not answer:
            raise InvalidAnswerError()
        player.answer = answer
        self._emit_roster()
        return True

    def _maybe_resolve(self) -> None:
        if self._filler_stash and self.humans_answered():
            for pid, text in list(self._filler_stash.items()):
                self._filler_stash.pop(pid, None)
                filler = self.players.get(pid)
                if filler is None:
                    continue
                try:
                    self._accept_answer(filler, text)
                except InvalidAnswerError:
                    self._accept_answer(filler, self.word_bank.random_word())
        if self.state is SessionState.ROUND_OPEN and self.all_answered():
            self._resolve()

    def _resolve(self) -> None:
        self.state = SessionState.RESOLVING
        outcome: RoundOutcome = self.coordinator.resolve(list(self.players.values()))
        for pid, total in outcome.totals.items():
            self.players[pid].score = total
        answers = {pid: p.answer for pid, p in self.players.items()}
        self.history.append({
            'round': self.round_no,
            'prompt': self.prompt,
            'answers': answers,
            'awards': dict(outcome.score.awards),
        })
        logger.info(
            f"[round-scored] game={self.code} round={self.round_no} groups={len(outcome.score.groups)} "
            f"points={outcome.score.total_points}"
        )
        self._emit('roundResult', {
            'players': self.roster(include_answers=True),
            'roundWinners': outcome.score.round_winners,
            'prompt': self.prompt,
            'answers': answers,
        }, self.room)
        if outcome.game_over:
            self._finish(self.players[outcome.winner_id])
        else:
            self._start_round()

    def _start_round(self) -> None:
        for player in self.players.values():
            player.answer = None
        self._filler_stash.clear()
        self.prompt = self._draw_prompt()
        self.round_no += 1
        self.state = SessionState.ROUND_OPEN
        logger.info(f"[round] game={self.code} round={self.round_no} prompt={self.prompt!r}")
        self._emit('newPrompt', {
            'prompt': self.prompt,
            'players': self.roster(),
            'round': self.round_no,
        }, self.room)
        if self.filler_agent is not None:
            self.filler_agent.on_new_prompt(self)

    def _draw_prompt(self) -> str:
        try:
            word = self.word_bank.select_prompt(self.used_words)
        except WordsExhaustedError:
            logger.info(f"[words-reset] game={self.code} used={len(self.used_words)}")
            self.used_words.clear()
            excluding = {self.prompt} if self.prompt and len(self.word_bank) > 1 else set()
            word = self.word_bank.select_prompt(excluding)
        self.used_words.add(word)
        return word

    def _finish(self, winner: Player) -> None:
        logger.info(f"[game-over] game={self.code} winner={winner.name!r} score={winner.score}")
        self._emit('gameOver', {
            'winner': winner.name,
            'score': winner.score,
            'players': self.standings(),
        }, self.room)
        self._destroy('winner declared')

    def _destroy(self, reason: str) -> None:
        self.state = SessionState.ENDED
        self._filler_stash.clear()
        logger.info(f"[session-end] game={self.code} reason={reason}")
        if self._on_destroy is not None:
            self._on_destroy(self)

    def _emit_roster(self) -> None:
        self._emit('playerJoined', self.roster(), self.room)


class SessionRegistry:
    """Join code -> Session, owned by the Flask app."""

    def __init__(
        self,
        word_bank: WordBank,
        coordinator: RoundCoordinator,
        emit: Emitter,
        filler_agent=None,
        rejoin_by_name: bool = True,
    ):
        self.word_bank = word_bank
        self.coordinator = coordinator
        self.filler_agent = filler_agent
        self.rejoin_by_name = rejoin_by_name
        self._emit = emit
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, code) -> bool:
        with self._lock:
            return normalize_code(code) in self._sessions

    def find(self, code) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(normalize_code(code))

    def get(self, code) -> Session:
        session = self.find(code)
        if session is None:
            raise SessionNotFoundError()
        return session

    def new_code(self) -> str:
        with self._lock:
            return generate_game_code(lambda c: c in self._sessions)

    def join(self, code, player_id: str, name: str):
        """Join (creating on first use) and return ``(session, JoinResult)``."""
        code = normalize_code(code)
        while True:
            session = self._get_or_create(code)
            try:
                return session, session.join(player_id, name)
            except SessionNotFoundError:
                # Ended between lookup and join; try again with a fresh session
                if not session.ended:
                    raise

    def submit_answer(self, code, player_id: str, text: str) -> bool:
        return self.get(code).submit_answer(player_id, text)

    def leave(self, player_id: str) -> List[str]:
        """Remove a connection from every session it belongs to."""
        with self._lock:
            sessions = list(self._sessions.values())
        left = []
        for session in sessions:
            if session.leave(player_id):
                left.append(session.code)
        return left

    def leave_session(self, code, player_id: str) -> bool:
        return self.get(code).leave(player_id)

    def discard(self, session: Session) -> None:
        with self._lock:
            if self._sessions.get(session.code) is session:
                del self._sessions[session.code]

    def _get_or_create(self, code: str) -> Session:
        with self._lock:
            session = self._sessions.get(code)
            if session is None or session.ended:
                session = Session(
                    code,
                    self.word_bank,
                    self.coordinator,
                    self._emit,
                    filler_agent=self.filler_agent,
                    rejoin_by_name=self.rejoin_by_name,
                    on_destroy=self.discard,
                )
                self._sessions[code] = session
                logger.info(f"[session-create] game={code}")
            return session
