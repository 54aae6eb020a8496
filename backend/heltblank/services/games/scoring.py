from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from heltblank.models import Player, normalize_answer

PAIR_POINTS = 3
GROUP_POINTS = 1


@dataclass
class RoundScore:
    # normalized answer -> player ids, in the order players joined
    groups: Dict[str, List[str]] = field(default_factory=dict)
    awards: Dict[str, int] = field(default_factory=dict)

    @property
    def round_winners(self) -> List[str]:
        return [pid for ids in self.groups.values() for pid in ids if self.awards.get(pid)]

    @property
    def total_points(self) -> int:
        return sum(self.awards.values())


@dataclass
class RoundOutcome:
    score: RoundScore
    totals: Dict[str, int]
    winner_id: Optional[str] = None

    @property
    def game_over(self) -> bool:
        return self.winner_id is not None


def score_answers(answers: Mapping[str, str]) -> RoundScore:
    """Group answers case-insensitively and award points per group.

    A pair earns PAIR_POINTS for both players, a group of three or more
    earns GROUP_POINTS each, a unique answer earns nothing.
    """
    groups: Dict[str, List[str]] = OrderedDict()
    for pid, answer in answers.items():
        key = normalize_answer(answer or '')
        if not key:
            continue
        groups.setdefault(key, []).append(pid)

    awards: Dict[str, int] = {}
    for ids in groups.values():
        if len(ids) == 2:
            points = PAIR_POINTS
        elif len(ids) > 2:
            points = GROUP_POINTS
        else:
            continue
        for pid in ids:
            awards[pid] = points
    return RoundScore(groups=dict(groups), awards=awards)


def pick_winner(players: List[Player], totals: Mapping[str, int], win_score: int) -> Optional[str]:
    """Return the id of the highest qualifying score; earliest joiner wins ties."""
    best = None
    best_total = 0
    for player in players:
        total = totals.get(player.id, player.score)
        if total < win_score:
            continue
        if best is None or total > best_total or (total == best_total and player.joined_at < best.joined_at):
            best, best_total = player, total
    return best.id if best else None


class RoundCoordinator:
    """Scores a finished round and decides whether the game is over.

    Holds no per-session state; the Session applies the returned outcome.
    """

    def __init__(self, win_score: int = 30):
        self.win_score = int(win_score)

    def resolve(self, players: List[Player]) -> RoundOutcome:
        score = score_answers({p.id: p.answer for p in players if p.answer is not None})
        totals = {p.id: p.score + score.awards.get(p.id, 0) for p in players}
        winner_id = pick_winner(players, totals, self.win_score)
        return RoundOutcome(score=score, totals=totals, winner_id=winner_id)
