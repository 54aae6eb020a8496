import enum
import random
import string
import time
from dataclasses import dataclass, field
from typing import Callable, Optional


class SessionState(str, enum.Enum):
    FORMING = 'forming'
    ROUND_OPEN = 'round_open'
    RESOLVING = 'resolving'
    ENDED = 'ended'


@dataclass
class Player:
    id: str
    name: str
    score: int = 0
    answer: Optional[str] = None
    is_filler: bool = False
    joined_at: float = field(default_factory=time.time)

    @property
    def has_answered(self) -> bool:
        return self.answer is not None

    def to_dict(self, include_answer=False):
        data = {
            'id': self.id,
            'name': self.name,
            'score': self.score,
            'hasAnswered': self.has_answered,
            'isFiller': self.is_filler,
        }
        if include_answer:
            data['answer'] = self.answer
        return data


def normalize_answer(text: str) -> str:
    return text.strip().lower()


def normalize_name(name: str) -> str:
    return name.strip().lower()


def normalize_code(code) -> str:
    return str(code or '').strip().upper()


def generate_game_code(in_use: Callable[[str], bool], length=4):
    """Generate a unique, short game code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not in_use(code):
            return code
