import json
import random
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import EmptyWordBankError, WordsExhaustedError


DEFAULT_CATEGORY = 'general'


class WordBank:
    """Read-only pool of prompt words, grouped by category.

    Selection is uniform over every word in the bank; categories are only
    kept for inspection.
    """

    def __init__(self, categories: Dict[str, Iterable[str]], rng: Optional[random.Random] = None):
        cleaned: Dict[str, Tuple[str, ...]] = {}
        seen = set()
        for category, words in categories.items():
            bucket = []
            for word in words:
                word = str(word).strip()
                if not word or word in seen:
                    continue
                seen.add(word)
                bucket.append(word)
            if bucket:
                cleaned[str(category)] = tuple(bucket)
        if not cleaned:
            raise EmptyWordBankError()
        self._categories = cleaned
        self._words: Tuple[str, ...] = tuple(w for bucket in cleaned.values() for w in bucket)
        self._rng = rng or random.Random()

    @classmethod
    def from_json(cls, path: str, rng: Optional[random.Random] = None) -> 'WordBank':
        with open(path, 'r', encoding='utf-8') as handle:
            data = json.load(handle)
        if isinstance(data, list):
            data = {DEFAULT_CATEGORY: data}
        if not isinstance(data, dict):
            raise EmptyWordBankError(f'Unsupported word source format in {path}')
        return cls(data, rng=rng)

    @property
    def categories(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self._categories)

    @property
    def words(self) -> Tuple[str, ...]:
        return self._words

    def __len__(self) -> int:
        return len(self._words)

    def __contains__(self, word) -> bool:
        return word in self._words

    def select_prompt(self, excluding=frozenset()) -> str:
        """Pick a word that is not in ``excluding``.

        Raises ``WordsExhaustedError`` when every word is excluded so the
        caller can reset its rotation.
        """
        available: List[str] = [w for w in self._words if w not in excluding]
        if not available:
            raise WordsExhaustedError()
        return self._rng.choice(available)

    def random_word(self) -> str:
        return self._rng.choice(self._words)
