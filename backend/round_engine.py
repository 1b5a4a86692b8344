"""Spy and word selection for a round."""

import random
from typing import List, Optional, Sequence

from errors import PreconditionError
from roster import Participant


class RoundState:
    def __init__(self, spy: Participant, keyword: str, spy_keyword: str, words: List[dict]):
        self.spy_connection_id = spy.connection_id
        self.spy_username = spy.username
        self.spy_user_id = spy.user_id
        self.keyword = keyword
        self.spy_keyword = spy_keyword
        self.words = words  # [{name, selected}]

    def to_payload(self) -> dict:
        return {
            "spy_username": self.spy_username,
            "keyword": self.keyword,
            "spy_keyword": self.spy_keyword,
            "words": [dict(w) for w in self.words],
        }


def candidate_words(raw) -> List[str]:
    """Distinct, non-blank candidate words in first-seen order.

    Accepts plain strings or ``{"name": ..., "selected": ...}`` entries;
    entries explicitly deselected are dropped.
    """
    if not isinstance(raw, (list, tuple)):
        return []
    words: List[str] = []
    for entry in raw:
        if isinstance(entry, dict):
            if entry.get("selected") is False:
                continue
            entry = entry.get("name")
        if not isinstance(entry, str):
            continue
        word = entry.strip()
        if word and word not in words:
            words.append(word)
    return words


def pick_words(words: Sequence[str], rng: Optional[random.Random] = None):
    """Return (common word, spy word), guaranteed different."""
    rng = rng or random
    keyword = rng.choice(words)
    spy_keyword = rng.choice(words)
    while spy_keyword == keyword:
        spy_keyword = rng.choice(words)
    return keyword, spy_keyword


def start_round(participants: Sequence[Participant], raw_words,
                rng: Optional[random.Random] = None) -> RoundState:
    if not participants:
        raise PreconditionError("Cannot start a round in an empty room")
    words = candidate_words(raw_words)
    if len(words) < 2:
        raise PreconditionError("At least two distinct words are needed to start a round")
    rng = rng or random
    spy = rng.choice(list(participants))
    keyword, spy_keyword = pick_words(words, rng)
    return RoundState(spy, keyword, spy_keyword,
                      [{"name": w, "selected": True} for w in words])
