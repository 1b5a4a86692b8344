"""Vote collection and tally for the end of a round."""

from collections import Counter
from typing import Dict, List, Optional, Sequence

from errors import PreconditionError, ValidationFailed
from roster import Participant, normalize_username
from round_engine import RoundState


class VoteSession:
    def __init__(self, participants: Sequence[Participant]):
        # Snapshot: later roster changes do not alter who may vote or be voted for.
        self.players: List[dict] = [{"id": p.connection_id, "username": p.username}
                                    for p in participants]
        self.expected = len(self.players)
        self.votes: Dict[str, str] = {}  # voter id -> suspect id, arrival order
        self.closed = False

    def candidates(self) -> List[dict]:
        return [dict(p) for p in self.players]

    def resolve(self, identity) -> Optional[dict]:
        """Find a snapshot entry by participant id or (case-insensitive) username."""
        if not isinstance(identity, str) or not identity.strip():
            return None
        for p in self.players:
            if p["id"] == identity:
                return p
        key = normalize_username(identity).casefold()
        for p in self.players:
            if p["username"].casefold() == key:
                return p
        return None

    def submit(self, voter, suspect) -> bool:
        """Record a vote (last one wins). Returns True once quorum is reached."""
        if self.closed:
            raise PreconditionError("Voting has already closed")
        voter_entry = self.resolve(voter)
        if voter_entry is None:
            raise ValidationFailed("Voter is not part of this vote")
        suspect_entry = self.resolve(suspect)
        if suspect_entry is None:
            raise ValidationFailed("Invalid vote target")
        self.votes[voter_entry["id"]] = suspect_entry["id"]
        if len(self.votes) >= self.expected:
            self.closed = True
            return True
        return False

    def _username(self, player_id: str) -> str:
        for p in self.players:
            if p["id"] == player_id:
                return p["username"]
        return player_id

    def vote_trail(self) -> List[dict]:
        return [{"voter": self._username(voter), "target": self._username(target)}
                for voter, target in self.votes.items()]

    def tally(self) -> Counter:
        tally: Counter = Counter()
        for target in self.votes.values():
            tally[self._username(target)] += 1
        return tally

    def results(self, round_state: Optional[RoundState]) -> dict:
        tally = self.tally()
        most_voted = None
        best = 0
        # First-encountered wins ties.
        for username, count in tally.items():
            if count > best:
                most_voted, best = username, count
        spy_username = round_state.spy_username if round_state else None
        return {
            "spy_username": spy_username,
            "keyword": round_state.keyword if round_state else None,
            "spy_keyword": round_state.spy_keyword if round_state else None,
            "votes": self.vote_trail(),
            "tally": dict(tally),
            "most_voted": most_voted,
            "spy_caught": spy_username is not None and most_voted == spy_username,
        }
