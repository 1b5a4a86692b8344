"""Per-room roster of connected participants."""

import re
from typing import List, Optional

import config
from errors import ValidationFailed


def normalize_username(raw) -> str:
    if not isinstance(raw, str):
        return ""
    username = re.sub(r'<[^>]+>', '', raw.strip())
    return username.strip()


def validate_username(raw) -> str:
    username = normalize_username(raw)
    if not username:
        raise ValidationFailed("Username is required")
    if len(username) > config.MAX_USERNAME_LENGTH:
        raise ValidationFailed(
            f"Username must be 1-{config.MAX_USERNAME_LENGTH} characters")
    return username


class Participant:
    def __init__(self, connection_id: str, username: str, user_id: Optional[str] = None):
        self.connection_id = connection_id
        self.username = username
        self.user_id = user_id

    @property
    def key(self) -> str:
        return self.username.casefold()

    def to_dict(self) -> dict:
        return {"id": self.connection_id, "username": self.username, "user_id": self.user_id}

    def __repr__(self):
        return f"Participant({self.connection_id!r}, {self.username!r})"


class Roster:
    """Insertion-ordered participants, unique by connection and by username."""

    def __init__(self):
        self._participants: List[Participant] = []

    def __len__(self):
        return len(self._participants)

    def __iter__(self):
        return iter(list(self._participants))

    def __contains__(self, connection_id: str) -> bool:
        return self.get(connection_id) is not None

    def is_empty(self) -> bool:
        return not self._participants

    def get(self, connection_id: str) -> Optional[Participant]:
        for p in self._participants:
            if p.connection_id == connection_id:
                return p
        return None

    def find_by_username(self, username: str) -> Optional[Participant]:
        key = normalize_username(username).casefold()
        for p in self._participants:
            if p.key == key:
                return p
        return None

    def join(self, connection_id: str, username, user_id: Optional[str] = None) -> Participant:
        username = validate_username(username)
        if not connection_id:
            raise ValidationFailed("Connection id is required")
        if self.find_by_username(username):
            raise ValidationFailed(f"Username '{username}' is already taken in this room")
        if connection_id in self:
            raise ValidationFailed("Connection already joined this room")
        participant = Participant(connection_id, username, user_id)
        self._participants.append(participant)
        return participant

    def leave(self, connection_id: Optional[str] = None, username=None) -> List[Participant]:
        """Remove everyone matching the connection id or the username."""
        key = normalize_username(username).casefold() if username else None
        removed = [p for p in self._participants
                   if (connection_id and p.connection_id == connection_id)
                   or (key and p.key == key)]
        if removed:
            self._participants = [p for p in self._participants if p not in removed]
        return removed

    def snapshot(self) -> List[dict]:
        return [p.to_dict() for p in self._participants]
