"""In-memory backing store for rooms, users, word categories and round audit.

The session core only reads users/rooms from here and writes one audit record
per round. All methods are coroutines so a database-backed store can be
swapped in without touching the callers.
"""

import itertools
import logging
import random
import string
import uuid
from typing import Dict, List, Optional

import config

logger = logging.getLogger(__name__)


class DuplicateUsername(Exception):
    pass


class StoreFull(Exception):
    pass


def _username_key(username: str) -> str:
    return username.strip().casefold()


class InMemoryStore:
    def __init__(self, categories: Optional[Dict[str, List[str]]] = None):
        self.types: Dict[int, dict] = {}
        self.rooms: Dict[str, dict] = {}
        self.users: Dict[str, dict] = {}
        self.games: List[dict] = []
        self._type_ids = itertools.count(1)
        self._game_ids = itertools.count(1)
        self._seed = categories if categories is not None else config.DEFAULT_CATEGORIES
        self.reset()

    def reset(self):
        self.types.clear()
        self.rooms.clear()
        self.users.clear()
        self.games.clear()
        self._type_ids = itertools.count(1)
        self._game_ids = itertools.count(1)
        for title, words in self._seed.items():
            self._insert_type(title, words)

    def _insert_type(self, title: str, words: List[str]) -> dict:
        type_id = next(self._type_ids)
        record = {"id": type_id, "title": title, "type": list(words)}
        self.types[type_id] = record
        return record

    @staticmethod
    def _check_capacity(records, limit: int, what: str):
        if len(records) >= limit:
            raise StoreFull(f"Too many {what}, try again later")

    def _generate_room_id(self) -> str:
        for _ in range(config.MAX_ROOM_CODE_ATTEMPTS):
            code = ''.join(random.choices(string.ascii_uppercase + string.digits,
                                          k=config.ROOM_CODE_LENGTH))
            if code not in self.rooms:
                return code
        raise StoreFull("Failed to generate unique room code")

    # --- Types (word categories) ---

    async def add_type(self, title: str, words: List[str]) -> dict:
        self._check_capacity(self.types, config.MAX_TYPES, "categories")
        record = self._insert_type(title, words)
        logger.info("Category %d created ('%s', %d words)", record["id"], title, len(words))
        return record

    async def get_type_by_id(self, type_id: int) -> Optional[dict]:
        return self.types.get(type_id)

    async def get_all_types(self) -> List[dict]:
        """Categories in the curation shape the clients toggle."""
        return [
            {
                "title": t["title"],
                "selected": True,
                "type": [{"name": name, "selected": True} for name in t["type"]],
            }
            for t in self.types.values()
        ]

    # --- Rooms ---

    async def add_room(self, type_id: Optional[int] = None,
                       owner_id: Optional[str] = None) -> dict:
        self._check_capacity(self.rooms, config.MAX_STORED_ROOMS, "rooms")
        room = {"id": self._generate_room_id(), "type_id": type_id, "owner_id": owner_id}
        self.rooms[room["id"]] = room
        logger.info("Room %s registered", room["id"])
        return room

    async def get_room_by_id(self, room_id: str) -> Optional[dict]:
        return self.rooms.get(room_id)

    # --- Users ---

    def _find_user(self, username: str) -> Optional[dict]:
        key = _username_key(username)
        for user in self.users.values():
            if _username_key(user["username"]) == key:
                return user
        return None

    async def add_user(self, username: str, rooms_id: Optional[str] = None) -> dict:
        username = username.strip()
        if self._find_user(username):
            raise DuplicateUsername(f"Username '{username}' already exists")
        self._check_capacity(self.users, config.MAX_USERS, "users")
        user = {"id": str(uuid.uuid4()), "username": username, "rooms_id": rooms_id}
        self.users[user["id"]] = user
        return user

    async def create_room_with_user(self, username: str,
                                    type_id: Optional[int] = None) -> dict:
        # Validate everything before writing so a failure leaves nothing behind.
        if self._find_user(username):
            raise DuplicateUsername(f"Username '{username.strip()}' already exists")
        self._check_capacity(self.users, config.MAX_USERS, "users")
        self._check_capacity(self.rooms, config.MAX_STORED_ROOMS, "rooms")
        room_id = self._generate_room_id()
        user = await self.add_user(username)
        room = {"id": room_id, "type_id": type_id, "owner_id": user["id"]}
        self.rooms[room_id] = room
        user["rooms_id"] = room_id
        logger.info("Room %s created by '%s'", room_id, user["username"])
        return {"room": room, "user": user}

    async def get_user_by_username(self, username: str) -> Optional[dict]:
        return self._find_user(username)

    async def get_user_by_id(self, user_id: str) -> Optional[dict]:
        user = self.users.get(user_id)
        if user is None:
            return None
        return {"id": user["id"], "username": user["username"]}

    # --- Games (round audit) ---

    async def add_game(self, spy_id: str, keyword: str) -> dict:
        game = {"id": next(self._game_ids), "spy_id": spy_id, "keyword": keyword}
        self.games.append(game)
        if len(self.games) > config.MAX_GAMES:
            del self.games[:len(self.games) - config.MAX_GAMES]
        return game

    async def record_round_assignment(self, spy_id: str, keyword: str) -> dict:
        return await self.add_game(spy_id, keyword)


store = InMemoryStore()
