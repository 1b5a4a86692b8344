"""WebSocket session engine for SpyWord."""

from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, List, Optional, Tuple
import json
import time
import uuid
import logging

import config
from errors import GameError, NotFoundError, PreconditionError, TransientDependencyError, ValidationFailed
from roster import Participant, Roster, validate_username
from room_timer import RoomTimer
from round_engine import RoundState, start_round
from store import store as default_store
from voting import VoteSession

logger = logging.getLogger(__name__)


class Room:
    def __init__(self, room_code: str, send, owner_id: Optional[str] = None,
                 type_id: Optional[int] = None):
        self.room_code = room_code
        self.owner_id = owner_id
        self.type_id = type_id
        self.roster = Roster()
        self.round: Optional[RoundState] = None
        self.timer: Optional[RoomTimer] = None
        self.vote: Optional[VoteSession] = None
        self._send = send

    def get_player_list(self) -> list:
        return self.roster.snapshot()

    def clear_timer(self, timer: RoomTimer):
        if self.timer is timer:
            self.timer = None

    def teardown(self):
        """Drop all game state. Synchronous so no tick can fire in between."""
        if self.timer:
            self.timer.cancel()
            self.timer = None
        self.round = None
        self.vote = None

    async def broadcast(self, message: dict):
        for participant in self.roster:
            await self._send(participant.connection_id, message)

    async def broadcast_roster(self):
        await self.broadcast({"type": "roster-updated", "users": self.get_player_list()})


class SocketManager:
    def __init__(self, store=None, rng=None):
        self.rooms: Dict[str, Room] = {}
        self.connections: Dict[str, WebSocket] = {}
        self.msg_timestamps: Dict[str, list] = {}
        self.store = store or default_store
        self.rng = rng
        # message type -> (handler, message type used to report failures)
        self._handlers = {
            "join-room": (self._handle_join, "join-rejected"),
            "leave-room": (self._handle_leave, "error"),
            "start-round": (self._handle_start_round, "error"),
            "update-categories": (self._handle_update_categories, "error"),
            "end-round": (self._handle_open_voting, "error"),
            "open-voting": (self._handle_open_voting, "error"),
            "submit-vote": (self._handle_vote, "error"),
            "start-timer": (self._handle_start_timer, "timer-error"),
            "pause-timer": (self._handle_pause_timer, "timer-error"),
            "resume-timer": (self._handle_resume_timer, "timer-error"),
        }

    def reset(self):
        for room in self.rooms.values():
            room.teardown()
        self.rooms.clear()
        self.connections.clear()
        self.msg_timestamps.clear()

    def current_round(self, room_code: str) -> Optional[RoundState]:
        room = self.rooms.get(room_code)
        return room.round if room else None

    def room_of(self, connection_id: str) -> Optional[Room]:
        for room in self.rooms.values():
            if connection_id in room.roster:
                return room
        return None

    # --- Transport ---

    async def connect(self, websocket: WebSocket, client_id: Optional[str] = None):
        await websocket.accept()
        connection_id = client_id or uuid.uuid4().hex
        if connection_id in self.connections:
            await websocket.send_json({"type": "error", "code": "validation",
                                       "message": "Connection id already in use"})
            await websocket.close()
            return

        self.connections[connection_id] = websocket
        await websocket.send_json({"type": "connected", "connection_id": connection_id})

        try:
            while True:
                data = await websocket.receive_text()

                if len(data) > config.MAX_WS_MESSAGE_SIZE:
                    await self.send_error(connection_id, "Message too large")
                    continue

                now = time.time()
                timestamps = self.msg_timestamps.setdefault(connection_id, [])
                timestamps[:] = [t for t in timestamps if now - t < 1.0]
                if len(timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
                    await self.send_error(connection_id, "Too many messages")
                    continue
                timestamps.append(now)

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    await self.send_error(connection_id, "Invalid message format")
                    continue
                if not isinstance(message, dict):
                    await self.send_error(connection_id, "Invalid message format")
                    continue

                await self.handle_message(connection_id, message)
        except WebSocketDisconnect:
            logger.info("Client %s disconnected", connection_id)
        except Exception:
            logger.exception("WebSocket error for client %s", connection_id)
        finally:
            # send_to may already have dropped the socket; the roster still needs cleaning.
            if self.connections.get(connection_id) in (websocket, None):
                await self.disconnect(connection_id)

    async def send_to(self, connection_id: str, message: dict):
        ws = self.connections.get(connection_id)
        if ws is None:
            return
        try:
            await ws.send_json(message)
        except Exception:
            # The receive loop of that socket notices the close and cleans up.
            logger.debug("Dropping unreachable connection %s", connection_id)
            self.connections.pop(connection_id, None)

    async def send_error(self, connection_id: str, message: str, msg_type: str = "error",
                         code: str = "validation"):
        await self.send_to(connection_id, {"type": msg_type, "code": code, "message": message})

    async def handle_message(self, connection_id: str, message: dict):
        msg_type = message.get("type")
        entry = self._handlers.get(msg_type)
        if entry is None:
            await self.send_error(connection_id, f"Unknown message type: {msg_type}")
            return
        handler, error_type = entry
        try:
            await handler(connection_id, message)
        except GameError as exc:
            logger.warning("%s from %s rejected: %s", msg_type, connection_id, exc.message)
            await self.send_to(connection_id, {"type": error_type, **exc.to_payload()})
        except Exception:
            logger.exception("Unhandled error in %s from %s", msg_type, connection_id)
            await self.send_error(connection_id, "Something went wrong", msg_type=error_type,
                                  code="internal")

    # --- Helpers ---

    async def _call_store(self, method, *args):
        try:
            return await method(*args)
        except Exception as exc:
            logger.exception("Store call %s failed", getattr(method, "__name__", method))
            raise TransientDependencyError("Storage is unavailable, please try again") from exc

    @staticmethod
    def _room_code(message: dict) -> str:
        room_code = message.get("roomId")
        if not isinstance(room_code, str) or not room_code.strip():
            raise ValidationFailed("roomId is required")
        return room_code.strip()

    def _require_room(self, room_code: str) -> Room:
        room = self.rooms.get(room_code)
        if room is None:
            raise NotFoundError(f"Room {room_code} not found")
        return room

    def _detach(self, room: Room, connection_id: Optional[str] = None,
                username: Optional[str] = None) -> Tuple[List[Participant], bool]:
        """Remove matching participants; tear the room down if it empties."""
        removed = room.roster.leave(connection_id, username)
        if not removed:
            return removed, False
        for p in removed:
            logger.info("Player '%s' left room %s", p.username, room.room_code)
        if room.roster.is_empty():
            self._cleanup_room(room)
            return removed, True
        return removed, False

    def _cleanup_room(self, room: Room):
        room.teardown()
        if self.rooms.get(room.room_code) is room:
            del self.rooms[room.room_code]
        logger.info("Room %s is empty, state cleared", room.room_code)

    async def disconnect(self, connection_id: str) -> Tuple[Optional[str], bool]:
        """Drop a connection everywhere. Returns (room code, whether it emptied)."""
        self.connections.pop(connection_id, None)
        self.msg_timestamps.pop(connection_id, None)
        room = self.room_of(connection_id)
        if room is None:
            return None, False
        _, emptied = self._detach(room, connection_id=connection_id)
        if not emptied:
            await room.broadcast_roster()
        return room.room_code, emptied

    # --- Membership ---

    async def _handle_join(self, connection_id: str, message: dict):
        room_code = self._room_code(message)
        username = validate_username(message.get("username"))

        record = await self._call_store(self.store.get_room_by_id, room_code)
        if record is None:
            raise NotFoundError(f"Room {room_code} not found")
        user = await self._call_store(self.store.get_user_by_username, username)
        if user is None:
            raise NotFoundError(f"User '{username}' is not registered")
        owner = None
        if record.get("owner_id"):
            owner = await self._call_store(self.store.get_user_by_id, record["owner_id"])
        categories = await self._call_store(self.store.get_all_types)

        # Re-check after the lookups: the room may have been created or torn down meanwhile.
        if connection_id not in self.connections:
            return
        room = self.rooms.get(room_code)
        if room is not None:
            if room.roster.find_by_username(username):
                raise ValidationFailed(f"Username '{username}' is already taken in this room")
            if connection_id in room.roster:
                raise ValidationFailed("Already joined this room")
        elif len(self.rooms) >= config.MAX_ROOMS:
            raise PreconditionError("Too many active rooms. Try again later.")

        previous = self.room_of(connection_id)
        previous_emptied = False
        if previous is not None:
            _, previous_emptied = self._detach(previous, connection_id=connection_id)

        if room is None:
            room = Room(room_code, self.send_to, owner_id=record.get("owner_id"),
                        type_id=record.get("type_id"))
            self.rooms[room_code] = room
            logger.info("Room %s opened", room_code)
        participant = room.roster.join(connection_id, username, user["id"])
        logger.info("Player '%s' joined room %s", participant.username, room_code)

        if previous is not None and not previous_emptied:
            await previous.broadcast_roster()
        await room.broadcast_roster()
        await self.send_to(connection_id, {
            "type": "joined-room",
            "room_id": room_code,
            "participant": participant.to_dict(),
            "is_owner": bool(room.owner_id) and room.owner_id == user["id"],
            "owner": owner["username"] if owner else None,
            "type_id": room.type_id,
            "categories": categories,
        })

    async def _handle_leave(self, connection_id: str, message: dict):
        room_code = self._room_code(message)
        room = self.rooms.get(room_code)
        if room is None:
            return
        removed, emptied = self._detach(room, connection_id=connection_id,
                                        username=message.get("username"))
        if removed and not emptied:
            await room.broadcast_roster()

    # --- Round ---

    async def _handle_start_round(self, connection_id: str, message: dict):
        room_code = self._room_code(message)
        room = self._require_room(room_code)
        round_state = start_round(list(room.roster), message.get("words"), self.rng)

        await self._call_store(self.store.record_round_assignment,
                               round_state.spy_user_id, round_state.keyword)

        if self.rooms.get(room_code) is not room or round_state.spy_connection_id not in room.roster:
            raise PreconditionError("Room changed while starting the round, try again")
        room.round = round_state
        room.vote = None
        logger.info("Round started in room %s with %d players", room_code, len(room.roster))
        await room.broadcast({"type": "round-started", **round_state.to_payload()})

    async def _handle_update_categories(self, connection_id: str, message: dict):
        room = self._require_room(self._room_code(message))
        await room.broadcast({"type": "categories-updated", "updated": message.get("updated")})

    # --- Voting ---

    async def _handle_open_voting(self, connection_id: str, message: dict):
        room = self._require_room(self._room_code(message))
        if room.roster.is_empty():
            raise PreconditionError("Cannot open voting in an empty room")
        room.vote = VoteSession(list(room.roster))
        logger.info("Voting opened in room %s (%d voters)", room.room_code, room.vote.expected)
        await room.broadcast({"type": "voting-opened", "players": room.vote.candidates()})

    async def _handle_vote(self, connection_id: str, message: dict):
        room = self._require_room(self._room_code(message))
        session = room.vote
        if session is None:
            raise NotFoundError("No vote in progress")
        voter = message.get("voter") or connection_id
        suspect = message.get("suspect", message.get("voteFor"))

        results = None
        if session.submit(voter, suspect):
            results = session.results(room.round)
            room.vote = None
            room.round = None

        await room.broadcast({"type": "vote-progress", "voted": len(session.votes),
                              "total": session.expected})
        if results is not None:
            logger.info("Vote finished in room %s: most voted '%s'",
                        room.room_code, results["most_voted"])
            await room.broadcast({"type": "vote-results", **results})

    # --- Timer ---

    @staticmethod
    def _duration(message: dict) -> int:
        duration = message.get("durationSeconds", message.get("duration"))
        if duration is None:
            return config.DEFAULT_TIMER_SECONDS
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise ValidationFailed("durationSeconds must be a whole number of seconds")
        if duration < 1 or duration > config.MAX_TIMER_SECONDS:
            raise ValidationFailed(f"durationSeconds must be between 1 and {config.MAX_TIMER_SECONDS}")
        return duration

    async def _handle_start_timer(self, connection_id: str, message: dict):
        room = self._require_room(self._room_code(message))
        duration = self._duration(message)
        if room.timer is None:
            room.timer = RoomTimer(room.room_code, room.broadcast, room.clear_timer)
        room.timer.start(duration)

    def _require_timer(self, message: dict) -> Tuple[Room, RoomTimer]:
        room = self._require_room(self._room_code(message))
        if room.timer is None:
            raise NotFoundError("No timer has been started in this room")
        return room, room.timer

    async def _handle_pause_timer(self, connection_id: str, message: dict):
        room, timer = self._require_timer(message)
        remaining = timer.pause()
        await room.broadcast({"type": "timer-paused", "remaining": remaining})

    async def _handle_resume_timer(self, connection_id: str, message: dict):
        room, timer = self._require_timer(message)
        remaining = timer.resume()
        await room.broadcast({"type": "timer-resumed", "remaining": remaining})


socket_manager = SocketManager()
