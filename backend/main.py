"""SpyWord backend server: REST endpoints and the game WebSocket."""

from fastapi import FastAPI, WebSocket, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, field_validator
from typing import List, Optional
from contextlib import asynccontextmanager
import uvicorn
import logging
import socket as socketlib

import config
config.setup_logging()

from roster import normalize_username
from socket_manager import socket_manager
from store import DuplicateUsername, StoreFull

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting SpyWord backend")
    yield
    socket_manager.reset()
    logger.info("Shutting down SpyWord backend")


app = FastAPI(title="SpyWord API", lifespan=lifespan)


def get_local_ip():
    try:
        s = socketlib.socket(socketlib.AF_INET, socketlib.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "127.0.0.1"


def _clean_username(v: str) -> str:
    v = normalize_username(v)
    if not v or len(v) > config.MAX_USERNAME_LENGTH:
        raise ValueError(f'Username must be 1-{config.MAX_USERNAME_LENGTH} characters')
    return v


# --- Request Models ---

class TypeCreateRequest(BaseModel):
    title: str
    type: List[str]

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('title is required')
        return v

    @field_validator('type')
    @classmethod
    def validate_words(cls, v: list) -> list:
        words = []
        for word in v:
            word = word.strip()
            if word and word not in words:
                words.append(word)
        if len(words) < 2:
            raise ValueError('A category needs at least two distinct words')
        return words


class RoomCreateRequest(BaseModel):
    type_id: int


class UserCreateRequest(BaseModel):
    username: str
    rooms_id: str

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        return _clean_username(v)


class CreateRoomWithUserRequest(BaseModel):
    username: str
    type_id: Optional[int] = None

    @field_validator('username')
    @classmethod
    def validate_username(cls, v: str) -> str:
        return _clean_username(v)


class GameCreateRequest(BaseModel):
    spy_id: str
    keyword: str

    @field_validator('keyword')
    @classmethod
    def validate_keyword(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('keyword is required')
        return v


# --- Endpoints ---

@app.post("/types", status_code=201)
async def create_type(request: TypeCreateRequest):
    try:
        return await socket_manager.store.add_type(request.title, request.type)
    except StoreFull as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.get("/types")
async def get_types():
    return await socket_manager.store.get_all_types()


@app.post("/rooms", status_code=201)
async def create_room(request: RoomCreateRequest):
    if await socket_manager.store.get_type_by_id(request.type_id) is None:
        raise HTTPException(status_code=404, detail="Category not found")
    try:
        return await socket_manager.store.add_room(request.type_id)
    except StoreFull as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.get("/rooms/{room_id}")
async def get_room(room_id: str):
    room = await socket_manager.store.get_room_by_id(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return room


@app.post("/users", status_code=201)
async def create_user(request: UserCreateRequest):
    if await socket_manager.store.get_room_by_id(request.rooms_id) is None:
        raise HTTPException(status_code=404, detail="Room not found")
    try:
        return await socket_manager.store.add_user(request.username, request.rooms_id)
    except DuplicateUsername:
        raise HTTPException(status_code=409, detail="Username already exists")
    except StoreFull as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.post("/create-room", status_code=201)
async def create_room_with_user(request: CreateRoomWithUserRequest):
    if request.type_id is not None and await socket_manager.store.get_type_by_id(request.type_id) is None:
        raise HTTPException(status_code=404, detail="Category not found")
    try:
        return await socket_manager.store.create_room_with_user(request.username, request.type_id)
    except DuplicateUsername:
        raise HTTPException(status_code=409, detail="Username already exists")
    except StoreFull as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.post("/games", status_code=201)
async def create_game(request: GameCreateRequest):
    if await socket_manager.store.get_user_by_id(request.spy_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return await socket_manager.store.add_game(request.spy_id, request.keyword)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await socket_manager.connect(websocket)


@app.websocket("/ws/{client_id}")
async def websocket_endpoint_with_id(websocket: WebSocket, client_id: str):
    await socket_manager.connect(websocket, client_id)


# --- CORS ---

if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
else:
    local_ip = get_local_ip()
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        f"http://{local_ip}:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


@app.get("/")
async def root():
    return {"message": "SpyWord API is running"}


@app.get("/health")
async def health():
    return {"status": "ok", "game": "SpyWord", "active_rooms": len(socket_manager.rooms)}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
