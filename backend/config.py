"""Centralized configuration, all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5001"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = 10
MAX_WS_MESSAGE_SIZE = 8192  # bytes

# --- Rooms ---
ROOM_CODE_LENGTH = 4
MAX_ROOM_CODE_ATTEMPTS = 10
MAX_ROOMS = int(os.getenv("MAX_ROOMS", "200"))
MAX_USERNAME_LENGTH = 20

# --- Store limits ---
MAX_STORED_ROOMS = int(os.getenv("MAX_STORED_ROOMS", "1000"))
MAX_USERS = int(os.getenv("MAX_USERS", "5000"))
MAX_TYPES = int(os.getenv("MAX_TYPES", "100"))
MAX_GAMES = int(os.getenv("MAX_GAMES", "1000"))  # oldest round records evicted past this

# --- Timer ---
DEFAULT_TIMER_SECONDS = int(os.getenv("DEFAULT_TIMER_SECONDS", "300"))
MAX_TIMER_SECONDS = 3600
TIMER_TICK_SECONDS = 1.0

# --- Word categories seeded into the in-memory store ---
DEFAULT_CATEGORIES = {
    "Animals": ["elephant", "giraffe", "lion", "penguin", "dolphin", "kangaroo"],
    "Food": ["pizza", "sushi", "burger", "pasta", "taco", "pancake"],
    "Places": ["beach", "library", "airport", "hospital", "museum", "stadium"],
}

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
