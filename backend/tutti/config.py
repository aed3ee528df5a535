import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Socket.IO (empty = pick per platform)
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Game
    ROUND_DURATION_SEC = int(os.environ.get("ROUND_DURATION_SEC", "180"))
    MAX_ROUNDS = int(os.environ.get("MAX_ROUNDS", "5"))
    POINTS_PER_CATEGORY = int(os.environ.get("POINTS_PER_CATEGORY", "10"))
    VOTING_DISPLAY_DELAY_SEC = float(os.environ.get("VOTING_DISPLAY_DELAY_SEC", "3"))

    # Rooms with nobody connected are dropped after this long
    ROOM_IDLE_TTL_SEC = int(os.environ.get("ROOM_IDLE_TTL_SEC", "600"))
    ROOM_TASKS_ENABLED = os.environ.get("ROOM_TASKS_ENABLED", "1") == "1"
