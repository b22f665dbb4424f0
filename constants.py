import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

ROOM_CODE_LENGTH = 6
ROOM_CODE_PATTERN = rf"^[A-Z0-9]{{{ROOM_CODE_LENGTH}}}$"
MAX_MEMBERS = 2

SWEEP_INTERVAL_SECONDS = float(os.getenv("SWEEP_INTERVAL_SECONDS", 30))
# Rooms still waiting for a second player this long after creation are reclaimed
WAITING_ROOM_TTL_SECONDS = float(os.getenv("WAITING_ROOM_TTL_SECONDS", 1800))
# Empty rooms that survived a crashed disconnect
EMPTY_ROOM_GRACE_SECONDS = float(os.getenv("EMPTY_ROOM_GRACE_SECONDS", 60))
