import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "linkrelay")
# Secret used to derive the symmetric token key; startup fails without it
SECRET = os.environ.get("SECRET", "")

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "5000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()

BASE_PATH = os.environ.get("BASE_PATH", "").rstrip("/")
PUBLIC_URL = os.environ.get("PUBLIC_URL", "").rstrip("/")

REDIRECT_PATH = "/r"
RELAY_PATH = "/p"

MAX_EXPIRY_SECONDS = 31536000


def _parse_timeout(raw: str) -> float | None:
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


# Seconds per outbound network operation, 0 disables
RELAY_TIMEOUT = _parse_timeout(os.getenv("RELAY_TIMEOUT", "300"))
RELAY_CHUNK_SIZE = int(os.getenv("RELAY_CHUNK_SIZE", "65536"))

CORS_ALLOW_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()
]

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
