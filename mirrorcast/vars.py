import os

from dotenv import load_dotenv

load_dotenv()

SERVICE_NAME = os.getenv("SERVICE_NAME", "mirrorcast")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()

STATIC_DIR = os.environ.get(
    "STATIC_DIR", os.path.join(os.path.dirname(os.path.dirname(__file__)), "public")
)
CORS_ALLOW_ORIGINS = [
    o.strip() for o in os.environ.get("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()
]

PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "30"))
PROXY_FOLLOW_REDIRECTS = (
    os.environ.get("PROXY_FOLLOW_REDIRECTS", "true").lower() == "true"
)
# Many origins vary or refuse responses for non-browser agents
PROXY_DEFAULT_USER_AGENT = os.environ.get(
    "PROXY_DEFAULT_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36",
)

# Upper bound for one relay delivery; a recipient slower than this misses the frame
RELAY_SEND_TIMEOUT = float(os.environ.get("RELAY_SEND_TIMEOUT", "5"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")


def _parse_key_value_list(raw: str) -> dict:
    mapping: dict = {}
    for entry in raw.split(","):
        key, sep, val = entry.partition("=")
        if sep and key.strip() and val.strip():
            mapping[key.strip()] = val.strip()
    return mapping


OTLP_HEADERS = _parse_key_value_list(os.getenv("OTLP_HEADERS", ""))
