"""Runtime configuration for providers, storage and background generation.

Architectural role:
    Centralizes every environment-driven setting consumed by `arena.image`,
    `arena.storage`, `arena.core.engine` and the API entrypoints.

Resolution:
    Values are read once at import time after `load_dotenv()`. Key material is
    resolved lazily by `load_key` so tests can override the environment
    without reloading this module.

Determinism:
    Deterministic for a fixed process environment and key files.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Outbound HTTP timeout for vendor calls (seconds).
PROVIDER_HTTP_TIMEOUT = float(os.getenv("PROVIDER_HTTP_TIMEOUT", "60"))

# Requests for more images than this are clamped.
MAX_IMAGES_PER_REQUEST = 4
DEFAULT_IMAGES_PER_REQUEST = 2

# Vendor endpoint map. `key_file` doubles as the source of the env var name,
# see `load_key`.
IMAGE_PROVIDERS = {

    "freepik": {
        "url": "https://api.freepik.com",
        "key_file": "config/freepik.key",
    },

    "leonardo-ai": {
        "url": "https://cloud.leonardo.ai/api/rest/v1",
        "key_file": "config/leonardo.key",
    },

    "google-imagen": {
        "url": "https://generativelanguage.googleapis.com/v1beta",
        "key_file": "config/google.key",
    },

}

# Leonardo Creative
LEONARDO_MODEL_ID = os.getenv("LEONARDO_MODEL_ID", "6bef9f1b-29cb-40c7-b9df-32b51c1f67d3")
LEONARDO_POLL_ATTEMPTS = 24
LEONARDO_POLL_INTERVAL = 5.0

IMAGEN_MODEL = os.getenv("IMAGEN_MODEL", "imagen-4.0-generate-001")

# Key-value store
REDIS_URL = os.getenv("REDIS_URL")
VALKEY_HOST = os.getenv("DO_VALKEY_HOST")
VALKEY_PORT = os.getenv("DO_VALKEY_PORT")
VALKEY_PASSWORD = os.getenv("DO_VALKEY_PASSWORD")

# Image storage
USE_DO_SPACES = _env_bool("USE_DO_SPACES")
SPACES_BUCKET = os.getenv("DO_SPACES_BUCKET")
SPACES_ENDPOINT = os.getenv("DO_SPACES_ENDPOINT")
SPACES_ACCESS_KEY = os.getenv("DO_SPACES_ACCESS_KEY")
SPACES_SECRET_KEY = os.getenv("DO_SPACES_SECRET_KEY")
IMAGES_DIR = os.getenv("IMAGES_DIR", "images")
IMAGES_BASE_URL = os.getenv("IMAGES_BASE_URL", "/images")

# Background generation
AUTO_GENERATE_ENABLED = _env_bool("AUTO_GENERATE_ENABLED")
AUTO_GENERATE_INTERVAL_SECONDS = float(os.getenv("AUTO_GENERATE_INTERVAL_SECONDS", "3600"))
AUTO_GENERATE_JITTER_SECONDS = float(os.getenv("AUTO_GENERATE_JITTER_SECONDS", "30"))
GENERATION_LOCK_TTL_SECONDS = int(os.getenv("GENERATION_LOCK_TTL_SECONDS", "300"))


def key_env_name(path: str) -> str:
    """Map a key-file path to its environment override name.

    `config/freepik.key` -> `FREEPIK_API_KEY`.
    """
    return os.path.splitext(os.path.basename(path))[0].upper() + "_API_KEY"


def load_key(path):
    """Load API key from environment override or key file.

    Resolution order:
        1. Environment variable inferred from file stem (see `key_env_name`).
        2. Raw file contents at `path`.

    Args:
        path: Configured key file path or `None`.

    Returns:
        Key string or `None` when not available.

    Edge cases:
        - `None` path returns `None`.
        - Missing or empty file returns `None`.
    """
    if not path:
        return None
    env_value = os.getenv(key_env_name(path))
    if env_value:
        return env_value
    if not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return f.read().strip() or None


def redis_url() -> str | None:
    """Return the store URL, preferring `REDIS_URL` over Valkey host settings.

    Managed Valkey only accepts TLS, so host/port settings produce `rediss://`.
    """
    if REDIS_URL:
        return REDIS_URL
    if VALKEY_HOST and VALKEY_PORT:
        auth = f":{VALKEY_PASSWORD}@" if VALKEY_PASSWORD else ""
        return f"rediss://{auth}{VALKEY_HOST}:{VALKEY_PORT}/0"
    return None
