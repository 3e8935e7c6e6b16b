import os, json, logging
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

log = logging.getLogger(__name__)

CONFIG_FILE = Path("config.json")
DEFAULT_CONFIG: Dict[str, object] = {
    "BOT_TOKEN": "",
    "ADMIN_ID": 0,
    "MAX_FILE_SIZE_MB": 50,                # Telegram bot upload ceiling
    "SCRATCH_DIR": "temp",
    "USERS_FILE": "users.json",
    "COOKIES_FILE": "",
    "COOKIES_B64": "",
    "COOKIES_BROWSER": "",
    "YT_DLP_BIN": "yt-dlp",
    "USER_AGENT": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "FETCH_TIMEOUT_SECONDS": 600,
    "SEND_TIMEOUT_SECONDS": 120,           # Telegram send timeouts, scaled by size
    "SEND_RETRIES": 3,
    "RETRY_BACKOFF_SECONDS": 2.0,
    "SESSION_TTL_SECONDS": 600,
    "MIN_QUERY_LENGTH": 3,
}


def _coerce(default: object, raw: str) -> object:
    if isinstance(default, bool):
        return raw.lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def load_config(path: Optional[Path] = None, env: Optional[Dict[str, str]] = None) -> Dict[str, object]:
    """Defaults, then config.json, then environment variables (.env included)."""
    if env is None:
        load_dotenv()
        env = dict(os.environ)
    cfg = DEFAULT_CONFIG.copy()
    path = path or CONFIG_FILE
    if path.is_file():
        try:
            cfg.update(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError):
            log.warning("Could not read %s, using defaults.", path)

    for k, v in list(cfg.items()):
        ev = env.get(k)
        if ev is None or ev == "":
            continue
        try:
            cfg[k] = _coerce(v, ev.strip())
        except ValueError:
            log.warning("Invalid value for %s: %s", k, ev)
    return cfg


def max_file_bytes(cfg: Dict[str, object]) -> int:
    return int(cfg["MAX_FILE_SIZE_MB"]) * 1024 * 1024
