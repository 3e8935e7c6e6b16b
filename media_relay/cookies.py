import base64, binascii, logging
from pathlib import Path
from typing import Dict, Optional

log = logging.getLogger(__name__)


def write_cookies_file(path: Path, b64: str) -> bool:
    """Decode base64 cookies (Netscape format) and write them to ``path``."""
    if not b64:
        return False
    try:
        data = base64.b64decode(b64)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except (binascii.Error, ValueError, OSError) as e:
        log.error("Failed writing cookies to %s: %s", path, e)
        return False
    ok = path.is_file() and path.stat().st_size > 0
    log.info("Wrote cookies to %s (size=%d)", path, path.stat().st_size if ok else 0)
    return ok


def prepare_cookies(cfg: Dict[str, object]) -> Optional[Path]:
    """Return the credential file yt-dlp should use, or None.

    ``COOKIES_B64`` wins over an existing ``COOKIES_FILE``: the decoded content
    is written to ``COOKIES_FILE`` (or ``cookies.txt``) first.
    """
    raw_path = str(cfg.get("COOKIES_FILE") or "")
    b64 = str(cfg.get("COOKIES_B64") or "")
    if b64:
        target = Path(raw_path or "cookies.txt")
        return target if write_cookies_file(target, b64) else None
    if raw_path:
        target = Path(raw_path)
        if target.is_file():
            log.info("Using cookies file: %s", target)
            return target
        log.warning("COOKIES_FILE %s does not exist; continuing without cookies.", target)
        return None
    log.warning("No cookies configured; some sources may require login.")
    return None
