import logging, secrets, time
from pathlib import Path
from typing import Optional

log = logging.getLogger(__name__)

PHOTO_EXTS = {".jpg", ".jpeg", ".png", ".webp"}
VIDEO_EXTS = {".mp4", ".mov", ".mkv", ".webm", ".m4v"}
AUDIO_EXTS = {".mp3", ".m4a", ".aac", ".ogg", ".opus", ".flac", ".wav"}
PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp")


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def unique_prefix(tag: str = "media") -> str:
    """<tag>_<ms timestamp>_<random hex>; the token keeps same-millisecond requests apart."""
    return f"{tag}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def find_artifact(directory: Path, prefix: str) -> Optional[Path]:
    """First finished file named ``<prefix>.<ext>`` in ``directory``.

    yt-dlp picks the extension itself, so the path cannot be precomputed.
    """
    try:
        candidates = sorted(p for p in directory.iterdir() if p.name.startswith(prefix + "."))
    except FileNotFoundError:
        return None
    for p in candidates:
        if p.is_file() and not p.name.endswith(PARTIAL_SUFFIXES):
            return p
    return None


def remove_artifacts(directory: Path, prefix: str) -> int:
    """Delete every file carrying ``prefix``. Failures are logged, not raised."""
    removed = 0
    try:
        entries = list(directory.glob(f"{prefix}*"))
    except OSError as e:
        log.error("Cannot list %s: %s", directory, e)
        return 0
    for p in entries:
        try:
            p.unlink()
            removed += 1
        except FileNotFoundError:
            pass
        except OSError as e:
            log.error("Error deleting temp file %s: %s", p, e)
    return removed


def purge_scratch(directory: Path) -> int:
    """Remove leftovers from a previous run."""
    removed = 0
    for p in directory.iterdir():
        if not p.is_file():
            continue
        try:
            p.unlink()
            removed += 1
        except OSError as e:
            log.error("Error deleting stale file %s: %s", p, e)
    if removed:
        log.info("Purged %d stale file(s) from %s", removed, directory)
    return removed


def media_kind(path: Path) -> str:
    ext = path.suffix.lower()
    if ext in PHOTO_EXTS:
        return "photo"
    if ext in VIDEO_EXTS:
        return "video"
    if ext in AUDIO_EXTS:
        return "audio"
    return "document"


def size_mb(size: int) -> float:
    return size / (1024 * 1024)
