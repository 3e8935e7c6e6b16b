import asyncio, logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import ffmpeg  # ffmpeg-python

from .errors import ErrorKind, FetchError

log = logging.getLogger(__name__)

# Ordered (substring, kind) pairs matched against lowercased yt-dlp output.
# yt-dlp has no structured error channel; first match wins.
FETCH_ERROR_PATTERNS: Sequence[Tuple[str, ErrorKind]] = (
    ("no video formats found", ErrorKind.FORMAT_UNAVAILABLE),
    ("requested format is not available", ErrorKind.FORMAT_UNAVAILABLE),
    ("login required", ErrorKind.NEEDS_CREDENTIALS),
    ("authentication", ErrorKind.NEEDS_CREDENTIALS),
    ("sign in to confirm", ErrorKind.NEEDS_CREDENTIALS),
    ("cookies", ErrorKind.NEEDS_CREDENTIALS),
    ("not available", ErrorKind.UNAVAILABLE),
    ("unavailable", ErrorKind.UNAVAILABLE),
    ("private", ErrorKind.UNAVAILABLE),
    ("restricted", ErrorKind.UNAVAILABLE),
    ("has been removed", ErrorKind.UNAVAILABLE),
)

Runner = Callable[[List[str], float], Awaitable[str]]


def classify_fetch_error(text: str) -> ErrorKind:
    lowered = (text or "").lower()
    for needle, kind in FETCH_ERROR_PATTERNS:
        if needle in lowered:
            return kind
    return ErrorKind.FETCH_FAILED


@dataclass
class FetchJob:
    target: str                       # URL or "ytsearch1:<query>"
    prefix: str
    scratch_dir: Path
    format_selector: Optional[str] = None
    audio: bool = False

    @property
    def out_template(self) -> Path:
        return self.scratch_dir / f"{self.prefix}.%(ext)s"


def build_fetch_cmd(
    target: str,
    out_template: Path,
    *,
    binary: str = "yt-dlp",
    cookies: Optional[Path] = None,
    browser: Optional[str] = None,
    user_agent: Optional[str] = None,
    format_selector: Optional[str] = None,
) -> List[str]:
    """Argument list for one yt-dlp invocation."""
    cmd = [binary, target, "-o", str(out_template), "--no-playlist", "--no-warnings"]
    if cookies is not None:
        cmd += ["--cookies", str(cookies)]
    elif browser:
        cmd += ["--cookies-from-browser", browser]
    if user_agent:
        cmd += ["--user-agent", user_agent]
    if format_selector:
        cmd += ["-f", format_selector]
    return cmd


async def run_fetch(cmd: List[str], timeout: float) -> str:
    """Run yt-dlp without blocking the event loop; stdout on success, FetchError otherwise."""
    log.info("RUN: %s", " ".join(cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        log.error("Cannot start %s: %s", cmd[0], e)
        raise FetchError(f"cannot start {cmd[0]}: {e}") from e

    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        log.warning("TIMEOUT after %ss: %s", timeout, cmd[1] if len(cmd) > 1 else cmd[0])
        raise FetchError(f"fetch timed out after {timeout}s")

    stdout = out.decode("utf-8", "ignore")
    stderr = err.decode("utf-8", "ignore")
    if proc.returncode != 0:
        log.warning("FAIL rc=%s: %s", proc.returncode, stderr[-1200:] or stdout[-1200:])
        diagnostic = stderr or stdout
        raise FetchError(
            diagnostic.strip()[-500:],
            kind=classify_fetch_error(diagnostic),
            stderr=stderr,
            returncode=proc.returncode,
        )
    log.info("OK: %s", stdout[-1200:])
    return stdout


class Downloader:
    def __init__(
        self,
        binary: str = "yt-dlp",
        cookies: Optional[Path] = None,
        browser: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: float = 600,
        runner: Runner = run_fetch,
    ):
        self.binary = binary
        self.cookies = cookies
        self.browser = browser
        self.user_agent = user_agent
        self.timeout = timeout
        self.runner = runner

    def command(self, job: FetchJob, relaxed: bool = False) -> List[str]:
        return build_fetch_cmd(
            job.target,
            job.out_template,
            binary=self.binary,
            cookies=self.cookies,
            browser=self.browser,
            user_agent=self.user_agent,
            format_selector=None if relaxed else job.format_selector,
        )

    async def fetch(self, job: FetchJob) -> None:
        """Run yt-dlp for ``job``; retry once without ``-f`` when the selector matched no format."""
        try:
            await self.runner(self.command(job), self.timeout)
        except FetchError as e:
            if e.kind is not ErrorKind.FORMAT_UNAVAILABLE or not job.format_selector:
                raise
            log.info("No matching format for %s, retrying without format selector", job.target)
            await self.runner(self.command(job, relaxed=True), self.timeout)


async def convert_to_mp3(in_path: Path, out_path: Path) -> bool:
    try:
        await asyncio.to_thread(
            lambda: ffmpeg
            .input(str(in_path))
            .output(str(out_path), vn=None, acodec="libmp3lame", audio_bitrate="128k")
            .run(overwrite_output=True, quiet=True)
        )
    except ffmpeg.Error as e:
        err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
        log.error("ffmpeg mp3 conversion failed: %s", err[-800:])
        return False
    except OSError as e:
        log.error("ffmpeg not runnable: %s", e)
        return False
    return out_path.is_file() and out_path.stat().st_size > 0
