"""Per-request orchestration: from a pasted link to a delivered file or a canned failure reply."""

import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

from .classify import MessageKind, classify, extract_url
from .config import max_file_bytes
from .downloader import Downloader, FetchJob, convert_to_mp3
from .errors import (
    ArtifactMissingError,
    DeliveryError,
    ErrorKind,
    FetchError,
    InvalidInputError,
    RelayError,
    TooLargeError,
    user_message,
)
from .registry import UserRegistry
from .retry import call_with_retry, send_timeout
from .sessions import Expectation, PendingState, SessionStore
from .utils import find_artifact, media_kind, remove_artifacts, size_mb, unique_prefix

log = logging.getLogger(__name__)

FORMAT_OPTIONS: Dict[str, str] = {"1": "video", "2": "audio"}
FORMAT_LABELS: Dict[str, str] = {"video": "🎬 Video", "audio": "🎧 Audio (MP3)"}
AUDIO_SELECTOR = "bestaudio/best"
AUDIO_READY_EXTS = (".mp3", ".m4a")

PROCESSING_TEXT = "📥 Downloading... Please wait."
DONE_TEXT = "✅ Done."
CHOOSE_TEXT = "Choose a format (reply 1 or 2):"
ASK_LINK_TEXT = "📎 Send me the link you want to download."


class Chat(Protocol):
    """The slice of the messaging client one conversation needs. Methods return message ids."""

    async def send_text(self, text: str, reply_to: Optional[int] = None) -> int: ...

    async def send_choices(self, text: str, options: Dict[str, str], reply_to: Optional[int] = None) -> int: ...

    async def send_media(self, kind: str, path: Path, caption: Optional[str] = None,
                         reply_to: Optional[int] = None, timeout: Optional[float] = None) -> int: ...

    async def edit_text(self, message_id: int, text: str) -> None: ...

    async def delete(self, message_id: int) -> None: ...


class Orchestrator:
    def __init__(
        self,
        cfg: Dict[str, object],
        sessions: SessionStore,
        registry: UserRegistry,
        downloader: Downloader,
        scratch_dir: Path,
    ):
        self.sessions = sessions
        self.registry = registry
        self.downloader = downloader
        self.scratch_dir = Path(scratch_dir)
        self.max_bytes = max_file_bytes(cfg)
        self.min_query_length = int(cfg["MIN_QUERY_LENGTH"])
        self.send_timeout_base = float(cfg["SEND_TIMEOUT_SECONDS"])
        self.send_attempts = int(cfg["SEND_RETRIES"])
        self.backoff = float(cfg["RETRY_BACKOFF_SECONDS"])
        mb = int(cfg["MAX_FILE_SIZE_MB"])
        self.video_selector = f"b[filesize<{mb}M]/bv*+ba/best"

    # ---- entry points (never raise) ----

    async def handle_text(self, chat: Chat, user_id: int, text: str, message_id: Optional[int] = None) -> None:
        try:
            self.sessions.purge_expired()
            await self._route(chat, user_id, (text or "").strip(), message_id)
        except Exception:
            log.exception("Unhandled error for user %s", user_id)
            self.sessions.clear(user_id)
            await self._reply(chat, user_message(ErrorKind.INTERNAL), message_id)

    async def choose_format(self, chat: Chat, user_id: int, choice: str, message_id: Optional[int] = None) -> None:
        try:
            await self._choose(chat, user_id, (choice or "").strip(), message_id)
        except Exception:
            log.exception("Unhandled error for user %s", user_id)
            self.sessions.clear(user_id)
            await self._reply(chat, user_message(ErrorKind.INTERNAL), message_id)

    async def begin_download(self, chat: Chat, user_id: int, message_id: Optional[int] = None) -> None:
        self.sessions.put(user_id, PendingState(Expectation.EXPECT_LINK))
        await self._reply(chat, ASK_LINK_TEXT, message_id)

    # ---- routing ----

    async def _route(self, chat: Chat, user_id: int, text: str, message_id: Optional[int]) -> None:
        pending = self.sessions.get(user_id)
        if pending is not None and pending.kind is Expectation.EXPECT_FORMAT:
            await self._choose(chat, user_id, text, message_id)
            return
        if pending is not None and pending.kind is Expectation.EXPECT_LINK:
            self.sessions.clear(user_id)
            url = extract_url(text)
            if url is None:
                await self._reply(chat, user_message(ErrorKind.INVALID_INPUT), message_id)
                return
            text = url

        kind = classify(text, self.min_query_length)
        log.info("User %s sent %s message", user_id, kind.value)
        if kind is MessageKind.NONE:
            return
        if kind is MessageKind.PLATFORM_B:
            self.sessions.put(user_id, PendingState(Expectation.EXPECT_FORMAT, url=extract_url(text), options=dict(FORMAT_OPTIONS)))
            labels = {key: FORMAT_LABELS[value] for key, value in FORMAT_OPTIONS.items()}
            await call_with_retry(chat.send_choices, CHOOSE_TEXT, labels, reply_to=message_id,
                                  timeout=self.send_timeout_base, attempts=self.send_attempts, backoff=self.backoff)
            return

        if kind is MessageKind.PLATFORM_A:
            job = self._job(extract_url(text))
        elif kind is MessageKind.URL:
            job = self._job(extract_url(text), self.video_selector)
        else:
            job = self._job(f"ytsearch1:{text}", self.video_selector)
        await self.deliver(chat, job, reply_to=message_id)

    async def _choose(self, chat: Chat, user_id: int, choice: str, message_id: Optional[int]) -> None:
        state = self.sessions.pop(user_id)
        if state is None or state.kind is not Expectation.EXPECT_FORMAT or not state.url:
            await self._reply(chat, user_message(ErrorKind.INVALID_INPUT), message_id)
            return
        option = state.options.get(choice)
        if option is None:
            log.info("User %s made invalid format choice %r", user_id, choice)
            await self._reply(chat, user_message(ErrorKind.INVALID_INPUT), message_id)
            return
        if option == "audio":
            job = self._job(state.url, AUDIO_SELECTOR, audio=True)
        else:
            job = self._job(state.url, self.video_selector)
        await self.deliver(chat, job, reply_to=message_id)

    def _job(self, target: Optional[str], format_selector: Optional[str] = None, audio: bool = False) -> FetchJob:
        if not target:
            raise InvalidInputError("no target")
        return FetchJob(target=target, prefix=unique_prefix(), scratch_dir=self.scratch_dir,
                        format_selector=format_selector, audio=audio)

    # ---- delivery ----

    async def deliver(self, chat: Chat, job: FetchJob, reply_to: Optional[int] = None) -> bool:
        """Fetch, gate, upload and clean up one artifact. True when the file was sent."""
        notice: Optional[int] = None
        try:
            notice = await self._call(chat.send_text, PROCESSING_TEXT, reply_to=reply_to)
            await self.downloader.fetch(job)

            as_document = False
            artifact = find_artifact(job.scratch_dir, job.prefix)
            if artifact is None:
                raise ArtifactMissingError(f"no file with prefix {job.prefix}")
            if job.audio and artifact.suffix.lower() not in AUDIO_READY_EXTS:
                mp3 = job.scratch_dir / f"{job.prefix}.mp3"
                if await convert_to_mp3(artifact, mp3):
                    artifact = mp3
                else:
                    log.warning("mp3 conversion failed, sending %s as a document", artifact.name)
                    as_document = True

            size = artifact.stat().st_size
            if size > self.max_bytes:
                raise TooLargeError(size, self.max_bytes)

            kind = "document" if as_document else media_kind(artifact)
            try:
                upload_timeout = send_timeout(size, self.send_timeout_base)
                await call_with_retry(chat.send_media, kind, artifact, f"✅ {size_mb(size):.1f}MB", reply_to, upload_timeout,
                                      timeout=upload_timeout, attempts=self.send_attempts, backoff=self.backoff)
            except Exception as e:
                raise DeliveryError(f"{type(e).__name__}: {e}") from e

            try:
                await self._call(chat.delete, notice)
            except Exception as e:
                log.warning("Could not delete processing notice: %s", e)
            await self._reply(chat, DONE_TEXT)
            self.registry.increment_downloads()
            log.info("Delivered %s (%s, %d bytes)", artifact.name, kind, size)
            return True
        except FetchError as e:
            log.error("Fetch failed for %s [%s]: %s", job.target, e.kind.value, (e.stderr or e.detail)[-800:])
            await self.report(chat, notice, e.kind)
        except RelayError as e:
            log.error("Request for %s failed [%s]: %s", job.target, e.kind.value, e.detail)
            await self.report(chat, notice, e.kind)
        except Exception:
            log.exception("Unexpected error while handling %s", job.target)
            await self.report(chat, notice, ErrorKind.INTERNAL)
        finally:
            remove_artifacts(job.scratch_dir, job.prefix)
        return False

    async def report(self, chat: Chat, notice: Optional[int], kind: ErrorKind) -> None:
        """Turn the processing notice into the error reply; send a fresh message if that fails."""
        text = user_message(kind)
        if notice is not None:
            try:
                await self._call(chat.edit_text, notice, text)
                return
            except Exception as e:
                log.warning("Could not edit processing notice: %s", e)
        await self._reply(chat, text)

    # ---- plumbing ----

    async def _call(self, func, *args, **kwargs):
        return await call_with_retry(func, *args, timeout=self.send_timeout_base,
                                     attempts=self.send_attempts, backoff=self.backoff, **kwargs)

    async def _reply(self, chat: Chat, text: str, reply_to: Optional[int] = None) -> None:
        try:
            await self._call(chat.send_text, text, reply_to=reply_to)
        except Exception:
            log.exception("Could not send reply")
