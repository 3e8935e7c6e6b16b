import datetime as dt
from pathlib import Path
from types import SimpleNamespace

import pytest
from telegram.error import BadRequest

from media_relay.config import load_config
from media_relay.downloader import Downloader
from media_relay.registry import UserRegistry
from media_relay.sessions import SessionStore
from media_relay.workflow import Orchestrator

MB = 1024 * 1024


class FakeChat:
    def __init__(self):
        self.sent = []
        self.choices = []
        self.media = []
        self.edits = []
        self.deleted = []
        self.media_errors = []
        self.fail_edit = False
        self._next_id = 100

    def _id(self):
        self._next_id += 1
        return self._next_id

    async def send_text(self, text, reply_to=None):
        self.sent.append(text)
        return self._id()

    async def send_choices(self, text, options, reply_to=None):
        self.choices.append((text, dict(options)))
        return self._id()

    async def send_media(self, kind, path, caption=None, reply_to=None, timeout=None):
        if self.media_errors:
            raise self.media_errors.pop(0)
        assert path.is_file()
        self.media.append((kind, path.name, path.stat().st_size))
        return self._id()

    async def edit_text(self, message_id, text):
        if self.fail_edit:
            raise BadRequest("Message to edit not found")
        self.edits.append((message_id, text))

    async def delete(self, message_id):
        self.deleted.append(message_id)


class FakeRunner:
    """Stands in for yt-dlp: records commands and writes ``<prefix>.<ext>`` of ``size`` bytes."""

    def __init__(self, ext="mp4", size=1024, errors=()):
        self.ext = ext
        self.size = size
        self.errors = list(errors)
        self.calls = []

    async def __call__(self, cmd, timeout):
        self.calls.append(list(cmd))
        if self.errors:
            raise self.errors.pop(0)
        if self.ext:
            template = cmd[cmd.index("-o") + 1]
            path = Path(template.replace("%(ext)s", self.ext))
            with open(path, "wb") as f:
                f.truncate(self.size)
        return ""


class FakeBot:
    defaults = None

    def __init__(self):
        self.calls = []
        self._next_id = 500

    def _record(self, name, args, kwargs):
        self.calls.append((name, args, kwargs))
        self._next_id += 1
        return SimpleNamespace(message_id=self._next_id)

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)

        async def method(*args, **kwargs):
            return self._record(name, args, kwargs)
        return method


@pytest.fixture
def cfg(tmp_path):
    cfg = load_config(path=tmp_path / "absent.json", env={})
    cfg.update({
        "SCRATCH_DIR": str(tmp_path / "scratch"),
        "USERS_FILE": str(tmp_path / "users.json"),
        "RETRY_BACKOFF_SECONDS": 0.0,
        "SEND_TIMEOUT_SECONDS": 5,
    })
    return cfg


@pytest.fixture
def scratch(tmp_path):
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def registry(tmp_path):
    return UserRegistry(tmp_path / "users.json", admin_id=42, today=lambda: dt.date(2026, 10, 18))


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def orchestrator(cfg, registry, runner, scratch):
    return Orchestrator(
        cfg,
        sessions=SessionStore(ttl=600),
        registry=registry,
        downloader=Downloader(runner=runner, timeout=5),
        scratch_dir=scratch,
    )
