import base64
import json
import logging

from media_relay.config import DEFAULT_CONFIG, load_config, max_file_bytes
from media_relay.cookies import prepare_cookies, write_cookies_file


def test_defaults(tmp_path):
    cfg = load_config(path=tmp_path / "missing.json", env={})
    assert cfg == DEFAULT_CONFIG
    assert max_file_bytes(cfg) == 50 * 1024 * 1024


def test_file_then_env_override(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"MAX_FILE_SIZE_MB": 20, "SCRATCH_DIR": "/tmp/x"}))
    cfg = load_config(path=path, env={"MAX_FILE_SIZE_MB": "30", "RETRY_BACKOFF_SECONDS": "0.5", "ADMIN_ID": "42"})
    assert cfg["MAX_FILE_SIZE_MB"] == 30
    assert cfg["SCRATCH_DIR"] == "/tmp/x"
    assert cfg["RETRY_BACKOFF_SECONDS"] == 0.5
    assert cfg["ADMIN_ID"] == 42


def test_bad_values_are_ignored(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken")
    cfg = load_config(path=path, env={"SEND_RETRIES": "many"})
    assert cfg["SEND_RETRIES"] == DEFAULT_CONFIG["SEND_RETRIES"]


def test_write_cookies_file(tmp_path):
    target = tmp_path / "sub" / "cookies.txt"
    payload = b"# Netscape HTTP Cookie File\n.instagram.com\tTRUE\t/\tTRUE\t0\tsessionid\tabc\n"
    assert write_cookies_file(target, base64.b64encode(payload).decode())
    assert target.read_bytes() == payload


def test_prepare_cookies_variants(tmp_path):
    assert prepare_cookies({"COOKIES_FILE": "", "COOKIES_B64": ""}) is None
    assert prepare_cookies({"COOKIES_FILE": str(tmp_path / "absent.txt"), "COOKIES_B64": ""}) is None

    existing = tmp_path / "c.txt"
    existing.write_text("cookies")
    assert prepare_cookies({"COOKIES_FILE": str(existing), "COOKIES_B64": ""}) == existing

    target = tmp_path / "decoded.txt"
    got = prepare_cookies({"COOKIES_FILE": str(target), "COOKIES_B64": base64.b64encode(b"data").decode()})
    assert got == target
    assert target.read_bytes() == b"data"


def test_warnings_go_through_module_logger(tmp_path, caplog):
    path = tmp_path / "config.json"
    path.write_text("{broken")
    with caplog.at_level(logging.WARNING, logger="media_relay.config"):
        load_config(path=path, env={"SEND_RETRIES": "many"})
    assert [r.name for r in caplog.records] == ["media_relay.config", "media_relay.config"]
    assert "SEND_RETRIES" in caplog.records[1].getMessage()
