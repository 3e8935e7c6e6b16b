"""
Telegram bot that relays pasted links to yt-dlp and sends the resulting file back.

Usage:
  export BOT_TOKEN="..."
  export ADMIN_ID="123456"
  python -m media_relay
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from telegram import BotCommand
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    MessageHandler,
    filters,
)

from . import handlers
from .config import load_config
from .cookies import prepare_cookies
from .downloader import Downloader
from .registry import UserRegistry
from .sessions import SessionStore
from .utils import ensure_dir, purge_scratch
from .workflow import Orchestrator

log = logging.getLogger(__name__)

COMMANDS = [
    BotCommand("start", "Introduction"),
    BotCommand("download", "Guided download"),
    BotCommand("status", "View bot status (admin only)"),
]


def setup_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
    logging.getLogger("telegram").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_admin_id(raw: object) -> Optional[int]:
    """Admin chat id from config; anything that is not a non-zero integer disables admin features."""
    try:
        admin_id = int(str(raw).strip() or 0)
    except ValueError:
        log.warning("Invalid ADMIN_ID %r, ignoring it", raw)
        return None
    return admin_id or None


def build_orchestrator(cfg: Dict[str, object]) -> Orchestrator:
    scratch = ensure_dir(Path(str(cfg["SCRATCH_DIR"])))
    admin_id = parse_admin_id(cfg["ADMIN_ID"])
    if admin_id is None:
        log.warning("ADMIN_ID not set - admin features will be disabled")
    downloader = Downloader(
        binary=str(cfg["YT_DLP_BIN"]),
        cookies=prepare_cookies(cfg),
        browser=str(cfg["COOKIES_BROWSER"]) or None,
        user_agent=str(cfg["USER_AGENT"]) or None,
        timeout=float(cfg["FETCH_TIMEOUT_SECONDS"]),
    )
    return Orchestrator(
        cfg,
        sessions=SessionStore(ttl=float(cfg["SESSION_TTL_SECONDS"])),
        registry=UserRegistry(Path(str(cfg["USERS_FILE"])), admin_id=admin_id),
        downloader=downloader,
        scratch_dir=scratch,
    )


async def post_init(app: Application) -> None:
    orchestrator: Orchestrator = app.bot_data["orchestrator"]
    purge_scratch(orchestrator.scratch_dir)
    await app.bot.set_my_commands(COMMANDS)
    log.info("Bot is running...")

    admin_id = orchestrator.registry.admin_id
    if admin_id is None:
        return
    stats = orchestrator.registry.current_stats()
    text = (
        "🤖 Bot Started Successfully!\n\n📊 Current Status:\n"
        f"• Total Users: {stats.total_users}\n"
        f"• New Users Today: {stats.new_users_today}\n"
        f"• Total Downloads: {stats.total_downloads}\n\n"
        "Use /status to view detailed statistics."
    )
    try:
        await app.bot.send_message(admin_id, text)
        log.info("Admin notification sent")
    except TelegramError as e:
        log.error("Error sending admin notification: %s", e)


def build_app(cfg: Dict[str, object]) -> Application:
    orchestrator = build_orchestrator(cfg)
    timeout = float(cfg["SEND_TIMEOUT_SECONDS"])
    app = (
        ApplicationBuilder()
        .token(str(cfg["BOT_TOKEN"]))
        .concurrent_updates(True)
        .read_timeout(timeout)
        .write_timeout(timeout)
        .post_init(post_init)
        .build()
    )
    app.bot_data["orchestrator"] = orchestrator
    app.bot_data["registry"] = orchestrator.registry

    app.add_handler(CommandHandler("start", handlers.start))
    app.add_handler(CommandHandler("help", handlers.start))
    app.add_handler(CommandHandler("download", handlers.download))
    app.add_handler(CommandHandler("status", handlers.status))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handlers.on_text))
    app.add_handler(CallbackQueryHandler(handlers.on_choice, pattern=f"^{handlers.CHOICE_PREFIX}"))
    app.add_error_handler(handlers.on_error)
    return app


def main() -> None:
    setup_logging()
    cfg = load_config()
    if not cfg["BOT_TOKEN"]:
        raise SystemExit("BOT_TOKEN not set.")
    app = build_app(cfg)
    app.run_polling(close_loop=False)


if __name__ == "__main__":
    main()
