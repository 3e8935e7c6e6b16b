import functools, logging
from pathlib import Path
from typing import Dict, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, ReplyParameters, Update
from telegram.constants import ChatAction
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from .errors import ErrorKind, user_message
from .registry import Stats, UserClass, UserRegistry
from .workflow import Orchestrator

log = logging.getLogger(__name__)

CHOICE_PREFIX = "fmt:"

START_TEXT = (
    "👋 Hi! Send me an Instagram, YouTube or other media link and I'll send the file back.\n"
    "Plain text is treated as a search query.\n"
    "Use /download for a guided download."
)
ADMIN_ONLY_TEXT = "❌ This command is only available for administrators."


def _reply_to(message_id: Optional[int]) -> Optional[ReplyParameters]:
    if message_id is None:
        return None
    return ReplyParameters(message_id=message_id, allow_sending_without_reply=True)


class TelegramChat:
    """Binds the Chat port used by the workflow to one Telegram chat."""

    def __init__(self, bot, chat_id: int):
        self.bot = bot
        self.chat_id = chat_id

    async def send_text(self, text: str, reply_to: Optional[int] = None) -> int:
        msg = await self.bot.send_message(self.chat_id, text, reply_parameters=_reply_to(reply_to))
        return msg.message_id

    async def send_choices(self, text: str, options: Dict[str, str], reply_to: Optional[int] = None) -> int:
        keyboard = [[InlineKeyboardButton(label, callback_data=CHOICE_PREFIX + key) for key, label in options.items()]]
        msg = await self.bot.send_message(
            self.chat_id, text,
            reply_markup=InlineKeyboardMarkup(keyboard),
            reply_parameters=_reply_to(reply_to),
        )
        return msg.message_id

    async def send_media(self, kind: str, path: Path, caption: Optional[str] = None,
                         reply_to: Optional[int] = None, timeout: Optional[float] = None) -> int:
        common = dict(
            caption=caption,
            reply_parameters=_reply_to(reply_to),
            read_timeout=timeout,
            write_timeout=timeout,
        )
        action = {
            "photo": ChatAction.UPLOAD_PHOTO,
            "video": ChatAction.UPLOAD_VIDEO,
            "audio": ChatAction.UPLOAD_VOICE,
        }.get(kind, ChatAction.UPLOAD_DOCUMENT)
        try:
            await self.bot.send_chat_action(self.chat_id, action)
        except TelegramError as e:
            log.debug("send_chat_action failed: %s", e)

        if kind == "photo":
            msg = await self.bot.send_photo(self.chat_id, photo=path, **common)
        elif kind == "video":
            msg = await self.bot.send_video(self.chat_id, video=path, supports_streaming=True, **common)
        elif kind == "audio":
            msg = await self.bot.send_audio(self.chat_id, audio=path, **common)
        else:
            msg = await self.bot.send_document(self.chat_id, document=path, **common)
        return msg.message_id

    async def edit_text(self, message_id: int, text: str) -> None:
        await self.bot.edit_message_text(text, chat_id=self.chat_id, message_id=message_id)

    async def delete(self, message_id: int) -> None:
        await self.bot.delete_message(self.chat_id, message_id)


def guarded(handler):
    """Catch-all boundary: a failing handler logs and apologises instead of propagating."""

    @functools.wraps(handler)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        try:
            return await handler(update, context)
        except Exception:
            log.exception("Handler %s failed", handler.__name__)
            await apologise(update, context)

    return wrapper


async def apologise(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not isinstance(update, Update) or update.effective_chat is None:
        return
    try:
        await context.bot.send_message(update.effective_chat.id, user_message(ErrorKind.INTERNAL))
    except TelegramError as e:
        log.error("Could not send apology: %s", e)


def track(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[UserClass]:
    user = update.effective_user
    if user is None:
        return None
    registry: UserRegistry = context.bot_data["registry"]
    return registry.record_interaction(user.id, user.username, user.first_name, user.last_name)


def format_stats(stats: Stats, recent) -> str:
    lines = [
        "📊 Bot Status",
        "",
        f"👥 Total Users: {stats.total_users}",
        f"🆕 New Users Today: {stats.new_users_today}",
        f"📥 Total Downloads: {stats.total_downloads}",
        f"📅 Last Reset Date: {stats.last_reset_date}",
    ]
    if recent:
        lines += ["", f"👤 Recent Users (last {len(recent)}):"]
        for i, u in enumerate(recent, 1):
            name = u.get("firstName") or u.get("username") or f"User {u.get('id')}"
            lines.append(f"{i}. {name} (ID: {u.get('id')})")
    return "\n".join(lines)


def _chat(update: Update, context: ContextTypes.DEFAULT_TYPE) -> TelegramChat:
    return TelegramChat(context.bot, update.effective_chat.id)


@guarded
async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    track(update, context)
    await update.effective_message.reply_text(START_TEXT)


@guarded
async def download(update: Update, context: ContextTypes.DEFAULT_TYPE):
    track(update, context)
    orchestrator: Orchestrator = context.bot_data["orchestrator"]
    await orchestrator.begin_download(_chat(update, context), update.effective_user.id,
                                      update.effective_message.message_id)


@guarded
async def status(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if track(update, context) is not UserClass.PRIVILEGED:
        await update.effective_message.reply_text(ADMIN_ONLY_TEXT)
        return
    registry: UserRegistry = context.bot_data["registry"]
    await update.effective_message.reply_text(format_stats(registry.current_stats(), registry.recent_users(10)))


@guarded
async def on_text(update: Update, context: ContextTypes.DEFAULT_TYPE):
    message = update.effective_message
    if message is None or not message.text or update.effective_user is None:
        return
    track(update, context)
    orchestrator: Orchestrator = context.bot_data["orchestrator"]
    await orchestrator.handle_text(_chat(update, context), update.effective_user.id, message.text, message.message_id)


@guarded
async def on_choice(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    await query.answer()
    data = query.data or ""
    if not data.startswith(CHOICE_PREFIX):
        return
    try:
        await query.edit_message_reply_markup(reply_markup=None)
    except TelegramError as e:
        log.debug("Could not remove choice keyboard: %s", e)
    track(update, context)
    orchestrator: Orchestrator = context.bot_data["orchestrator"]
    await orchestrator.choose_format(_chat(update, context), query.from_user.id, data[len(CHOICE_PREFIX):])


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Application-level error handler for anything that escaped the handlers."""
    log.error("Error while handling update %s", update, exc_info=context.error)
    await apologise(update, context)
