from __future__ import annotations

import logging
from dataclasses import dataclass

import uvicorn
from telegram import Bot, BotCommand, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from .cloudflare_client import CloudflareClient, mask_secrets
from .config import AppConfig, load_config
from .dispatcher import Dispatcher
from .events import CallbackEvent, DocumentRef, InboundMessage
from .registry import UserRegistry
from .sessions import SessionStore
from .telegram_transport import TelegramTransport
from .webhook import ALLOWED_UPDATES, create_app


LOGGER = logging.getLogger("cfworker-bot")
# Commands and all other messages share one handler, as in webhook mode.
MESSAGE_FILTER = filters.UpdateType.MESSAGE


@dataclass
class Runtime:
    config: AppConfig
    registry: UserRegistry
    sessions: SessionStore
    dispatcher: Dispatcher


def _get_runtime(context: ContextTypes.DEFAULT_TYPE) -> Runtime:
    runtime = context.application.bot_data.get("runtime")
    if not isinstance(runtime, Runtime):
        raise RuntimeError("Runtime belum terinisialisasi.")
    return runtime


def _message_event(update: Update) -> InboundMessage | None:
    msg = update.effective_message
    user = update.effective_user
    chat = update.effective_chat
    if msg is None or user is None or chat is None:
        return None

    document = None
    if msg.document is not None:
        document = DocumentRef(
            file_id=msg.document.file_id,
            file_name=msg.document.file_name or "",
            file_size=int(msg.document.file_size or 0),
        )
    return InboundMessage(
        user_id=str(user.id),
        chat_id=chat.id,
        display_name=user.full_name,
        text=msg.text,
        document=document,
    )


def _callback_event(update: Update) -> CallbackEvent | None:
    query = update.callback_query
    if query is None or query.from_user is None:
        return None
    chat_id = query.message.chat.id if query.message is not None else query.from_user.id
    return CallbackEvent(
        callback_id=query.id,
        user_id=str(query.from_user.id),
        chat_id=chat_id,
        data=query.data or "",
        display_name=query.from_user.full_name,
    )


async def on_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    event = _message_event(update)
    if event is None:
        return
    await _get_runtime(context).dispatcher.handle_inbound(event)


async def on_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    event = _callback_event(update)
    if event is None:
        return
    await _get_runtime(context).dispatcher.handle_callback(event)


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    LOGGER.error("Gagal memproses update: %s", mask_secrets(str(context.error)), exc_info=context.error)


async def post_init(application: Application) -> None:
    try:
        await application.bot.set_my_commands(
            [
                BotCommand("start", "Mulai / login Cloudflare"),
                BotCommand("menu", "Tampilkan menu utama"),
                BotCommand("logout", "Logout dan hapus kredensial"),
            ]
        )
    except TelegramError as exc:
        LOGGER.warning("Gagal set bot commands: %s", exc)


def _build_runtime(config: AppConfig, transport: TelegramTransport) -> Runtime:
    registry = UserRegistry(config.admin_user_id, config.user_db_file or None)
    sessions = SessionStore(history_limit=config.history_limit)
    cloudflare = CloudflareClient(config.cloudflare_base_url, timeout=config.cloudflare_timeout_seconds)
    dispatcher = Dispatcher(config, registry, sessions, cloudflare, transport)
    return Runtime(config=config, registry=registry, sessions=sessions, dispatcher=dispatcher)


def run_polling(config: AppConfig) -> None:
    application = Application.builder().token(config.token).post_init(post_init).build()
    runtime = _build_runtime(config, TelegramTransport(application.bot))
    application.bot_data["runtime"] = runtime

    application.add_handler(CallbackQueryHandler(on_callback))
    application.add_handler(MessageHandler(MESSAGE_FILTER, on_message))
    application.add_error_handler(on_error)

    LOGGER.info("Starting cfworker-bot (polling)")
    application.run_polling(allowed_updates=ALLOWED_UPDATES)


def run_webhook(config: AppConfig) -> None:
    bot = Bot(config.token)
    runtime = _build_runtime(config, TelegramTransport(bot))
    app = create_app(
        runtime.dispatcher,
        config.token,
        runtime.registry,
        runtime.sessions,
        bot=bot,
        public_url=config.webhook_public_url,
    )

    LOGGER.info("Starting cfworker-bot (webhook) on %s:%s", config.webhook_host, config.webhook_port)
    uvicorn.run(app, host=config.webhook_host, port=config.webhook_port, log_level="info")


def main() -> None:
    logging.basicConfig(
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        level=logging.INFO,
    )
    # URL request Bot API memuat token.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    config = load_config()
    if config.bot_mode == "webhook":
        run_webhook(config)
    else:
        run_polling(config)


if __name__ == "__main__":
    main()
