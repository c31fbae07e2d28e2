from __future__ import annotations

import hmac
import logging

from fastapi import FastAPI, HTTPException, Request, status
from telegram import Bot
from telegram.error import TelegramError

from .cloudflare_client import mask_secrets
from .dispatcher import Dispatcher
from .registry import UserRegistry
from .schemas import HealthResponse, WebhookAck
from .sessions import SessionStore


LOGGER = logging.getLogger("cfworker-bot.webhook")
ALLOWED_UPDATES = ["message", "callback_query"]


def create_app(
    dispatcher: Dispatcher,
    token: str,
    registry: UserRegistry,
    sessions: SessionStore,
    bot: Bot | None = None,
    public_url: str = "",
) -> FastAPI:
    app = FastAPI(title="cfworker-bot-webhook", version="1.0.0")

    @app.on_event("startup")
    async def startup_register_webhook() -> None:
        if bot is None:
            return
        await bot.initialize()
        if not public_url:
            return
        try:
            await bot.set_webhook(url=f"{public_url}/bot{token}", allowed_updates=ALLOWED_UPDATES)
            LOGGER.info("Webhook Telegram terdaftar di %s", public_url)
        except TelegramError as exc:
            LOGGER.warning("Gagal set webhook Telegram: %s", mask_secrets(str(exc)))

    @app.on_event("shutdown")
    async def shutdown_bot() -> None:
        if bot is not None:
            await bot.shutdown()

    @app.get("/health", response_model=HealthResponse)
    def health() -> dict:
        return {
            "status": "ok",
            "service": "cfworker-bot",
            "registered_users": len(registry.all()),
            "active_sessions": len(sessions),
        }

    @app.post("/bot{path_token}", response_model=WebhookAck)
    async def telegram_webhook(path_token: str, request: Request) -> dict:
        if not hmac.compare_digest(path_token.encode("utf-8"), token.encode("utf-8")):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payload bukan JSON.") from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payload harus JSON object.")

        try:
            await dispatcher.handle_update(payload)
        except Exception:
            # Update selalu di-ack, termasuk yang gagal diproses.
            LOGGER.exception("Gagal memproses update %s", payload.get("update_id"))
        return {"ok": True}

    return app
