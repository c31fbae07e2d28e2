from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import httpx
import pytest

from cfworker_bot.cloudflare_client import CloudflareClient
from cfworker_bot.config import AppConfig
from cfworker_bot.dispatcher import Dispatcher
from cfworker_bot.errors import TransportError
from cfworker_bot.menus import Keyboard
from cfworker_bot.registry import UserRegistry
from cfworker_bot.sessions import SessionStore, Step

ADMIN_ID = "1000"
USER_ID = "42"
BASE_URL = "https://cf.test/client/v4"


def make_config(**overrides: Any) -> AppConfig:
    config = AppConfig(
        token="123456:TEST-TOKEN-abcdefghijklmnopqrstuvwxyz",
        admin_user_id=ADMIN_ID,
        cloudflare_base_url=BASE_URL,
        cloudflare_timeout_seconds=5.0,
        user_db_file="",
        ask_zone_id=False,
        kv_binding_name="KV",
        history_limit=50,
        worker_file_max_bytes=1024 * 1024,
        bot_mode="polling",
        webhook_host="127.0.0.1",
        webhook_port=8443,
        webhook_public_url="",
    )
    return replace(config, **overrides)


def envelope(result: Any = None, success: bool = True, errors: list | None = None) -> dict:
    return {"success": success, "result": result, "errors": errors or [], "messages": []}


@dataclass
class SentMessage:
    chat_id: int
    text: str
    keyboard: Keyboard | None

    def buttons(self) -> list[str]:
        return [button.data for row in (self.keyboard or []) for button in row]


@dataclass
class FakeTransport:
    messages: list[SentMessage] = field(default_factory=list)
    answers: list[tuple[str, str | None, bool]] = field(default_factory=list)
    files: dict[str, bytes] = field(default_factory=dict)

    async def send_message(self, chat_id: int, text: str, keyboard: Keyboard | None = None) -> None:
        self.messages.append(SentMessage(chat_id, text, keyboard))

    async def answer_callback(self, callback_id: str, text: str | None = None, show_alert: bool = False) -> None:
        self.answers.append((callback_id, text, show_alert))

    async def download_file(self, file_id: str) -> bytes:
        if file_id not in self.files:
            raise TransportError(f"file {file_id} tidak ada")
        return self.files[file_id]

    @property
    def last(self) -> SentMessage:
        return self.messages[-1]


class FakeCloudflareApi:
    """Routes requests by (method, path below the base URL) and records every call."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], httpx.Response | Exception] = {}
        self.requests: list[httpx.Request] = []
        self.delay = 0.0

    def on(self, method: str, path: str, payload: dict | None = None, status: int = 200) -> None:
        self.routes[(method, path)] = httpx.Response(status, json=payload if payload is not None else envelope())

    def fail(self, method: str, path: str, exc: Exception) -> None:
        self.routes[(method, path)] = exc

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        path = request.url.path.removeprefix("/client/v4")
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json=envelope(success=False, errors=[{"code": 10007, "message": "not found"}]))
        if isinstance(route, Exception):
            raise route
        return route

    def calls(self, method: str, path: str | None = None) -> list[httpx.Request]:
        return [
            req
            for req in self.requests
            if req.method == method and (path is None or req.url.path.removeprefix("/client/v4") == path)
        ]

    def client(self) -> CloudflareClient:
        return CloudflareClient(BASE_URL, timeout=5.0, transport=httpx.MockTransport(self.handler))


def message_update(user_id: str, text: str | None = None, document: dict | None = None, first_name: str = "Budi") -> dict:
    message: dict[str, Any] = {
        "message_id": 10,
        "date": 0,
        "from": {"id": int(user_id), "is_bot": False, "first_name": first_name},
        "chat": {"id": int(user_id), "type": "private"},
    }
    if text is not None:
        message["text"] = text
    if document is not None:
        message["document"] = document
    return {"update_id": 1, "message": message}


def callback_update(user_id: str, data: str, callback_id: str = "cb-1") -> dict:
    return {
        "update_id": 2,
        "callback_query": {
            "id": callback_id,
            "from": {"id": int(user_id), "is_bot": False, "first_name": "Budi"},
            "message": {"message_id": 11, "date": 0, "chat": {"id": int(user_id), "type": "private"}},
            "chat_instance": "ci",
            "data": data,
        },
    }


class BotHarness:
    def __init__(self, config: AppConfig | None = None, db_file: Path | None = None) -> None:
        self.config = config or make_config()
        self.api = FakeCloudflareApi()
        self.transport = FakeTransport()
        self.registry = UserRegistry(ADMIN_ID, db_file)
        self.sessions = SessionStore(history_limit=self.config.history_limit)
        self.dispatcher = Dispatcher(self.config, self.registry, self.sessions, self.api.client(), self.transport)

    def update(self, payload: dict) -> None:
        asyncio.run(self.dispatcher.handle_update(payload))

    def text(self, user_id: str, text: str) -> None:
        self.update(message_update(user_id, text=text))

    def document(self, user_id: str, file_id: str, file_name: str = "worker.js", file_size: int = 10) -> None:
        doc = {"file_id": file_id, "file_unique_id": f"u-{file_id}", "file_name": file_name, "file_size": file_size}
        self.update(message_update(user_id, document=doc))

    def press(self, user_id: str, data: str) -> None:
        self.update(callback_update(user_id, data))

    def step(self, user_id: str) -> Step:
        return self.sessions.get(user_id).step

    def approve(self, user_id: str = USER_ID, name: str = "Budi") -> None:
        self.registry.register(user_id, name)
        self.registry.approve(user_id, ADMIN_ID)

    def login(self, user_id: str = USER_ID, account_id: str = "A1", token: str = "T1") -> None:
        self.approve(user_id)
        self.api.on("GET", f"/accounts/{account_id}/workers/scripts", envelope([]))
        self.text(user_id, "/start")
        self.text(user_id, account_id)
        self.text(user_id, token)
        assert self.step(user_id) is Step.LOGGED_IN
        self.api.requests.clear()
        self.transport.messages.clear()


@pytest.fixture
def bot() -> BotHarness:
    return BotHarness()


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content.decode("utf-8"))
