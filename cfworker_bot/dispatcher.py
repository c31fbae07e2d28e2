from __future__ import annotations

import asyncio
import logging
import re
import weakref
from collections.abc import Awaitable, Callable
from typing import Any

from . import render
from .cloudflare_client import CloudflareClient
from .config import AppConfig
from .errors import (
    AlreadyApproved,
    NotFound,
    PersistenceError,
    RemoteError,
    TransportError,
    Unauthorized,
    UnexpectedInput,
)
from .events import CallbackEvent, InboundMessage, parse_command, parse_update
from .menus import (
    ACTION_BIND_KV,
    ACTION_CANCEL,
    ACTION_CREATE_KV,
    ACTION_DELETE_KV,
    ACTION_DELETE_WORKER,
    ACTION_DEPLOY_WORKER,
    ACTION_HISTORY,
    ACTION_LIST_KV,
    ACTION_LIST_WORKERS,
    ACTION_LOGOUT,
    PREFIX_APPROVE,
    PREFIX_BIND_KV,
    PREFIX_BIND_WORKER,
    Keyboard,
    approval_menu,
    main_menu,
    selection_menu,
    split_callback,
)
from .registry import UserRegistry
from .sessions import SelectionItem, Session, SessionStore, Step
from .telegram_transport import Transport


LOGGER = logging.getLogger("cfworker-bot.dispatcher")
WORKER_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{0,62}$")
SKIP_VALUES = {"-", "skip", "lewati"}
DISPLAY_NAME_MAX = 64

# Steps reachable only after a successful login; main menu buttons stay usable from all of them.
LOGGED_IN_STEPS = frozenset(
    {
        Step.LOGGED_IN,
        Step.AWAIT_WORKER_NAME,
        Step.AWAIT_WORKER_FILE,
        Step.AWAIT_KV_NAME,
        Step.AWAIT_DELETE_WORKER,
        Step.AWAIT_DELETE_KV,
        Step.BINDING_SELECT_WORKER,
        Step.BINDING_SELECT_KV,
    }
)

MessageHandlerFn = Callable[[InboundMessage, Session], Awaitable[None]]
CallbackHandlerFn = Callable[[CallbackEvent, Session], Awaitable[None]]


class Dispatcher:
    """Routes chat events to the handler of the user's current step.

    Events of one user are processed one at a time; each handled event performs
    at most one Cloudflare call (the binding flow spreads its calls over three
    button presses) and then sends exactly one reply.
    """

    def __init__(
        self,
        config: AppConfig,
        registry: UserRegistry,
        sessions: SessionStore,
        cloudflare: CloudflareClient,
        transport: Transport,
    ) -> None:
        self._config = config
        self._registry = registry
        self._sessions = sessions
        self._cloudflare = cloudflare
        self._transport = transport
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

        self._text_handlers: dict[Step, MessageHandlerFn] = {
            Step.INPUT_NAME: self._on_input_name,
            Step.WAITING_APPROVAL: self._on_waiting_approval,
            Step.INPUT_API_TOKEN: self._on_input_api_token,
            Step.INPUT_ACCOUNT_ID: self._on_input_account_id,
            Step.INPUT_ZONE_ID: self._on_input_zone_id,
            Step.INPUT_KV_NAMESPACE_ID: self._on_input_kv_namespace_id,
            Step.AWAIT_ACCOUNT_ID: self._on_await_account_id,
            Step.AWAIT_API_TOKEN: self._on_await_api_token,
            Step.AWAIT_WORKER_NAME: self._on_await_worker_name,
            Step.AWAIT_WORKER_FILE: self._on_await_worker_file,
            Step.AWAIT_KV_NAME: self._on_await_kv_name,
            Step.AWAIT_DELETE_WORKER: self._on_await_delete_worker,
            Step.AWAIT_DELETE_KV: self._on_await_delete_kv,
            Step.BINDING_SELECT_WORKER: self._on_binding_text,
            Step.BINDING_SELECT_KV: self._on_binding_text,
        }
        self._menu_actions: dict[str, CallbackHandlerFn] = {
            ACTION_DEPLOY_WORKER: self._menu_deploy_worker,
            ACTION_LIST_WORKERS: self._menu_list_workers,
            ACTION_CREATE_KV: self._menu_create_kv,
            ACTION_LIST_KV: self._menu_list_kv,
            ACTION_BIND_KV: self._menu_bind_kv,
            ACTION_DELETE_WORKER: self._menu_delete_worker,
            ACTION_DELETE_KV: self._menu_delete_kv,
            ACTION_HISTORY: self._menu_history,
            ACTION_LOGOUT: self._menu_logout,
        }

    # -- entry points --

    async def handle_update(self, payload: dict[str, Any]) -> None:
        event = parse_update(payload)
        if event is None:
            LOGGER.debug("Update diabaikan (tipe tidak didukung): %s", list(payload or {}))
            return
        if isinstance(event, CallbackEvent):
            await self.handle_callback(event)
            return
        await self.handle_inbound(event)

    async def handle_inbound(self, event: InboundMessage) -> None:
        parsed = parse_command(event.text)
        if parsed is not None:
            command, args = parsed
            await self.handle_command(event, command, args)
            return
        await self.handle_message(event)

    async def handle_command(self, event: InboundMessage, command: str, args: list[str]) -> None:
        async with self._lock_for(event.user_id):
            session = self._touch(event.user_id, event.chat_id)
            if command == "start":
                await self._start(event, session)
            elif command == "menu":
                if self._is_logged_in(event.user_id, session):
                    await self._show_main_menu(event.user_id, event.chat_id)
                else:
                    await self._send(event.chat_id, "Silakan login dulu. Ketik /start.")
            elif command == "logout":
                await self._logout(event.user_id, event.chat_id)
            elif command == "approve":
                target = args[0].strip() if args else ""
                await self._approve(event.user_id, target, event.chat_id)
            else:
                await self._send(event.chat_id, "Perintah tidak dikenal. Ketik /start.")

    async def handle_message(self, event: InboundMessage) -> None:
        async with self._lock_for(event.user_id):
            session = self._touch(event.user_id, event.chat_id)
            handler = self._text_handlers.get(session.step)
            try:
                if handler is None:
                    raise UnexpectedInput(session.step.value, self._idle_hint(session))
                await handler(event, session)
            except UnexpectedInput as exc:
                LOGGER.info("Input user %s tidak cocok untuk step %s", event.user_id, exc.step)
                keyboard = main_menu() if session.step is Step.LOGGED_IN else None
                await self._send(event.chat_id, exc.hint, keyboard)

    async def handle_callback(self, event: CallbackEvent) -> None:
        async with self._lock_for(event.user_id):
            session = self._touch(event.user_id, event.chat_id)
            prefix, value = split_callback(event.data)

            if prefix == PREFIX_APPROVE:
                await self._approve(event.user_id, value, event.chat_id, callback_id=event.callback_id)
                return

            if not self._is_logged_in(event.user_id, session):
                await self._transport.answer_callback(event.callback_id, "Silakan login dulu.")
                return

            if prefix == PREFIX_BIND_WORKER:
                await self._pick_binding_worker(event, session, value)
                return
            if prefix == PREFIX_BIND_KV:
                await self._pick_binding_kv(event, session, value)
                return
            if event.data == ACTION_CANCEL:
                await self._transport.answer_callback(event.callback_id)
                await self._show_main_menu(event.user_id, event.chat_id)
                return

            action = self._menu_actions.get(event.data)
            if action is None:
                await self._transport.answer_callback(
                    event.callback_id, "Interaksi tidak dikenali. Ketik /menu lagi.", show_alert=True
                )
                return

            await self._transport.answer_callback(event.callback_id)
            self._sessions.clear_transient(event.user_id)
            self._sessions.set_step(event.user_id, Step.LOGGED_IN)
            await action(event, session)

    # -- helpers --

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def _touch(self, user_id: str, chat_id: int) -> Session:
        return self._sessions.set_field(user_id, "chat_id", chat_id)

    def _chat_for(self, user_id: str) -> int:
        session = self._sessions.peek(user_id)
        if session is not None and session.chat_id is not None:
            return session.chat_id
        # Private chat id equals the user id.
        return int(user_id)

    async def _send(self, chat_id: int, text: str, keyboard: Keyboard | None = None) -> None:
        try:
            await self._transport.send_message(chat_id, text, keyboard)
        except TransportError as exc:
            LOGGER.warning("Gagal kirim pesan ke chat %s: %s", chat_id, exc)

    def _is_logged_in(self, user_id: str, session: Session) -> bool:
        return (
            session.step in LOGGED_IN_STEPS
            and session.credentials.complete
            and self._registry.is_approved(user_id)
        )

    def _idle_hint(self, session: Session) -> str:
        if session.step is Step.LOGGED_IN:
            return "Silakan pilih menu di bawah:"
        return "Ketik /start untuk memulai."

    @staticmethod
    def _require_text(event: InboundMessage, session: Session, hint: str) -> str:
        value = (event.text or "").strip()
        if not value:
            raise UnexpectedInput(session.step.value, hint)
        return value

    @staticmethod
    def _optional_value(raw: str) -> str | None:
        return None if raw.lower() in SKIP_VALUES else raw

    async def _show_main_menu(self, user_id: str, chat_id: int) -> None:
        self._sessions.clear_transient(user_id)
        self._sessions.set_step(user_id, Step.LOGGED_IN)
        await self._send(chat_id, render.main_menu_text(), main_menu())

    async def _finish_action(
        self,
        event: InboundMessage | CallbackEvent,
        *,
        action: str,
        detail: str,
        call: Awaitable[Any],
        on_success: Callable[[Any], str],
        failure_title: str,
    ) -> None:
        user_id = event.user_id
        try:
            result = await call
        except (RemoteError, TransportError) as exc:
            LOGGER.info("Aksi %s gagal untuk user %s: %s", action, user_id, exc)
            self._sessions.append_history(user_id, action, f"gagal: {detail}" if detail else "gagal")
            text = render.failure_text(failure_title, exc)
        else:
            self._sessions.append_history(user_id, action, detail)
            text = on_success(result)
        finally:
            self._sessions.clear_transient(user_id)
            self._sessions.set_step(user_id, Step.LOGGED_IN)
        await self._send(event.chat_id, text, main_menu())

    # -- registration, approval, login --

    async def _start(self, event: InboundMessage, session: Session) -> None:
        user_id = event.user_id
        self._sessions.clear_transient(user_id)
        self._sessions.append_history(user_id, "start")

        record = self._registry.get(user_id)
        if self._registry.is_admin(user_id) and (record is None or not record.approved):
            try:
                self._registry.register(user_id, event.display_name or "admin")
                record = self._registry.approve(user_id, user_id)
            except PersistenceError:
                await self._send(event.chat_id, render.registry_failure_text())
                return

        if record is None:
            self._sessions.set_step(user_id, Step.INPUT_NAME)
            await self._send(event.chat_id, render.welcome_register_text())
            return
        if not record.approved:
            self._sessions.set_step(user_id, Step.WAITING_APPROVAL)
            await self._send(event.chat_id, render.waiting_approval_text())
            return

        self._sessions.clear_credentials(user_id)
        self._sessions.set_step(user_id, Step.AWAIT_ACCOUNT_ID)
        await self._send(event.chat_id, render.login_prompt_text())

    async def _on_input_name(self, event: InboundMessage, session: Session) -> None:
        name = self._require_text(event, session, "Nama tidak boleh kosong. Masukkan nama kamu:")
        name = name[:DISPLAY_NAME_MAX]
        try:
            record = self._registry.register(event.user_id, name)
        except PersistenceError:
            # Step stays input_name so the same name can be sent again.
            await self._send(event.chat_id, render.registry_failure_text())
            return
        self._sessions.set_step(event.user_id, Step.WAITING_APPROVAL)
        self._sessions.append_history(event.user_id, "register", record.display_name)
        await self._send(event.chat_id, render.registration_sent_text(record.display_name))

        admin_id = self._registry.admin_id
        await self._send(
            self._chat_for(admin_id),
            render.admin_notification_text(record),
            approval_menu(record.id),
        )

    async def _on_waiting_approval(self, event: InboundMessage, session: Session) -> None:
        await self._send(event.chat_id, render.waiting_approval_text())

    async def _approve(
        self,
        requester_id: str,
        target_id: str,
        chat_id: int,
        callback_id: str | None = None,
    ) -> None:
        async def report(text: str) -> None:
            if callback_id:
                await self._transport.answer_callback(callback_id, text, show_alert=True)
            else:
                await self._send(chat_id, text)

        if not target_id:
            await report("Format: /approve &lt;user_id&gt;")
            return

        try:
            record = self._registry.approve(target_id, requester_id)
        except Unauthorized:
            LOGGER.warning("User %s mencoba menyetujui %s tanpa hak admin", requester_id, target_id)
            await report("⛔ Hanya admin yang bisa menyetujui pendaftaran.")
            return
        except NotFound:
            await report(f"User {target_id} tidak ditemukan.")
            return
        except AlreadyApproved:
            await report(f"User {target_id} sudah disetujui sebelumnya.")
            return
        except PersistenceError:
            await report(f"Persetujuan user {target_id} gagal disimpan. Coba lagi nanti.")
            return

        if callback_id:
            await self._transport.answer_callback(callback_id, "Disetujui.")
        await self._send(chat_id, render.approved_admin_text(record))

        self._sessions.clear_transient(record.id)
        self._sessions.clear_credentials(record.id)
        self._sessions.set_step(record.id, Step.INPUT_API_TOKEN)
        self._sessions.append_history(record.id, "approved", f"oleh {requester_id}")
        await self._send(self._chat_for(record.id), render.approved_user_text())

    async def _on_input_api_token(self, event: InboundMessage, session: Session) -> None:
        session.credentials.api_token = self._require_text(event, session, render.prompt_text("API Token"))
        self._sessions.set_step(event.user_id, Step.INPUT_ACCOUNT_ID)
        await self._send(event.chat_id, render.prompt_text("Account ID"))

    async def _on_input_account_id(self, event: InboundMessage, session: Session) -> None:
        session.credentials.account_id = self._require_text(event, session, render.prompt_text("Account ID"))
        if self._config.ask_zone_id:
            self._sessions.set_step(event.user_id, Step.INPUT_ZONE_ID)
            await self._send(event.chat_id, render.prompt_text("Zone ID", optional=True))
            return
        self._sessions.set_step(event.user_id, Step.INPUT_KV_NAMESPACE_ID)
        await self._send(event.chat_id, render.prompt_text("KV Namespace ID", optional=True))

    async def _on_input_zone_id(self, event: InboundMessage, session: Session) -> None:
        raw = self._require_text(event, session, render.prompt_text("Zone ID", optional=True))
        session.credentials.zone_id = self._optional_value(raw)
        self._sessions.set_step(event.user_id, Step.INPUT_KV_NAMESPACE_ID)
        await self._send(event.chat_id, render.prompt_text("KV Namespace ID", optional=True))

    async def _on_input_kv_namespace_id(self, event: InboundMessage, session: Session) -> None:
        raw = self._require_text(event, session, render.prompt_text("KV Namespace ID", optional=True))
        session.credentials.kv_namespace_id = self._optional_value(raw)
        await self._check_credentials(event, session)

    async def _on_await_account_id(self, event: InboundMessage, session: Session) -> None:
        session.credentials.account_id = self._require_text(event, session, render.prompt_text("Account ID"))
        self._sessions.set_step(event.user_id, Step.AWAIT_API_TOKEN)
        await self._send(event.chat_id, render.prompt_text("API Token"))

    async def _on_await_api_token(self, event: InboundMessage, session: Session) -> None:
        session.credentials.api_token = self._require_text(event, session, render.prompt_text("API Token"))
        await self._check_credentials(event, session)

    async def _check_credentials(self, event: InboundMessage, session: Session) -> None:
        user_id = event.user_id
        try:
            script_count = await self._cloudflare.verify_credentials(session.credentials)
        except (RemoteError, TransportError) as exc:
            LOGGER.info("Login Cloudflare gagal untuk user %s: %s", user_id, exc)
            self._sessions.clear_credentials(user_id)
            self._sessions.set_step(user_id, Step.AWAIT_ACCOUNT_ID)
            self._sessions.append_history(user_id, "login", "gagal")
            await self._send(event.chat_id, render.login_failed_text(exc))
            return

        self._sessions.set_step(user_id, Step.LOGGED_IN)
        self._sessions.append_history(user_id, "login", f"account {session.credentials.account_id}")
        await self._send(event.chat_id, render.login_success_text(script_count), main_menu())

    async def _logout(self, user_id: str, chat_id: int) -> None:
        self._sessions.delete(user_id)
        self._sessions.set_field(user_id, "chat_id", chat_id)
        await self._send(chat_id, render.logout_text())

    # -- main menu actions --

    async def _menu_deploy_worker(self, event: CallbackEvent, session: Session) -> None:
        self._sessions.set_step(event.user_id, Step.AWAIT_WORKER_NAME)
        await self._send(event.chat_id, "Masukkan <b>nama Worker</b> yang ingin dibuat:")

    async def _menu_list_workers(self, event: CallbackEvent, session: Session) -> None:
        await self._finish_action(
            event,
            action=ACTION_LIST_WORKERS,
            detail="",
            call=self._cloudflare.list_scripts(session.credentials),
            on_success=render.worker_list_text,
            failure_title="Gagal mengambil daftar Worker",
        )

    async def _menu_create_kv(self, event: CallbackEvent, session: Session) -> None:
        self._sessions.set_step(event.user_id, Step.AWAIT_KV_NAME)
        await self._send(event.chat_id, "Masukkan <b>nama KV Namespace</b> yang ingin dibuat:")

    async def _menu_list_kv(self, event: CallbackEvent, session: Session) -> None:
        await self._finish_action(
            event,
            action=ACTION_LIST_KV,
            detail="",
            call=self._cloudflare.list_kv_namespaces(session.credentials),
            on_success=render.kv_list_text,
            failure_title="Gagal mengambil daftar KV Namespace",
        )

    async def _menu_delete_worker(self, event: CallbackEvent, session: Session) -> None:
        self._sessions.set_step(event.user_id, Step.AWAIT_DELETE_WORKER)
        await self._send(event.chat_id, "Masukkan <b>nama Worker</b> yang ingin dihapus:")

    async def _menu_delete_kv(self, event: CallbackEvent, session: Session) -> None:
        self._sessions.set_step(event.user_id, Step.AWAIT_DELETE_KV)
        await self._send(event.chat_id, "Masukkan <b>ID KV Namespace</b> yang ingin dihapus:")

    async def _menu_history(self, event: CallbackEvent, session: Session) -> None:
        await self._send(event.chat_id, render.history_text(list(session.history)), main_menu())

    async def _menu_logout(self, event: CallbackEvent, session: Session) -> None:
        await self._logout(event.user_id, event.chat_id)

    # -- binding flow --

    async def _menu_bind_kv(self, event: CallbackEvent, session: Session) -> None:
        user_id = event.user_id
        try:
            scripts = await self._cloudflare.list_scripts(session.credentials)
        except (RemoteError, TransportError) as exc:
            LOGGER.info("Daftar Worker untuk binding gagal (user %s): %s", user_id, exc)
            self._sessions.append_history(user_id, ACTION_BIND_KV, "gagal: daftar worker")
            await self._send(event.chat_id, render.failure_text("Gagal mengambil daftar Worker", exc), main_menu())
            return

        items = [SelectionItem(id=str(item["id"]), label=str(item["id"])) for item in scripts if item.get("id")]
        self._sessions.append_history(user_id, ACTION_BIND_KV, f"daftar worker: {len(items)}")
        if not items:
            await self._send(event.chat_id, "Belum ada Worker untuk di-binding.", main_menu())
            return

        self._sessions.set_field(user_id, "worker_list", items)
        self._sessions.set_step(user_id, Step.BINDING_SELECT_WORKER)
        await self._send(event.chat_id, render.binding_worker_prompt_text(), selection_menu(PREFIX_BIND_WORKER, items))

    @staticmethod
    def _pick(items: list[SelectionItem], raw_index: str) -> SelectionItem | None:
        try:
            idx = int(raw_index)
        except ValueError:
            return None
        if idx < 0 or idx >= len(items):
            return None
        return items[idx]

    async def _pick_binding_worker(self, event: CallbackEvent, session: Session, value: str) -> None:
        user_id = event.user_id
        if session.step is not Step.BINDING_SELECT_WORKER:
            await self._transport.answer_callback(event.callback_id, "Sesi binding sudah berakhir.", show_alert=True)
            return
        item = self._pick(session.worker_list, value)
        if item is None:
            await self._transport.answer_callback(event.callback_id, "Pilihan tidak valid.", show_alert=True)
            return
        await self._transport.answer_callback(event.callback_id)

        self._sessions.set_field(user_id, "binding_worker", item.id)
        try:
            namespaces = await self._cloudflare.list_kv_namespaces(session.credentials)
        except (RemoteError, TransportError) as exc:
            LOGGER.info("Daftar KV untuk binding gagal (user %s): %s", user_id, exc)
            self._sessions.append_history(user_id, ACTION_BIND_KV, f"gagal: daftar kv untuk {item.id}")
            self._sessions.clear_transient(user_id)
            self._sessions.set_step(user_id, Step.LOGGED_IN)
            await self._send(event.chat_id, render.failure_text("Gagal mengambil daftar KV Namespace", exc), main_menu())
            return

        kv_items = [
            SelectionItem(id=str(ns["id"]), label=str(ns.get("title") or ns["id"]))
            for ns in namespaces
            if ns.get("id")
        ]
        self._sessions.append_history(user_id, ACTION_BIND_KV, f"daftar kv untuk {item.id}: {len(kv_items)}")
        if not kv_items:
            self._sessions.clear_transient(user_id)
            self._sessions.set_step(user_id, Step.LOGGED_IN)
            await self._send(event.chat_id, "Belum ada KV Namespace untuk di-binding.", main_menu())
            return

        self._sessions.set_field(user_id, "kv_list", kv_items)
        self._sessions.set_step(user_id, Step.BINDING_SELECT_KV)
        await self._send(event.chat_id, render.binding_kv_prompt_text(item.id), selection_menu(PREFIX_BIND_KV, kv_items))

    async def _pick_binding_kv(self, event: CallbackEvent, session: Session, value: str) -> None:
        if session.step is not Step.BINDING_SELECT_KV or not session.binding_worker:
            await self._transport.answer_callback(event.callback_id, "Sesi binding sudah berakhir.", show_alert=True)
            return
        item = self._pick(session.kv_list, value)
        if item is None:
            await self._transport.answer_callback(event.callback_id, "Pilihan tidak valid.", show_alert=True)
            return
        await self._transport.answer_callback(event.callback_id)

        worker = session.binding_worker
        binding_name = self._config.kv_binding_name
        bindings = [{"type": "kv_namespace", "name": binding_name, "namespace_id": item.id}]
        await self._finish_action(
            event,
            action=ACTION_BIND_KV,
            detail=f"{worker} <- {item.id}",
            call=self._cloudflare.patch_script_bindings(session.credentials, worker, bindings),
            on_success=lambda _result: render.binding_done_text(worker, binding_name, item.label),
            failure_title="Binding KV gagal",
        )

    async def _on_binding_text(self, event: InboundMessage, session: Session) -> None:
        raise UnexpectedInput(session.step.value, "Gunakan tombol pilihan yang tersedia, atau tekan ❌ Batal.")

    # -- text-driven menu flows --

    async def _on_await_worker_name(self, event: InboundMessage, session: Session) -> None:
        hint = "Nama Worker tidak valid. Gunakan huruf kecil, angka, - atau _ (maks 63 karakter):"
        name = self._require_text(event, session, hint)
        if not WORKER_NAME_RE.match(name):
            raise UnexpectedInput(session.step.value, hint)
        self._sessions.set_field(event.user_id, "pending_worker_name", name)
        self._sessions.set_step(event.user_id, Step.AWAIT_WORKER_FILE)
        await self._send(event.chat_id, render.worker_file_prompt_text(name))

    async def _on_await_worker_file(self, event: InboundMessage, session: Session) -> None:
        document = event.document
        if document is None:
            raise UnexpectedInput(session.step.value, "Kirim file kode JS sebagai dokumen (lampiran).")
        max_bytes = self._config.worker_file_max_bytes
        if document.file_size > max_bytes:
            raise UnexpectedInput(
                session.step.value,
                f"Ukuran file terlalu besar ({document.file_size} byte, maks {max_bytes} byte). Kirim file lain.",
            )

        name = session.pending_worker_name or ""
        if not name:
            self._sessions.set_step(event.user_id, Step.LOGGED_IN)
            await self._send(event.chat_id, "Sesi deploy rusak. Pilih menu lagi.", main_menu())
            return

        try:
            payload = await self._transport.download_file(document.file_id)
        except TransportError as exc:
            LOGGER.warning("Gagal download file worker dari user %s: %s", event.user_id, exc)
            raise UnexpectedInput(session.step.value, "Gagal mengunduh file dari Telegram. Coba kirim ulang.") from exc
        if len(payload) > max_bytes:
            raise UnexpectedInput(session.step.value, f"Ukuran file melebihi batas {max_bytes} byte. Kirim file lain.")
        try:
            source = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise UnexpectedInput(session.step.value, "File bukan teks UTF-8. Pastikan file JS valid.") from exc

        await self._finish_action(
            event,
            action=ACTION_DEPLOY_WORKER,
            detail=name,
            call=self._cloudflare.upload_script(session.credentials, name, source),
            on_success=lambda _result: render.worker_deployed_text(name, session.credentials.account_id),
            failure_title="Gagal upload/deploy Worker",
        )

    async def _on_await_kv_name(self, event: InboundMessage, session: Session) -> None:
        title = self._require_text(event, session, "Nama KV Namespace tidak boleh kosong:")
        await self._finish_action(
            event,
            action=ACTION_CREATE_KV,
            detail=title,
            call=self._cloudflare.create_kv_namespace(session.credentials, title),
            on_success=lambda result: render.kv_created_text(title, str(result.get("id") or "")),
            failure_title="Gagal membuat KV Namespace",
        )

    async def _on_await_delete_worker(self, event: InboundMessage, session: Session) -> None:
        name = self._require_text(event, session, "Nama Worker tidak boleh kosong:")
        await self._finish_action(
            event,
            action=ACTION_DELETE_WORKER,
            detail=name,
            call=self._cloudflare.delete_script(session.credentials, name),
            on_success=lambda _result: render.worker_deleted_text(name),
            failure_title="Gagal menghapus Worker",
        )

    async def _on_await_delete_kv(self, event: InboundMessage, session: Session) -> None:
        namespace_id = self._require_text(event, session, "ID KV Namespace tidak boleh kosong:")
        self._sessions.set_field(event.user_id, "pending_kv_id", namespace_id)
        await self._finish_action(
            event,
            action=ACTION_DELETE_KV,
            detail=namespace_id,
            call=self._cloudflare.delete_kv_namespace(session.credentials, namespace_id),
            on_success=lambda _result: render.kv_deleted_text(namespace_id),
            failure_title="Gagal menghapus KV Namespace",
        )
