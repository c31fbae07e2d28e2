from __future__ import annotations

from dataclasses import dataclass

from .sessions import SelectionItem


CALLBACK_SEP = "|"
BUTTON_LABEL_MAX = 28
CALLBACK_DATA_MAX_LEN = 64

ACTION_DEPLOY_WORKER = "deploy_worker"
ACTION_LIST_WORKERS = "list_workers"
ACTION_CREATE_KV = "create_kv"
ACTION_LIST_KV = "list_kv"
ACTION_BIND_KV = "bind_kv"
ACTION_DELETE_WORKER = "delete_worker"
ACTION_DELETE_KV = "delete_kv"
ACTION_HISTORY = "history"
ACTION_LOGOUT = "logout"
ACTION_CANCEL = "cancel"

PREFIX_APPROVE = "approve"
PREFIX_BIND_WORKER = "bw"
PREFIX_BIND_KV = "bk"

MAIN_MENU_ENTRIES = (
    ("🚀 Deploy Worker", ACTION_DEPLOY_WORKER),
    ("📜 Daftar Worker", ACTION_LIST_WORKERS),
    ("➕ Buat KV Namespace", ACTION_CREATE_KV),
    ("🗂️ Daftar KV Namespace", ACTION_LIST_KV),
    ("🔗 Binding KV ke Worker", ACTION_BIND_KV),
    ("❌ Hapus Worker", ACTION_DELETE_WORKER),
    ("❌ Hapus KV Namespace", ACTION_DELETE_KV),
    ("📝 Riwayat Aktivitas", ACTION_HISTORY),
    ("🔒 Logout", ACTION_LOGOUT),
)


@dataclass(frozen=True)
class Button:
    label: str
    data: str


Keyboard = list[list[Button]]


def short_button_label(text: str, max_len: int = BUTTON_LABEL_MAX) -> str:
    if len(text) <= max_len:
        return text
    if max_len < 4:
        return text[:max_len]
    return text[: max_len - 3] + "..."


def callback_token(prefix: str, value: str | int) -> str:
    token = f"{prefix}{CALLBACK_SEP}{value}"
    if len(token.encode("utf-8")) > CALLBACK_DATA_MAX_LEN:
        raise ValueError(f"Callback data terlalu panjang: {token}")
    return token


def split_callback(data: str) -> tuple[str, str]:
    prefix, _, value = (data or "").partition(CALLBACK_SEP)
    return prefix, value


def main_menu() -> Keyboard:
    return [[Button(label, data)] for label, data in MAIN_MENU_ENTRIES]


def selection_menu(prefix: str, items: list[SelectionItem]) -> Keyboard:
    rows: Keyboard = [
        [Button(short_button_label(item.label), callback_token(prefix, idx))]
        for idx, item in enumerate(items)
    ]
    rows.append([Button("❌ Batal", ACTION_CANCEL)])
    return rows


def approval_menu(user_id: str) -> Keyboard:
    return [[Button("✅ Setujui", callback_token(PREFIX_APPROVE, user_id))]]
