from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .cloudflare_client import Credentials
from .registry import utc_now_iso


DEFAULT_HISTORY_LIMIT = 50


class Step(str, Enum):
    NONE = "none"
    # registration and approval
    INPUT_NAME = "input_name"
    WAITING_APPROVAL = "waiting_approval"
    # first credential capture after approval
    INPUT_API_TOKEN = "input_api_token"
    INPUT_ACCOUNT_ID = "input_account_id"
    INPUT_ZONE_ID = "input_zone_id"
    INPUT_KV_NAMESPACE_ID = "input_kv_namespace_id"
    # login
    AWAIT_ACCOUNT_ID = "await_account_id"
    AWAIT_API_TOKEN = "await_api_token"
    LOGGED_IN = "logged_in"
    # menu flows
    AWAIT_WORKER_NAME = "await_worker_name"
    AWAIT_WORKER_FILE = "await_worker_file"
    AWAIT_KV_NAME = "await_kv_name"
    AWAIT_DELETE_WORKER = "await_delete_worker"
    AWAIT_DELETE_KV = "await_delete_kv"
    BINDING_SELECT_WORKER = "binding_select_worker"
    BINDING_SELECT_KV = "binding_select_kv"


@dataclass(frozen=True)
class SelectionItem:
    id: str
    label: str


@dataclass(frozen=True)
class HistoryEntry:
    timestamp: str
    action: str
    detail: str


@dataclass
class Session:
    user_id: str
    chat_id: int | None = None
    step: Step = Step.NONE
    credentials: Credentials = field(default_factory=Credentials)
    pending_worker_name: str | None = None
    pending_kv_id: str | None = None
    binding_worker: str | None = None
    worker_list: list[SelectionItem] = field(default_factory=list)
    kv_list: list[SelectionItem] = field(default_factory=list)
    history: deque[HistoryEntry] = field(default_factory=lambda: deque(maxlen=DEFAULT_HISTORY_LIMIT))


TRANSIENT_FIELDS = ("pending_worker_name", "pending_kv_id", "binding_worker", "worker_list", "kv_list")
SETTABLE_FIELDS = {"chat_id", *TRANSIENT_FIELDS}


class SessionStore:
    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._history_limit = max(1, int(history_limit))
        self._sessions: dict[str, Session] = {}

    def get(self, user_id: str) -> Session:
        key = str(user_id)
        session = self._sessions.get(key)
        if session is None:
            session = Session(user_id=key, history=deque(maxlen=self._history_limit))
            self._sessions[key] = session
        return session

    def peek(self, user_id: str) -> Session | None:
        return self._sessions.get(str(user_id))

    def set_step(self, user_id: str, step: Step) -> Session:
        if not isinstance(step, Step):
            raise ValueError(f"Step tidak dikenal: {step!r}")
        session = self.get(user_id)
        session.step = step
        return session

    def set_field(self, user_id: str, key: str, value: Any) -> Session:
        if key not in SETTABLE_FIELDS:
            raise KeyError(f"Field session tidak dikenal: {key}")
        session = self.get(user_id)
        setattr(session, key, value)
        return session

    def clear_transient(self, user_id: str) -> Session:
        session = self.get(user_id)
        session.pending_worker_name = None
        session.pending_kv_id = None
        session.binding_worker = None
        session.worker_list = []
        session.kv_list = []
        return session

    def clear_credentials(self, user_id: str) -> Session:
        session = self.get(user_id)
        session.credentials = Credentials()
        return session

    def append_history(self, user_id: str, action: str, detail: str = "") -> HistoryEntry:
        entry = HistoryEntry(timestamp=utc_now_iso(), action=action, detail=detail)
        self.get(user_id).history.append(entry)
        return entry

    def delete(self, user_id: str) -> None:
        self._sessions.pop(str(user_id), None)

    def __len__(self) -> int:
        return len(self._sessions)
