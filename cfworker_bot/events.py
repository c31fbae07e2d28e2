from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class DocumentRef:
    file_id: str
    file_name: str = ""
    file_size: int = 0


@dataclass(frozen=True)
class InboundMessage:
    user_id: str
    chat_id: int
    display_name: str = ""
    text: str | None = None
    document: DocumentRef | None = None


@dataclass(frozen=True)
class CallbackEvent:
    callback_id: str
    user_id: str
    chat_id: int
    data: str
    display_name: str = ""


def _display_name(raw_user: dict[str, Any]) -> str:
    parts = [str(raw_user.get("first_name") or "").strip(), str(raw_user.get("last_name") or "").strip()]
    name = " ".join(part for part in parts if part)
    if name:
        return name
    return str(raw_user.get("username") or "").strip()


def parse_command(text: str | None) -> tuple[str, list[str]] | None:
    """Split ``/cmd@bot arg1 arg2`` into ``("cmd", ["arg1", "arg2"])``."""
    value = (text or "").strip()
    if not value.startswith("/"):
        return None
    head, *args = value.split()
    command = head[1:].split("@", 1)[0].lower()
    if not command:
        return None
    return command, args


def parse_update(payload: dict[str, Any]) -> InboundMessage | CallbackEvent | None:
    """Map a raw Bot API update onto a dispatcher event; other update kinds give None."""
    if not isinstance(payload, dict):
        return None

    raw_query = payload.get("callback_query")
    if isinstance(raw_query, dict):
        raw_user = raw_query.get("from") if isinstance(raw_query.get("from"), dict) else {}
        raw_message = raw_query.get("message") if isinstance(raw_query.get("message"), dict) else {}
        raw_chat = raw_message.get("chat") if isinstance(raw_message.get("chat"), dict) else {}
        if "id" not in raw_user:
            return None
        chat_id = raw_chat.get("id", raw_user["id"])
        return CallbackEvent(
            callback_id=str(raw_query.get("id") or ""),
            user_id=str(raw_user["id"]),
            chat_id=int(chat_id),
            data=str(raw_query.get("data") or ""),
            display_name=_display_name(raw_user),
        )

    raw_message = payload.get("message")
    if isinstance(raw_message, dict):
        raw_user = raw_message.get("from") if isinstance(raw_message.get("from"), dict) else {}
        raw_chat = raw_message.get("chat") if isinstance(raw_message.get("chat"), dict) else {}
        if "id" not in raw_user or "id" not in raw_chat:
            return None

        document = None
        raw_doc = raw_message.get("document")
        if isinstance(raw_doc, dict) and raw_doc.get("file_id"):
            document = DocumentRef(
                file_id=str(raw_doc["file_id"]),
                file_name=str(raw_doc.get("file_name") or ""),
                file_size=int(raw_doc.get("file_size") or 0),
            )

        text = raw_message.get("text")
        return InboundMessage(
            user_id=str(raw_user["id"]),
            chat_id=int(raw_chat["id"]),
            display_name=_display_name(raw_user),
            text=str(text) if text is not None else None,
            document=document,
        )

    return None
