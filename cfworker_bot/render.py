from __future__ import annotations

import html
from datetime import datetime, timezone

from .errors import BotError, RemoteError
from .registry import UserRecord
from .sessions import HistoryEntry


HISTORY_SHOWN_MAX = 20

def now_utc_text() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _trim(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    if max_len < 4:
        return text[:max_len]
    return text[: max_len - 3] + "..."


def as_pre(text: str, max_len: int = 3300) -> str:
    return f"<pre>{html.escape(_trim(text, max_len))}</pre>"


def code(text: str) -> str:
    return f"<code>{html.escape(str(text))}</code>"


def welcome_register_text() -> str:
    return (
        "<b>Selamat datang di Bot Cloudflare!</b>\n\n"
        "Kamu belum terdaftar. Masukkan <b>nama</b> kamu untuk mendaftar:"
    )


def waiting_approval_text() -> str:
    return "⏳ Pendaftaran kamu sedang menunggu persetujuan admin."


def registration_sent_text(name: str) -> str:
    return (
        f"✅ Terima kasih, <b>{html.escape(name)}</b>.\n"
        "Permintaan pendaftaran sudah dikirim ke admin. Tunggu persetujuan ya."
    )


def admin_notification_text(record: UserRecord) -> str:
    lines = [
        "<b>🆕 Permintaan Pendaftaran</b>",
        "",
        f"• Nama: {html.escape(record.display_name)}",
        f"• User ID: {code(record.id)}",
        f"• Waktu: {code(record.registered_at)}",
        "",
        f"Tekan tombol di bawah atau kirim {code('/approve ' + record.id)}.",
    ]
    return "\n".join(lines)


def approved_admin_text(record: UserRecord) -> str:
    return f"✅ User {html.escape(record.display_name)} ({code(record.id)}) sudah disetujui."


def approved_user_text() -> str:
    return (
        "🎉 <b>Akun kamu sudah disetujui admin!</b>\n\n"
        "Masukkan <b>API Token</b> Cloudflare kamu:"
    )


def registry_failure_text() -> str:
    return "<b>❌ Pendaftaran gagal disimpan.</b>\nCoba kirim lagi beberapa saat lagi."


def prompt_text(label: str, optional: bool = False) -> str:
    text = f"Masukkan <b>{html.escape(label)}</b> Cloudflare kamu:"
    if optional:
        text += "\nOpsional. Kirim <code>-</code> untuk lewati."
    return text


def login_prompt_text() -> str:
    return (
        "<b>Selamat datang di Bot Cloudflare!</b>\n\n"
        "Masukkan <b>Account ID</b> Cloudflare kamu:"
    )


def login_success_text(script_count: int) -> str:
    return (
        "✅ <b>Login Cloudflare berhasil!</b>\n"
        f"Worker terdaftar: {code(script_count)}\n\n"
        "Silakan pilih menu:"
    )


def login_failed_text(exc: BotError) -> str:
    lines = [
        "❌ Login gagal. Pastikan Account ID &amp; API Token benar!",
        error_detail(exc),
        "",
        "Masukkan <b>Account ID</b> lagi:",
    ]
    return "\n".join(lines)


def main_menu_text() -> str:
    return f"<b>☁️ CLOUDFLARE WORKERS &amp; KV</b>\nUpdated: {code(now_utc_text())}\n\nSilakan pilih menu:"


def error_detail(exc: BotError) -> str:
    if isinstance(exc, RemoteError):
        return f"{html.escape(exc.status_context)}\n{as_pre(exc.describe(), max_len=1500)}"
    return as_pre(str(exc), max_len=1500)


def failure_text(title: str, exc: BotError) -> str:
    return f"<b>❌ {html.escape(title)}</b>\n{error_detail(exc)}"


def worker_list_text(scripts: list[dict]) -> str:
    if not scripts:
        return "Belum ada Worker."
    lines = ["<b>📜 Daftar Worker</b>", ""]
    for item in scripts:
        name = str(item.get("id") or "?")
        modified = str(item.get("modified_on") or "").strip()
        suffix = f" · {html.escape(modified[:10])}" if modified else ""
        lines.append(f"• {code(name)}{suffix}")
    return "\n".join(lines)


def kv_list_text(namespaces: list[dict]) -> str:
    if not namespaces:
        return "Belum ada KV Namespace."
    lines = ["<b>🗂️ Daftar KV Namespace</b>", ""]
    for item in namespaces:
        title = str(item.get("title") or "?")
        lines.append(f"• {html.escape(title)} ({code(item.get('id') or '?')})")
    return "\n".join(lines)


def worker_file_prompt_text(name: str) -> str:
    return f"Kirim <b>file kode JS</b> untuk Worker {code(name)}:"


def worker_deployed_text(name: str, account_id: str) -> str:
    return (
        f"✅ Worker {code(name)} berhasil di-deploy!\n\n"
        f"https://{html.escape(name)}.{html.escape(account_id)}.workers.dev"
    )


def kv_created_text(title: str, namespace_id: str) -> str:
    return f"✅ KV Namespace <b>{html.escape(title)}</b> berhasil dibuat!\nID: {code(namespace_id or '-')}"


def worker_deleted_text(name: str) -> str:
    return f"✅ Worker {code(name)} berhasil dihapus!"


def kv_deleted_text(namespace_id: str) -> str:
    return f"✅ KV Namespace {code(namespace_id)} berhasil dihapus!"


def binding_worker_prompt_text() -> str:
    return "<b>🔗 Binding KV ke Worker</b>\nPilih Worker:"


def binding_kv_prompt_text(worker: str) -> str:
    return f"<b>🔗 Binding KV ke Worker</b>\nWorker: {code(worker)}\nPilih KV Namespace:"


def binding_done_text(worker: str, binding_name: str, kv_label: str) -> str:
    return (
        f"✅ KV Namespace <b>{html.escape(kv_label)}</b> berhasil di-binding ke Worker {code(worker)} "
        f"sebagai {code(binding_name)}."
    )


def history_text(entries: list[HistoryEntry], max_entries: int = HISTORY_SHOWN_MAX) -> str:
    if not entries:
        return "Belum ada aktivitas."
    shown = entries[-max_entries:]
    lines = ["<b>📝 Riwayat Aktivitas</b>", f"{len(shown)} dari {len(entries)} entri terakhir", ""]
    for entry in shown:
        detail = f" · {html.escape(_trim(entry.detail, 120))}" if entry.detail else ""
        lines.append(f"{code(entry.timestamp)} {html.escape(entry.action)}{detail}")
    return "\n".join(lines)


def logout_text() -> str:
    return "🔒 Anda telah logout.\nKetik /start untuk login lagi."
