from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from dotenv import load_dotenv


BOT_ROOT = Path(__file__).resolve().parents[1]
LOCAL_ENV_FILE = BOT_ROOT / ".env"

if LOCAL_ENV_FILE.exists():
    load_dotenv(LOCAL_ENV_FILE, override=False)

DEFAULT_CLOUDFLARE_API_BASE_URL = "https://api.cloudflare.com/client/v4"
BINDING_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
BOT_MODES = {"polling", "webhook"}


@dataclass(frozen=True)
class AppConfig:
    token: str
    admin_user_id: str
    cloudflare_base_url: str
    cloudflare_timeout_seconds: float
    user_db_file: str
    ask_zone_id: bool
    kv_binding_name: str
    history_limit: int
    worker_file_max_bytes: int
    bot_mode: str
    webhook_host: str
    webhook_port: int
    webhook_public_url: str


def _parse_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on", "y", "enable", "enabled"}


def _parse_float(name: str, default: float, minimum: float, maximum: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except Exception as exc:
        raise RuntimeError(f"{name} tidak valid: {raw}") from exc
    if value < minimum or value > maximum:
        raise RuntimeError(f"{name} di luar rentang {minimum}-{maximum}: {value}")
    return value


def _parse_int(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except Exception as exc:
        raise RuntimeError(f"{name} tidak valid: {raw}") from exc
    if value < minimum or value > maximum:
        raise RuntimeError(f"{name} di luar rentang {minimum}-{maximum}: {value}")
    return value


def _require_env(name: str) -> str:
    value = (os.getenv(name) or "").strip()
    if not value:
        raise RuntimeError(f"{name} belum diset.")
    return value


def _require_user_id(name: str) -> str:
    value = _require_env(name)
    if not value.lstrip("-").isdigit():
        raise RuntimeError(f"{name} berisi ID tidak valid: {value}")
    return value


def _normalize_base_url(name: str, raw: str) -> str:
    value = (raw or "").strip()
    if not value:
        raise RuntimeError(f"{name} belum diset.")

    parsed = urlsplit(value)
    if parsed.scheme not in {"http", "https"}:
        raise RuntimeError(f"{name} harus memakai skema http/https.")
    if not parsed.netloc:
        raise RuntimeError(f"{name} tidak memiliki host yang valid.")
    if parsed.username or parsed.password:
        raise RuntimeError(f"{name} tidak boleh menyertakan kredensial.")
    if parsed.query or parsed.fragment:
        raise RuntimeError(f"{name} tidak boleh berisi query/fragment.")

    return urlunsplit((parsed.scheme, parsed.netloc, parsed.path, "", "")).rstrip("/")


def _parse_binding_name(name: str, default: str) -> str:
    value = (os.getenv(name) or "").strip() or default
    if not BINDING_NAME_RE.match(value):
        raise RuntimeError(f"{name} harus berupa nama variabel (huruf/angka/_): {value}")
    return value


def _parse_mode(name: str, default: str) -> str:
    value = (os.getenv(name) or "").strip().lower() or default
    if value not in BOT_MODES:
        raise RuntimeError(f"{name} harus salah satu dari: {', '.join(sorted(BOT_MODES))}")
    return value


def load_config() -> AppConfig:
    public_url = (os.getenv("WEBHOOK_PUBLIC_URL") or "").strip()
    if public_url:
        public_url = _normalize_base_url("WEBHOOK_PUBLIC_URL", public_url)

    return AppConfig(
        token=_require_env("TELEGRAM_BOT_TOKEN"),
        admin_user_id=_require_user_id("TELEGRAM_ADMIN_USER_ID"),
        cloudflare_base_url=_normalize_base_url(
            "CLOUDFLARE_API_BASE_URL",
            os.getenv("CLOUDFLARE_API_BASE_URL") or DEFAULT_CLOUDFLARE_API_BASE_URL,
        ),
        cloudflare_timeout_seconds=_parse_float("CLOUDFLARE_TIMEOUT_SECONDS", 30.0, 1.0, 300.0),
        user_db_file=(os.getenv("USER_DB_FILE") or "").strip(),
        ask_zone_id=_parse_bool("CF_ASK_ZONE_ID", False),
        kv_binding_name=_parse_binding_name("KV_BINDING_NAME", "KV"),
        history_limit=_parse_int("SESSION_HISTORY_LIMIT", 50, 1, 1000),
        worker_file_max_bytes=_parse_int("WORKER_FILE_MAX_BYTES", 1024 * 1024, 1024, 10 * 1024 * 1024),
        bot_mode=_parse_mode("BOT_MODE", "polling"),
        webhook_host=(os.getenv("WEBHOOK_HOST") or "0.0.0.0").strip(),
        webhook_port=_parse_int("WEBHOOK_PORT", 8443, 1, 65535),
        webhook_public_url=public_url,
    )
