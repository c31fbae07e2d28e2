from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .errors import AlreadyApproved, NotFound, PersistenceError, Unauthorized
from .utils.locks import file_lock, lock_path_for


LOGGER = logging.getLogger("cfworker-bot.registry")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class UserRecord:
    id: str
    display_name: str
    registered_at: str
    approved: bool = False
    approved_at: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "UserRecord":
        return cls(
            id=str(raw.get("id") or "").strip(),
            display_name=str(raw.get("display_name") or ""),
            registered_at=str(raw.get("registered_at") or ""),
            approved=bool(raw.get("approved", False)),
            approved_at=str(raw["approved_at"]) if raw.get("approved_at") else None,
        )


def _write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".tmp.", suffix=path.suffix or ".json", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as wf:
            json.dump(payload, wf, ensure_ascii=False, indent=2)
            wf.write("\n")
            wf.flush()
            os.fsync(wf.fileno())
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


class UserRegistry:
    """Registered users and their approval state.

    With ``db_file`` set, records are loaded once at construction and the whole
    file is rewritten atomically after every mutation; otherwise the registry
    lives in memory only.
    """

    def __init__(self, admin_id: str, db_file: str | Path | None = None) -> None:
        self._admin_id = str(admin_id).strip()
        self._db_file = Path(db_file) if db_file else None
        self._lock_file = lock_path_for(self._db_file) if self._db_file else None
        self._records: dict[str, UserRecord] = {}
        if self._db_file is not None:
            self._load()

    @property
    def admin_id(self) -> str:
        return self._admin_id

    def is_admin(self, user_id: str) -> bool:
        return str(user_id) == self._admin_id

    def _load(self) -> None:
        path = self._db_file
        if path is None or self._lock_file is None or not path.exists():
            return
        try:
            with file_lock(self._lock_file, shared=True):
                payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise RuntimeError(f"Gagal membaca database user {path}: {exc}") from exc

        raw_users = payload.get("users") if isinstance(payload, dict) else None
        if not isinstance(raw_users, list):
            LOGGER.warning("Format database user tidak dikenal, diabaikan: %s", path)
            return
        for raw in raw_users:
            if not isinstance(raw, dict):
                continue
            record = UserRecord.from_dict(raw)
            if record.id:
                self._records[record.id] = record

    def _save(self, records: dict[str, UserRecord]) -> None:
        if self._db_file is None or self._lock_file is None:
            return
        payload = {"users": [asdict(record) for record in records.values()]}
        try:
            with file_lock(self._lock_file):
                _write_json_atomic(self._db_file, payload)
        except OSError as exc:
            LOGGER.error("Gagal menyimpan database user %s: %s", self._db_file, exc)
            raise PersistenceError(f"Gagal menyimpan database user: {exc}") from exc

    def _commit(self, record: UserRecord) -> None:
        updated = {**self._records, record.id: record}
        self._save(updated)
        self._records = updated

    def get(self, user_id: str) -> UserRecord | None:
        return self._records.get(str(user_id))

    def all(self) -> list[UserRecord]:
        return list(self._records.values())

    def register(self, user_id: str, display_name: str) -> UserRecord:
        key = str(user_id)
        existing = self._records.get(key)
        if existing is not None:
            return existing

        record = UserRecord(id=key, display_name=display_name.strip(), registered_at=utc_now_iso())
        self._commit(record)
        LOGGER.info("User baru terdaftar: %s (%s)", key, record.display_name)
        return record

    def approve(self, user_id: str, requester_id: str) -> UserRecord:
        if not self.is_admin(requester_id):
            raise Unauthorized(f"User {requester_id} bukan admin.")

        current = self._records.get(str(user_id))
        if current is None:
            raise NotFound(f"User {user_id} tidak ditemukan.")
        if current.approved:
            raise AlreadyApproved(f"User {user_id} sudah disetujui.")

        record = replace(current, approved=True, approved_at=utc_now_iso())
        self._commit(record)
        LOGGER.info("User %s disetujui oleh admin %s", user_id, requester_id)
        return record

    def is_approved(self, user_id: str) -> bool:
        record = self._records.get(str(user_id))
        return bool(record and record.approved)
