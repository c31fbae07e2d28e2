from __future__ import annotations

from typing import Any


class BotError(RuntimeError):
    pass


class TransportError(BotError):
    pass


class RemoteError(BotError):
    def __init__(self, status_context: str, errors: list[dict[str, Any]] | None = None) -> None:
        self.status_context = status_context
        self.errors: list[dict[str, Any]] = list(errors or [])
        super().__init__(f"{status_context}: {self.describe()}")

    def describe(self) -> str:
        if not self.errors:
            return "(tanpa detail error)"
        lines: list[str] = []
        for item in self.errors:
            code = item.get("code")
            message = str(item.get("message") or "").strip() or "unknown error"
            lines.append(f"[{code}] {message}" if code is not None else message)
        return "\n".join(lines)


class RegistryError(BotError):
    pass


class Unauthorized(RegistryError):
    pass


class NotFound(RegistryError):
    pass


class AlreadyApproved(RegistryError):
    pass


class PersistenceError(RegistryError):
    """The registry file could not be written; in-memory state is left unchanged."""


class UnexpectedInput(BotError):
    """Input that the current step cannot consume; reported back, never dropped."""

    def __init__(self, step: str, hint: str) -> None:
        self.step = step
        self.hint = hint
        super().__init__(f"input tidak cocok untuk step {step}")
