from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from .errors import RemoteError, TransportError


DEFAULT_TIMEOUT_SECONDS = 30.0
SCRIPT_CONTENT_TYPE = "application/javascript"

TELEGRAM_TOKEN_RE = re.compile(r"\b\d{6,}:[A-Za-z0-9_-]{20,}\b")
BEARER_RE = re.compile(r"(Bearer\s+)([A-Za-z0-9._-]{8,})", re.IGNORECASE)


def _mask_secret(raw: str) -> str:
    text = str(raw or "").strip()
    if not text:
        return text
    if len(text) <= 8:
        return "********"
    return f"{text[:4]}****{text[-4:]}"


def mask_secrets(raw: str) -> str:
    text = str(raw or "")
    text = TELEGRAM_TOKEN_RE.sub(lambda m: _mask_secret(m.group(0)), text)
    text = BEARER_RE.sub(lambda m: m.group(1) + _mask_secret(m.group(2)), text)
    return text


@dataclass
class Credentials:
    api_token: str = ""
    account_id: str = ""
    zone_id: str | None = None
    kv_namespace_id: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.api_token and self.account_id)


class CloudflareClient:
    """Thin async wrapper over the Workers scripts and KV namespace endpoints.

    Every call unwraps the ``{success, result, errors}`` envelope: the result is
    returned on success, ``RemoteError`` is raised otherwise and network
    failures surface as ``TransportError``. Nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            follow_redirects=False,
            transport=self._transport,
        )

    async def _request(
        self,
        creds: Credentials,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        content: bytes | None = None,
        files: dict | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        account = quote(creds.account_id.strip(), safe="")
        request_headers = {"Authorization": f"Bearer {creds.api_token.strip()}"}
        if headers:
            request_headers.update(headers)

        try:
            async with self._new_client() as client:
                response = await client.request(
                    method,
                    f"/accounts/{account}{path}",
                    json=json_body,
                    content=content,
                    files=files,
                    headers=request_headers,
                )
        except httpx.HTTPError as exc:
            detail = mask_secrets(str(exc)) or exc.__class__.__name__
            raise TransportError(f"Gagal menghubungi Cloudflare: {detail}") from exc

        return _unwrap(response)

    async def list_scripts(self, creds: Credentials) -> list[dict]:
        result = await self._request(creds, "GET", "/workers/scripts")
        return _as_list(result)

    async def verify_credentials(self, creds: Credentials) -> int:
        return len(await self.list_scripts(creds))

    async def upload_script(self, creds: Credentials, name: str, source: str) -> dict:
        result = await self._request(
            creds,
            "PUT",
            f"/workers/scripts/{quote(name, safe='')}",
            content=source.encode("utf-8"),
            headers={"Content-Type": SCRIPT_CONTENT_TYPE},
        )
        return _as_dict(result)

    async def delete_script(self, creds: Credentials, name: str) -> dict:
        result = await self._request(creds, "DELETE", f"/workers/scripts/{quote(name, safe='')}")
        return _as_dict(result)

    async def create_kv_namespace(self, creds: Credentials, title: str) -> dict:
        result = await self._request(creds, "POST", "/storage/kv/namespaces", json_body={"title": title})
        return _as_dict(result)

    async def list_kv_namespaces(self, creds: Credentials) -> list[dict]:
        result = await self._request(creds, "GET", "/storage/kv/namespaces")
        return _as_list(result)

    async def delete_kv_namespace(self, creds: Credentials, namespace_id: str) -> dict:
        result = await self._request(
            creds,
            "DELETE",
            f"/storage/kv/namespaces/{quote(namespace_id, safe='')}",
        )
        return _as_dict(result)

    async def patch_script_bindings(self, creds: Credentials, name: str, bindings: list[dict]) -> dict:
        settings = json.dumps({"bindings": bindings})
        result = await self._request(
            creds,
            "PATCH",
            f"/workers/scripts/{quote(name, safe='')}/settings",
            files={"settings": (None, settings, "application/json")},
        )
        return _as_dict(result)


def _unwrap(response: httpx.Response) -> Any:
    status_context = f"HTTP {response.status_code}"
    try:
        data = response.json()
    except ValueError as exc:
        body = mask_secrets(response.text.strip()[:400]) or "response kosong"
        raise RemoteError(status_context, [{"code": None, "message": body}]) from exc

    if not isinstance(data, dict):
        raise RemoteError(status_context, [{"code": None, "message": "Response Cloudflare tidak valid (bukan JSON object)."}])

    if not data.get("success"):
        raw_errors = data.get("errors") if isinstance(data.get("errors"), list) else []
        errors = [
            {"code": item.get("code"), "message": mask_secrets(str(item.get("message") or ""))}
            for item in raw_errors
            if isinstance(item, dict)
        ]
        raise RemoteError(status_context, errors)

    return data.get("result")


def _as_list(result: Any) -> list[dict]:
    if not isinstance(result, list):
        return []
    return [item for item in result if isinstance(item, dict)]


def _as_dict(result: Any) -> dict:
    return result if isinstance(result, dict) else {}
