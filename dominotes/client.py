"""Async HTTP client for the Dominotes API."""
from __future__ import annotations
from typing import Any
import logging

import httpx
from pydantic import BaseModel, TypeAdapter

from .schemas import (
    FolderCreate,
    FolderOut,
    FolderUpdate,
    NoteCreate,
    NoteOut,
    NoteUpdate,
)

log = logging.getLogger(__name__)

_NOTES = TypeAdapter(list[NoteOut])
_FOLDERS = TypeAdapter(list[FolderOut])


class ApiError(Exception):
    """A non-2xx answer from the server, carrying its ``error`` message."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __str__(self) -> str:
        return f"{self.message} (HTTP {self.status_code})"


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return fallback


def _body(payload: BaseModel) -> dict[str, Any]:
    return payload.model_dump(mode="json", by_alias=True, exclude_none=True)


class RemoteApi:
    """
    Thin wrapper over ``httpx.AsyncClient``.

    Every call either returns the parsed body or raises ``ApiError``;
    transport failures surface as ``httpx.HTTPError``.
    """

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    @classmethod
    def connect(cls, base_url: str, timeout: float = 10.0) -> "RemoteApi":
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, fallback: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, url, **kwargs)
        if response.is_error:
            raise ApiError(response.status_code, _error_message(response, fallback))
        return response

    # ---------- connectivity / auth ----------
    async def ping(self) -> bool:
        """True when the server answers its health check."""
        try:
            response = await self._client.get("/api/health")
        except httpx.TransportError as e:
            log.debug("Health check failed: %s", e)
            return False
        return response.is_success

    async def login(self, pin: str) -> None:
        await self._request("POST", "/api/auth/pin", "Failed to login", json={"pin": pin})

    async def setup_pin(self, pin: str) -> None:
        await self._request(
            "POST", "/api/auth/pin", "Failed to setup PIN",
            json={"pin": pin}, headers={"x-action": "setup"},
        )

    async def logout(self) -> None:
        await self._request("POST", "/api/auth/logout", "Failed to logout")

    # ---------- notes ----------
    async def fetch_notes(self) -> list[NoteOut]:
        r = await self._request("GET", "/api/notes", "Failed to fetch notes")
        return _NOTES.validate_python(r.json())

    async def fetch_note(self, note_id: int) -> NoteOut:
        r = await self._request("GET", f"/api/notes/{note_id}", "Failed to fetch note")
        return NoteOut.model_validate(r.json())

    async def create_note(self, note: NoteCreate) -> NoteOut:
        r = await self._request("POST", "/api/notes", "Failed to create note", json=_body(note))
        return NoteOut.model_validate(r.json())

    async def update_note(self, note_id: int, updates: NoteUpdate) -> NoteOut:
        r = await self._request(
            "PUT", f"/api/notes/{note_id}", "Failed to update note", json=_body(updates)
        )
        return NoteOut.model_validate(r.json())

    async def delete_note(self, note_id: int) -> None:
        await self._request("DELETE", f"/api/notes/{note_id}", "Failed to delete note")

    # ---------- folders ----------
    async def fetch_folders(self) -> list[FolderOut]:
        r = await self._request("GET", "/api/folders", "Failed to fetch folders")
        return _FOLDERS.validate_python(r.json())

    async def fetch_folder(self, folder_id: int) -> FolderOut:
        r = await self._request("GET", f"/api/folders/{folder_id}", "Failed to fetch folder")
        return FolderOut.model_validate(r.json())

    async def create_folder(self, folder: FolderCreate) -> FolderOut:
        r = await self._request("POST", "/api/folders", "Failed to create folder", json=_body(folder))
        return FolderOut.model_validate(r.json())

    async def update_folder(self, folder_id: int, updates: FolderUpdate) -> FolderOut:
        r = await self._request(
            "PUT", f"/api/folders/{folder_id}", "Failed to update folder", json=_body(updates)
        )
        return FolderOut.model_validate(r.json())

    async def delete_folder(self, folder_id: int) -> None:
        await self._request("DELETE", f"/api/folders/{folder_id}", "Failed to delete folder")
