from __future__ import annotations
from typing import Any, Optional, TypeVar
import logging

import httpx
from pydantic import TypeAdapter, ValidationError

from .errors import InvalidResponseError, ServerError, TransportError
from .schemas import NoteIn, NoteOut, UserOut

log = logging.getLogger(__name__)

M = TypeVar("M")

_NOTE = TypeAdapter(NoteOut)
_NOTE_LIST = TypeAdapter(list[NoteOut])
_USER = TypeAdapter(UserOut)
_MAYBE_USER = TypeAdapter(Optional[UserOut])


class NotesClient:
    """
    Thin async wrapper over the notes HTTP API.

    Every failure surfaces as a SyncError subclass:
    - TransportError: httpx could not complete the request
    - ServerError: status >= 400
    - InvalidResponseError: body is not JSON or does not match the schema
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        http: Optional[httpx.AsyncClient] = None,
        cookies: Optional[dict[str, str]] = None,
    ):
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(base_url=base_url, cookies=cookies)

    async def __aenter__(self) -> "NotesClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    # ---------- plumbing ----------
    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            res = await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        log.debug("%s %s -> %s", method, url, res.status_code)
        if res.status_code >= 400:
            raise ServerError(res.status_code, _detail(res))
        return res

    @staticmethod
    def _parse(res: httpx.Response, adapter: TypeAdapter[M]) -> M:
        try:
            return adapter.validate_json(res.content)
        except ValidationError as e:
            raise InvalidResponseError(str(e)) from e

    # ---------- session ----------
    async def me(self) -> Optional[UserOut]:
        res = await self._request("GET", "/session/me")
        return self._parse(res, _MAYBE_USER)

    async def login(self, login: str) -> UserOut:
        res = await self._request("POST", "/session/login", json={"login": login})
        return self._parse(res, _USER)

    async def logout(self) -> None:
        await self._request("GET", "/session/logout")

    # ---------- notes ----------
    async def list_notes(self, user_id: str) -> list[NoteOut]:
        res = await self._request("GET", "/notes", params={"userId": user_id})
        return self._parse(res, _NOTE_LIST)

    async def upsert(self, payload: NoteIn) -> NoteOut:
        body = payload.model_dump(by_alias=True, exclude_none=True)
        res = await self._request("POST", "/notes", json=body)
        return self._parse(res, _NOTE)

    async def delete(self, note_id: str) -> None:
        await self._request("DELETE", "/notes", params={"noteId": note_id})

    def session_cookies(self) -> dict[str, str]:
        return dict(self.http.cookies.items())


def _detail(res: httpx.Response) -> Optional[str]:
    try:
        data = res.json()
    except ValueError:
        return res.text or res.reason_phrase
    if isinstance(data, dict) and data.get("detail"):
        detail = data["detail"]
        return detail if isinstance(detail, str) else str(detail)
    return res.reason_phrase

