from __future__ import annotations
from datetime import datetime, timedelta, UTC
from typing import Optional
import asyncio

import pytest

from nts.errors import ServerError
from nts.schemas import NoteIn, NoteOut, UserOut, normal_tags

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClient:
    """In-memory stand-in for NotesClient that records every request.

    - ``hold``: when set, writes wait on it before answering
    - ``errors``: exceptions raised (in order) by the next writes
    """

    def __init__(self, user: Optional[UserOut] = None):
        self.user = user or UserOut(id="u1", login="ada")
        self.logged_in = True
        self.notes: dict[str, NoteOut] = {}
        self.requests: list[tuple[str, object]] = []
        self.errors: list[Exception] = []
        self.list_error: Optional[Exception] = None
        self.hold: Optional[asyncio.Event] = None
        self._ids = 0
        self._ticks = 0

    def _now(self) -> datetime:
        self._ticks += 1
        return T0 + timedelta(seconds=self._ticks)

    def seed(self, title: str, content: str = "", tags=(), **flags) -> NoteOut:
        self._ids += 1
        now = self._now()
        note = NoteOut(
            id=f"n{self._ids}", title=title, content=content, tags=list(tags),
            created_at=now, updated_at=now, **flags,
        )
        self.notes[note.id] = note
        return note

    async def _write(self) -> None:
        if self.hold is not None:
            await self.hold.wait()
        if self.errors:
            raise self.errors.pop(0)

    async def me(self) -> Optional[UserOut]:
        return self.user if self.logged_in else None

    async def login(self, login: str) -> UserOut:
        self.logged_in = True
        self.user = UserOut(id=f"id-{login}", login=login)
        return self.user

    async def logout(self) -> None:
        self.requests.append(("logout", None))
        await self._write()
        self.logged_in = False

    async def list_notes(self, user_id: str) -> list[NoteOut]:
        self.requests.append(("list", user_id))
        if self.list_error is not None:
            raise self.list_error
        return sorted(self.notes.values(), key=lambda n: n.updated_at, reverse=True)

    async def upsert(self, payload: NoteIn) -> NoteOut:
        self.requests.append(("upsert", payload))
        await self._write()
        existing = self.notes.get(payload.id) if payload.id else None
        if payload.id is None:
            self._ids += 1
        now = self._now()
        note = NoteOut(
            id=payload.id or f"n{self._ids}",
            title=payload.title,
            content=payload.content,
            tags=normal_tags(payload.tags),
            starred=payload.starred,
            archived=payload.archived,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self.notes[note.id] = note
        return note

    async def delete(self, note_id: str) -> None:
        self.requests.append(("delete", note_id))
        await self._write()
        if note_id not in self.notes:
            raise ServerError(404, "Not found")
        del self.notes[note_id]

    def writes(self, op: str = "upsert") -> list:
        return [p for kind, p in self.requests if kind == op]


@pytest.fixture
def fake_client():
    return FakeClient()


class FakeClock:
    """Monotonic clock in whole milliseconds, so window edges compare exactly."""

    def __init__(self, start_ms: int = 1_000_000):
        self.ms = start_ms

    def __call__(self) -> float:
        return self.ms / 1000

    def advance(self, ms: int) -> None:
        self.ms += ms


@pytest.fixture
def clock():
    return FakeClock()
