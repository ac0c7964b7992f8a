from __future__ import annotations
from datetime import datetime, timedelta, UTC
from typing import Iterable, Optional
from uuid import uuid4

from sqlmodel import Field, SQLModel

from .schemas import normal_tags


def new_id() -> str:
    return uuid4().hex


class Note(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str
    content: str = ""
    # tags as CSV, insertion order kept for display
    tags_csv: str = Field(default="")

    starred: bool = Field(default=False, index=True)
    archived: bool = Field(default=False, index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)

    @property
    def tags(self) -> list[str]:
        if not self.tags_csv:
            return []
        return [t for t in self.tags_csv.split(",") if t]

    def set_tags(self, tags: Optional[Iterable[str]]) -> None:
        self.tags_csv = ",".join(normal_tags(tags))

    def touch(self) -> None:
        """Advance updated_at, strictly, even when the clock has not moved."""
        now = datetime.now(UTC)
        previous = self.updated_at
        if previous is not None:
            if previous.tzinfo is None:
                # sqlite hands datetimes back naive
                previous = previous.replace(tzinfo=UTC)
            if now <= previous:
                now = previous + timedelta(microseconds=1)
        self.updated_at = now
