from __future__ import annotations
from datetime import datetime, UTC
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNTITLED = "Untitled"


def normal_tags(tags: Optional[Iterable[str]]) -> list[str]:
    """Strip, lowercase and de-duplicate, keeping first-seen order."""
    if not tags:
        return []
    seen: dict[str, None] = {}
    for t in tags:
        if not t or not t.strip():
            continue
        seen.setdefault(t.strip().lower(), None)
    return list(seen)


class UserOut(BaseModel):
    id: str
    login: str
    avatar_url: Optional[str] = None


class LoginIn(BaseModel):
    login: str = Field(min_length=1)
    avatar_url: Optional[str] = None


class NoteIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    user_id: str = Field(alias="userId", min_length=1)
    title: str = ""
    content: str = ""
    tags: list[str] = Field(default_factory=list)
    starred: bool = False
    archived: bool = False


class NoteOut(BaseModel):
    id: str = Field(min_length=1)
    title: str
    content: str
    tags: list[str] = Field(default_factory=list)
    starred: bool = False
    archived: bool = False
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        # sqlite drops tzinfo; timestamps are stored in UTC
        return v if v.tzinfo is not None else v.replace(tzinfo=UTC)
