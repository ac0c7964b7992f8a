from __future__ import annotations
from typing import Iterable, Optional
import logging

from sqlmodel import select

from .db import session_scope
from .models import Note
from .schemas import UNTITLED

log = logging.getLogger(__name__)


class NoteNotFound(LookupError):
    pass


def list_notes(user_id: str) -> list[Note]:
    """Return every note of the user, most recently updated first."""
    with session_scope() as s:
        stmt = (
            select(Note)
            .where(Note.user_id == user_id)
            .order_by(Note.updated_at.desc())
        )
        return list(s.exec(stmt))


def get_note(note_id: str) -> Optional[Note]:
    with session_scope() as s:
        return s.get(Note, note_id)


def upsert_note(
    user_id: str,
    *,
    note_id: Optional[str] = None,
    title: str = "",
    content: str = "",
    tags: Optional[Iterable[str]] = None,
    starred: bool = False,
    archived: bool = False,
) -> Note:
    """
    Create or update a note.
    - note_id absent: create with a fresh id
    - note_id present and stored: update in place, bump updated_at
    - note_id present but unknown: create under that id, so a repeated
      request with the same id updates instead of duplicating
    """
    title = title.strip() or UNTITLED
    with session_scope() as s:
        note = s.get(Note, note_id) if note_id else None
        if note is not None and note.user_id != user_id:
            raise NoteNotFound(f"Note '{note_id}' not found")

        if note is None:
            note = Note(user_id=user_id, title=title, content=content)
            if note_id:
                note.id = note_id
            created = True
        else:
            note.title = title
            note.content = content
            note.touch()
            created = False

        note.set_tags(tags)
        note.starred = starred
        note.archived = archived
        s.add(note)
        s.flush()
        s.refresh(note)
        log.debug("%s note %s for user %s", "created" if created else "updated", note.id, user_id)
        return note


def delete_note(note_id: str, user_id: Optional[str] = None) -> None:
    """Hard delete. Raises NoteNotFound when there is nothing to delete."""
    with session_scope() as s:
        note = s.get(Note, note_id)
        if note is None or (user_id is not None and note.user_id != user_id):
            raise NoteNotFound(f"Note '{note_id}' not found")
        s.delete(note)
        log.debug("deleted note %s", note_id)
