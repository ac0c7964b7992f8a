from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional

from .schemas import NoteOut


class Collection:
    """The user's notes as last synchronized, in display order, unique by id."""

    def __init__(self, notes: Iterable[NoteOut] = ()):
        self._notes: list[NoteOut] = []
        self.replace_all(notes)

    def __len__(self) -> int:
        return len(self._notes)

    def __iter__(self) -> Iterator[NoteOut]:
        return iter(list(self._notes))

    def __contains__(self, note_id: object) -> bool:
        return self._index(note_id) is not None

    def _index(self, note_id: object) -> Optional[int]:
        for i, n in enumerate(self._notes):
            if n.id == note_id:
                return i
        return None

    def get(self, note_id: Optional[str]) -> Optional[NoteOut]:
        i = self._index(note_id)
        return None if i is None else self._notes[i]

    def ids(self) -> list[str]:
        return [n.id for n in self._notes]

    def replace_all(self, notes: Iterable[NoteOut]) -> None:
        fresh: list[NoteOut] = []
        seen: set[str] = set()
        for n in notes:
            if n.id in seen:
                continue
            seen.add(n.id)
            fresh.append(n)
        self._notes = fresh

    def clear(self) -> None:
        self._notes = []

    def prepend(self, note: NoteOut) -> None:
        self.remove(note.id)
        self._notes.insert(0, note)

    def replace(self, note: NoteOut) -> bool:
        i = self._index(note.id)
        if i is None:
            return False
        self._notes[i] = note
        return True

    def upsert(self, note: NoteOut, *, created: bool) -> None:
        """Prepend a newly created note, replace an updated one in place."""
        if created or not self.replace(note):
            self.prepend(note)

    def remove(self, note_id: str) -> bool:
        i = self._index(note_id)
        if i is None:
            return False
        del self._notes[i]
        return True


# ---------- view derivation ----------
class SortOption(str, Enum):
    UPDATED_DESC = "updated_desc"
    UPDATED_ASC = "updated_asc"
    TITLE_ASC = "title_asc"
    TITLE_DESC = "title_desc"
    STARRED = "starred"


@dataclass(frozen=True)
class ViewOptions:
    sort: SortOption = SortOption.UPDATED_DESC
    search: str = ""
    show_archived: bool = False
    tag: Optional[str] = None


def _title_key(n: NoteOut) -> str:
    return n.title.casefold()


def sort_notes(notes: Iterable[NoteOut], sort: SortOption = SortOption.UPDATED_DESC) -> list[NoteOut]:
    items = list(notes)
    if sort == SortOption.UPDATED_ASC:
        return sorted(items, key=lambda n: n.updated_at)
    if sort == SortOption.TITLE_ASC:
        return sorted(items, key=_title_key)
    if sort == SortOption.TITLE_DESC:
        return sorted(items, key=_title_key, reverse=True)
    by_updated = sorted(items, key=lambda n: n.updated_at, reverse=True)
    if sort == SortOption.STARRED:
        # stable sort keeps updated desc inside each group
        return sorted(by_updated, key=lambda n: not n.starred)
    return by_updated


def filter_notes(
    notes: Iterable[NoteOut],
    *,
    search: str = "",
    show_archived: bool = False,
    tag: Optional[str] = None,
) -> list[NoteOut]:
    """
    Keep notes that match all of:
    - search: case-insensitive substring of title or content
    - show_archived: archived notes only when True, active notes only when False
    - tag: carries that tag
    """
    needle = search.lower()
    out = []
    for n in notes:
        if needle and needle not in n.title.lower() and needle not in n.content.lower():
            continue
        if n.archived != show_archived:
            continue
        if tag and tag not in n.tags:
            continue
        out.append(n)
    return out


def visible_notes(collection: Iterable[NoteOut], view: ViewOptions) -> list[NoteOut]:
    return filter_notes(
        sort_notes(collection, view.sort),
        search=view.search,
        show_archived=view.show_archived,
        tag=view.tag,
    )


def all_tags(notes: Iterable[NoteOut]) -> list[str]:
    return sorted({t for n in notes for t in n.tags})
