from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Optional
import time

from .config import DEFAULT_AUTOSAVE_DEBOUNCE_MS
from .errors import UnsavedChanges
from .schemas import NoteOut, normal_tags


class Phase(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    SAVING = "saving"


@dataclass(frozen=True)
class Fields:
    """The editable part of a note: what a draft holds and what a baseline remembers."""

    title: str = ""
    content: str = ""
    tags: tuple[str, ...] = ()

    @classmethod
    def empty(cls) -> "Fields":
        return cls()

    @classmethod
    def from_note(cls, note: NoteOut) -> "Fields":
        return cls(note.title, note.content, tuple(note.tags))

    @property
    def is_empty(self) -> bool:
        return not self.title.strip() and not self.content.strip()

    def same_as(self, other: "Fields") -> bool:
        # tag order is display-only
        return (
            self.title == other.title
            and self.content == other.content
            and set(self.tags) == set(other.tags)
        )


@dataclass(frozen=True)
class SaveTicket:
    """Snapshot of a draft taken when its save was sent."""

    fields: Fields
    note_id: Optional[str]
    revision: int
    generation: int

    @property
    def creating(self) -> bool:
        return self.note_id is None


class EditSession:
    """
    Owns the open draft and decides when it needs saving.

    Pure state: no I/O happens here. A save is in flight exactly while
    ``in_flight`` holds its ticket, which is what ``Phase.SAVING`` reports.
    """

    EDITABLE = ("title", "content", "tags")

    def __init__(
        self,
        *,
        autosave: bool = True,
        debounce_ms: int = DEFAULT_AUTOSAVE_DEBOUNCE_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.autosave = autosave
        self.debounce_ms = debounce_ms
        self.clock = clock

        self.draft = Fields.empty()
        self.baseline = Fields.empty()
        self.selected_id: Optional[str] = None
        self.in_flight: Optional[SaveTicket] = None

        self.revision = 0
        self.generation = 0
        self.last_mutation_at: Optional[float] = None

    # ---------- derived ----------
    @property
    def dirty(self) -> bool:
        return not self.draft.same_as(self.baseline)

    @property
    def phase(self) -> Phase:
        if self.in_flight is not None:
            return Phase.SAVING
        return Phase.DIRTY if self.dirty else Phase.CLEAN

    @property
    def is_empty(self) -> bool:
        return self.draft.is_empty

    @property
    def character_count(self) -> int:
        return len(self.draft.content)

    # ---------- loading ----------
    def load_draft(self, note: Optional[NoteOut], *, force: bool = False) -> None:
        """Open ``note`` (or a blank new note). Refuses to drop unsaved edits unless forced."""
        if self.dirty and not force:
            raise UnsavedChanges("the current draft has unsaved changes")
        fields = Fields.from_note(note) if note is not None else Fields.empty()
        self.draft = self.baseline = fields
        self.selected_id = note.id if note is not None else None
        self.generation += 1
        self.last_mutation_at = None

    def reset(self) -> None:
        self.load_draft(None, force=True)

    # ---------- editing ----------
    def mutate(self, field: str, value: str | Iterable[str]) -> None:
        if field not in self.EDITABLE:
            raise ValueError(f"unknown note field: {field!r}")
        if field == "tags":
            if isinstance(value, str):
                value = value.split(",")
            value = tuple(normal_tags(value))
        elif not isinstance(value, str):
            raise TypeError(f"{field} must be a string")
        self.draft = replace(self.draft, **{field: value})
        self.revision += 1
        self.last_mutation_at = self.clock()

    def wants_autosave(self) -> bool:
        """Auto-save is on and there is a non-empty, unsaved draft with no save out."""
        return (
            self.autosave
            and self.in_flight is None
            and self.dirty
            and not self.is_empty
        )

    def is_due(self, now: Optional[float] = None) -> bool:
        """True when an automatic save should fire right now."""
        if not self.wants_autosave() or self.last_mutation_at is None:
            return False
        now = self.clock() if now is None else now
        return (now - self.last_mutation_at) * 1000 >= self.debounce_ms

    # ---------- saving ----------
    def begin_save(self) -> Optional[SaveTicket]:
        """Enter SAVING and hand back what to send, or None when there is nothing to do."""
        if self.in_flight is not None:
            return None
        if self.is_empty or not self.dirty:
            return None
        ticket = SaveTicket(
            fields=self.draft,
            note_id=self.selected_id,
            revision=self.revision,
            generation=self.generation,
        )
        self.in_flight = ticket
        return ticket

    def finish_save(self, ticket: SaveTicket, note: Optional[NoteOut]) -> bool:
        """
        Leave SAVING. ``note`` is the server's copy on success, None on failure.

        Returns True when the result was folded into this session. A save
        that settles after the user opened a different note only clears the
        in-flight state; the collection still gets the note from the gate.
        If the saved note itself was reopened meanwhile, it was opened from
        an older copy, so the result replaces that copy here as well.
        """
        if self.in_flight is ticket:
            self.in_flight = None
        if note is None:
            return False

        saved = Fields.from_note(note)
        if ticket.generation == self.generation:
            self.baseline = saved
            self.selected_id = note.id
            if self.revision == ticket.revision:
                # nothing typed during the flight: adopt the server's normalized values
                self.draft = saved
            return True

        if note.id != self.selected_id:
            return False
        opened_from = self.baseline
        self.baseline = saved
        if self.draft.same_as(opened_from):
            self.draft = saved
        return True
