from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Optional
import logging

from .client import NotesClient
from .collection import Collection
from .errors import SyncError
from .schemas import UNTITLED, NoteIn, NoteOut
from .session import EditSession, SaveTicket

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    kind: str  # "success" | "error"
    message: str

    @classmethod
    def ok(cls, message: str) -> "Notice":
        return cls("success", message)

    @classmethod
    def error(cls, message: str) -> "Notice":
        return cls("error", message)


Notify = Callable[[Notice], None]

BUSY = "Note is still being saved, try again"


class SyncGate:
    """
    Sends writes to the store one at a time per target and folds the
    server's answers back into the session and the collection.

    Failures never touch local state beyond clearing the in-flight marker;
    they raise a notice and wait for the user (or the next auto-save) to retry.
    """

    def __init__(
        self,
        client: NotesClient,
        session: EditSession,
        collection: Collection,
        notify: Optional[Notify] = None,
    ):
        self.client = client
        self.session = session
        self.collection = collection
        self._notify = notify or (lambda notice: None)
        # ids with a delete or flag update outstanding
        self._busy: set[str] = set()

    def busy(self, note_id: Optional[str]) -> bool:
        """Some write for ``note_id`` has not come back yet."""
        if note_id is None:
            return False
        ticket = self.session.in_flight
        return note_id in self._busy or (ticket is not None and ticket.note_id == note_id)

    # ---------- save ----------
    def payload_for(self, ticket: SaveTicket, user_id: str) -> NoteIn:
        current = self.collection.get(ticket.note_id)
        return NoteIn(
            id=ticket.note_id,
            user_id=user_id,
            title=ticket.fields.title.strip() or UNTITLED,
            content=ticket.fields.content.strip(),
            tags=list(ticket.fields.tags),
            starred=current.starred if current else False,
            archived=current.archived if current else False,
        )

    async def save(self, user_id: str) -> Optional[NoteOut]:
        """Save the open draft. Returns None without sending anything when a save is already out."""
        if self.session.selected_id in self._busy:
            log.debug("save skipped: note %s has a pending operation", self.session.selected_id)
            return None
        # the ticket is taken before the first await so a timer firing
        # during the request sees SAVING
        ticket = self.session.begin_save()
        if ticket is None:
            return None

        payload = self.payload_for(ticket, user_id)
        note: Optional[NoteOut] = None
        error: Optional[BaseException] = None
        try:
            note = await self.client.upsert(payload)
        except SyncError as e:
            error = e
        finally:
            self.settle(ticket, note, error)
        return note

    def settle(
        self,
        ticket: SaveTicket,
        note: Optional[NoteOut],
        error: Optional[BaseException] = None,
    ) -> bool:
        if note is None:
            self.session.finish_save(ticket, None)
            log.warning("saving note %s failed: %s", ticket.note_id or "<new>", error)
            self._notify(Notice.error("Failed to save note"))
            return False

        self.collection.upsert(note, created=ticket.creating)
        self.session.finish_save(ticket, note)
        log.info("%s note %s", "created" if ticket.creating else "saved", note.id)
        self._notify(Notice.ok("Note saved!"))
        return True

    # ---------- delete ----------
    async def delete(self, note_id: str) -> bool:
        if self.busy(note_id):
            log.debug("delete skipped: note %s has a pending operation", note_id)
            self._notify(Notice.error(BUSY))
            return False
        self._busy.add(note_id)
        try:
            await self.client.delete(note_id)
        except SyncError as e:
            log.warning("deleting note %s failed: %s", note_id, e)
            self._notify(Notice.error("Failed to delete note"))
            return False
        finally:
            self._busy.discard(note_id)

        self.collection.remove(note_id)
        if self.session.selected_id == note_id:
            # content is gone, nothing left to confirm
            self.session.reset()
        log.info("deleted note %s", note_id)
        self._notify(Notice.ok("Note deleted"))
        return True

    # ---------- load ----------
    async def load(self, user_id: str) -> bool:
        try:
            notes = await self.client.list_notes(user_id)
        except SyncError as e:
            log.warning("loading notes for %s failed: %s", user_id, e)
            self._notify(Notice.error("Failed to load notes"))
            return False
        self.collection.replace_all(notes)
        log.debug("loaded %d notes", len(self.collection))
        return True

    # ---------- star / archive ----------
    async def set_flags(
        self,
        note_id: str,
        user_id: str,
        *,
        starred: Optional[bool] = None,
        archived: Optional[bool] = None,
    ) -> Optional[NoteOut]:
        note = self.collection.get(note_id)
        if note is None:
            return None
        if self.busy(note_id):
            log.debug("flag update skipped: note %s has a pending operation", note_id)
            self._notify(Notice.error(BUSY))
            return None
        payload = NoteIn(
            id=note.id,
            user_id=user_id,
            title=note.title,
            content=note.content,
            tags=list(note.tags),
            starred=note.starred if starred is None else starred,
            archived=note.archived if archived is None else archived,
        )
        self._busy.add(note_id)
        try:
            saved = await self.client.upsert(payload)
        except SyncError as e:
            log.warning("updating note %s failed: %s", note_id, e)
            self._notify(Notice.error("Failed to update note"))
            return None
        finally:
            self._busy.discard(note_id)

        self.collection.replace(saved)
        self._notify(Notice.ok(_flag_message(note, saved)))
        return saved


def _flag_message(before: NoteOut, after: NoteOut) -> str:
    if before.starred != after.starred:
        return "Note starred!" if after.starred else "Note unstarred"
    if before.archived != after.archived:
        return "Note archived!" if after.archived else "Note unarchived"
    return "Note updated"
