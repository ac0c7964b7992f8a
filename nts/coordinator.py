from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Iterable, Optional, Union
import logging

from .client import NotesClient
from .collection import Collection, ViewOptions, all_tags, visible_notes
from .config import Settings
from .errors import SyncError
from .gate import Notice, SyncGate
from .schemas import NoteOut, UserOut
from .session import EditSession, SaveTicket
from .timers import Debouncer

log = logging.getLogger(__name__)


# ---------- commands ----------
@dataclass(frozen=True)
class Mutate:
    field: str
    value: Union[str, tuple[str, ...]]


@dataclass(frozen=True)
class SaveRequested:
    auto: bool = False


@dataclass(frozen=True)
class SaveSettled:
    ticket: SaveTicket
    note: Optional[NoteOut] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class SelectNote:
    note_id: str


@dataclass(frozen=True)
class NewNote:
    pass


@dataclass(frozen=True)
class DeleteNote:
    note_id: str


@dataclass(frozen=True)
class ConfirmAccepted:
    pass


@dataclass(frozen=True)
class ConfirmCancelled:
    pass


@dataclass(frozen=True)
class ToggleStar:
    note_id: str


@dataclass(frozen=True)
class ToggleArchive:
    note_id: str


@dataclass(frozen=True)
class SetSearch:
    text: str


@dataclass(frozen=True)
class SetView:
    changes: dict[str, Any]


@dataclass(frozen=True)
class Login:
    login: str


@dataclass(frozen=True)
class Logout:
    pass


@dataclass(frozen=True)
class LoadNotes:
    pass


@dataclass(frozen=True)
class AutoSaveTick:
    now: Optional[float] = None


Command = Union[
    Mutate, SaveRequested, SaveSettled, SelectNote, NewNote, DeleteNote,
    ConfirmAccepted, ConfirmCancelled, ToggleStar, ToggleArchive,
    SetSearch, SetView, Login, Logout, LoadNotes, AutoSaveTick,
]


@dataclass(frozen=True)
class Confirmation:
    title: str
    message: str
    command: Command


@dataclass
class AppState:
    session: EditSession
    collection: Collection = field(default_factory=Collection)
    view: ViewOptions = field(default_factory=ViewOptions)
    user: Optional[UserOut] = None
    notices: list[Notice] = field(default_factory=list)
    confirmation: Optional[Confirmation] = None
    pending_search: str = ""

    def visible(self) -> list[NoteOut]:
        return visible_notes(self.collection, self.view)

    def tags(self) -> list[str]:
        return all_tags(self.collection)


class Coordinator:
    """
    Single entry point for everything the user does.

    Commands are processed one at a time on the event loop. Anything that
    would throw away unsaved edits, and every delete, parks a Confirmation
    that must be answered with ConfirmAccepted or ConfirmCancelled.
    """

    def __init__(
        self,
        client: NotesClient,
        settings: Optional[Settings] = None,
        *,
        clock: Optional[Callable[[], float]] = None,
        on_notice: Optional[Callable[[Notice], None]] = None,
    ):
        self.settings = settings or Settings()
        session_kwargs: dict[str, Any] = {
            "autosave": self.settings.autosave,
            "debounce_ms": self.settings.autosave_debounce_ms,
        }
        if clock is not None:
            session_kwargs["clock"] = clock
        self.state = AppState(session=EditSession(**session_kwargs))
        self.client = client
        self._on_notice = on_notice
        self.gate = SyncGate(client, self.state.session, self.state.collection, self.notify)
        self.autosave_timer = Debouncer(self.settings.autosave_debounce_ms / 1000, self._autosave_fired)
        self.search_timer = Debouncer(self.settings.search_debounce_ms / 1000, self._apply_search)

        self._handlers: dict[type, Callable[[Any], Awaitable[Any]]] = {
            Mutate: self._mutate,
            SaveRequested: self._save,
            SaveSettled: self._settled,
            SelectNote: self._select,
            NewNote: self._new,
            DeleteNote: self._delete,
            ConfirmAccepted: self._accept,
            ConfirmCancelled: self._cancel,
            ToggleStar: self._toggle_star,
            ToggleArchive: self._toggle_archive,
            SetSearch: self._set_search,
            SetView: self._set_view,
            Login: self._login,
            Logout: self._logout,
            LoadNotes: self._load,
            AutoSaveTick: self._tick,
        }

    @property
    def session(self) -> EditSession:
        return self.state.session

    @property
    def collection(self) -> Collection:
        return self.state.collection

    def notify(self, notice: Notice) -> None:
        self.state.notices.append(notice)
        if self._on_notice is not None:
            self._on_notice(notice)

    async def dispatch(self, cmd: Command) -> Any:
        handler = self._handlers.get(type(cmd))
        if handler is None:
            raise TypeError(f"unknown command: {cmd!r}")
        log.debug("dispatch %s", cmd)
        return await handler(cmd)

    async def run(self, commands: Iterable[Command]) -> None:
        for cmd in commands:
            await self.dispatch(cmd)

    async def start(self) -> Optional[UserOut]:
        """Pick up an existing login and load that user's notes."""
        try:
            self.state.user = await self.client.me()
        except SyncError as e:
            log.warning("could not fetch current user: %s", e)
            self.state.user = None
        if self.state.user is not None:
            await self.gate.load(self.state.user.id)
        return self.state.user

    async def close(self) -> None:
        self.search_timer.cancel()
        self.autosave_timer.cancel()
        # saves already on the wire finish and get applied
        await self.autosave_timer.drain()

    # ---------- editing ----------
    async def _mutate(self, cmd: Mutate) -> None:
        self.session.mutate(cmd.field, cmd.value)
        if self.session.autosave:
            self.autosave_timer.poke()

    async def _save(self, cmd: SaveRequested) -> Optional[NoteOut]:
        if self.state.user is None:
            return None
        if cmd.auto and not self.session.wants_autosave():
            return None
        note = await self.gate.save(self.state.user.id)
        if note is not None:
            self._rearm()
        return note

    async def _settled(self, cmd: SaveSettled) -> bool:
        applied = self.gate.settle(cmd.ticket, cmd.note, cmd.error)
        if applied:
            self._rearm()
        return applied

    def _rearm(self) -> None:
        # edits typed while a save was out still need their own save;
        # a failed save waits for the next edit or a manual save
        if self.session.autosave and self.session.dirty and not self.session.is_empty:
            self.autosave_timer.poke()

    async def _autosave_fired(self) -> None:
        await self.dispatch(SaveRequested(auto=True))

    async def _tick(self, cmd: AutoSaveTick) -> Optional[NoteOut]:
        if self.state.user is None or not self.session.is_due(cmd.now):
            return None
        note = await self.gate.save(self.state.user.id)
        if note is not None:
            self._rearm()
        return note

    # ---------- navigation ----------
    def _ask(self, title: str, message: str, command: Command) -> None:
        self.state.confirmation = Confirmation(title, message, command)

    async def _select(self, cmd: SelectNote) -> bool:
        note = self.collection.get(cmd.note_id)
        if note is None:
            raise KeyError(f"no note with id {cmd.note_id!r}")
        if self.session.dirty:
            self._ask("Unsaved Changes", "You have unsaved changes. Switch note anyway?", cmd)
            return False
        self._open(note)
        return True

    async def _new(self, cmd: NewNote) -> bool:
        if self.session.dirty:
            self._ask("Unsaved Changes", "You have unsaved changes. Create new note anyway?", cmd)
            return False
        self._open(None)
        return True

    def _open(self, note: Optional[NoteOut]) -> None:
        self.autosave_timer.cancel()
        self.session.load_draft(note, force=True)

    async def _delete(self, cmd: DeleteNote) -> bool:
        self._ask(
            "Delete Note",
            "Are you sure you want to delete this note? This action cannot be undone.",
            cmd,
        )
        return False

    async def _accept(self, cmd: ConfirmAccepted) -> Any:
        pending = self.state.confirmation
        if pending is None:
            return None
        self.state.confirmation = None
        action = pending.command
        if isinstance(action, SelectNote):
            note = self.collection.get(action.note_id)
            if note is None:
                return False
            self._open(note)
            return True
        if isinstance(action, NewNote):
            self._open(None)
            return True
        if isinstance(action, DeleteNote):
            is_open = self.session.selected_id == action.note_id
            if is_open:
                self.autosave_timer.cancel()
            deleted = await self.gate.delete(action.note_id)
            if is_open and not deleted:
                self._rearm()
            return deleted
        return None

    async def _cancel(self, cmd: ConfirmCancelled) -> None:
        self.state.confirmation = None

    # ---------- flags ----------
    async def _toggle_star(self, cmd: ToggleStar) -> Optional[NoteOut]:
        note = self.collection.get(cmd.note_id)
        if note is None or self.state.user is None:
            return None
        return await self._set_flags(note.id, starred=not note.starred)

    async def _toggle_archive(self, cmd: ToggleArchive) -> Optional[NoteOut]:
        note = self.collection.get(cmd.note_id)
        if note is None or self.state.user is None:
            return None
        return await self._set_flags(note.id, archived=not note.archived)

    async def _set_flags(self, note_id: str, **flags: bool) -> Optional[NoteOut]:
        saved = await self.gate.set_flags(note_id, self.state.user.id, **flags)
        if note_id == self.session.selected_id:
            # saves of the open note are skipped while its flags are out
            self._rearm()
        return saved

    # ---------- view ----------
    async def _set_search(self, cmd: SetSearch) -> None:
        self.state.pending_search = cmd.text
        self.search_timer.poke()

    async def _apply_search(self) -> None:
        self.state.view = replace(self.state.view, search=self.state.pending_search)

    async def _set_view(self, cmd: SetView) -> ViewOptions:
        self.state.view = replace(self.state.view, **cmd.changes)
        return self.state.view

    # ---------- account ----------
    async def _login(self, cmd: Login) -> Optional[UserOut]:
        try:
            self.state.user = await self.client.login(cmd.login)
        except SyncError as e:
            log.warning("login as %s failed: %s", cmd.login, e)
            self.notify(Notice.error("Login failed"))
            return None
        await self.gate.load(self.state.user.id)
        return self.state.user

    async def _logout(self, cmd: Logout) -> None:
        try:
            await self.client.logout()
        except SyncError as e:
            log.warning("logout request failed: %s", e)
        # local state goes regardless of what the server said
        self.autosave_timer.cancel()
        self.state.user = None
        self.collection.clear()
        self.session.reset()
        self.state.confirmation = None

    async def _load(self, cmd: LoadNotes) -> bool:
        if self.state.user is None:
            return False
        return await self.gate.load(self.state.user.id)
