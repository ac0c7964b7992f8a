from __future__ import annotations
from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path
from typing import AsyncIterator, Optional
import asyncio
import json
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.table import Table

from .client import NotesClient
from .collection import SortOption
from .config import Settings
from .coordinator import (
    ConfirmAccepted, ConfirmCancelled, Coordinator, DeleteNote, Login, Logout,
    Mutate, NewNote, SaveRequested, SelectNote, SetView, ToggleArchive, ToggleStar,
)
from .errors import SyncError
from .export import FORMATS, export_filename, render
from .gate import Notice
from .schemas import NoteOut

app = typer.Typer(help="NTS: notes that sync to your server")
console = Console()
log = logging.getLogger("nts")


@app.callback()
def _boot(verbose: bool = typer.Option(False, "--verbose", "-v", help="debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


# ---------- session file ----------
def _load_cookies(settings: Settings) -> dict[str, str]:
    path = settings.session_file
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except ValueError:
        log.warning("ignoring unreadable session file %s", path)
        return {}

def _save_cookies(settings: Settings, cookies: dict[str, str]) -> None:
    path = settings.session_file
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cookies), encoding="utf-8")

def _print_notice(notice: Notice) -> None:
    style = "green" if notice.kind == "success" else "red"
    console.print(f"[{style}]{notice.message}[/]")


@asynccontextmanager
async def _coordinator(*, require_user: bool = True) -> AsyncIterator[Coordinator]:
    # one-shot commands save explicitly, the auto-save timer stays off
    settings = replace(Settings.from_env(), autosave=False)
    async with NotesClient(settings.api_url, cookies=_load_cookies(settings)) as client:
        coord = Coordinator(client, settings, on_notice=_print_notice)
        if require_user:
            user = await coord.start()
            if user is None:
                console.print("[red]Not logged in[/] (run `nts login NAME`)")
                raise typer.Exit(1)
        try:
            yield coord
        finally:
            await coord.close()

def _resolve(coord: Coordinator, identifier: str) -> NoteOut:
    """Exact id, unique id prefix, or exact title."""
    notes = list(coord.collection)
    exact = coord.collection.get(identifier)
    if exact is not None:
        return exact
    prefixed = [n for n in notes if n.id.startswith(identifier)]
    if len(prefixed) == 1:
        return prefixed[0]
    titled = [n for n in notes if n.title == identifier]
    if len(titled) == 1:
        return titled[0]
    console.print(f"[red]Not found[/]: {identifier}")
    raise typer.Exit(1)

async def _save_or_exit(coord: Coordinator) -> NoteOut:
    note = await coord.dispatch(SaveRequested())
    if note is None:
        if not any(n.kind == "error" for n in coord.state.notices):
            console.print("[yellow]Nothing to save[/]")
        raise typer.Exit(1)
    return note


# ---------- commands ----------
@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8000, "--port"),
):
    """Run the notes API."""
    import uvicorn

    uvicorn.run("nts.app:app", host=host, port=port)

@app.command()
def login(name: str):
    async def _go():
        async with _coordinator(require_user=False) as coord:
            user = await coord.dispatch(Login(name))
            if user is None:
                raise typer.Exit(1)
            _save_cookies(coord.settings, coord.client.session_cookies())
            console.print(f"[green]Logged in[/] as {user.login} ({len(coord.collection)} notes)")
    asyncio.run(_go())

@app.command()
def logout():
    async def _go():
        async with _coordinator(require_user=False) as coord:
            await coord.dispatch(Logout())
            coord.settings.session_file.unlink(missing_ok=True)
    asyncio.run(_go())
    console.print("[yellow]Logged out[/]")

@app.command()
def whoami():
    async def _go():
        async with _coordinator() as coord:
            user = coord.state.user
            console.print(f"{user.login} [dim]({user.id})[/]")
    asyncio.run(_go())

@app.command("list")
def _list(
    tag: Optional[str] = typer.Option(None, "--tag"),
    search: str = typer.Option("", "--search"),
    archived: bool = typer.Option(False, "--archived"),
    sort: SortOption = typer.Option(SortOption.UPDATED_DESC, "--sort"),
):
    async def _go():
        async with _coordinator() as coord:
            await coord.dispatch(SetView({
                "tag": tag.strip().lower() if tag else None,
                "search": search,
                "show_archived": archived,
                "sort": sort,
            }))
            notes = coord.state.visible()
            table = Table(title=f"NTS: {len(coord.collection)} notes")
            table.add_column("ID", style="cyan", no_wrap=True)
            table.add_column("Title", style="bold")
            table.add_column("Tags", style="magenta")
            table.add_column("Starred")
            table.add_column("Updated")
            for n in notes:
                table.add_row(
                    n.id[:8], n.title, ", ".join(n.tags),
                    "★" if n.starred else "",
                    n.updated_at.isoformat(timespec="minutes"),
                )
            console.print(table)
            tags = coord.state.tags()
            if tags:
                console.print(f"[dim]tags:[/] {', '.join(tags)}")
    asyncio.run(_go())

@app.command()
def show(identifier: str):
    async def _go():
        async with _coordinator() as coord:
            n = _resolve(coord, identifier)
            await coord.dispatch(SelectNote(n.id))
            console.rule(f"{n.title} [dim]{n.id[:8]}[/]")
            if n.tags:
                console.print(f"[dim]tags:[/] {', '.join(n.tags)}")
            console.print(Markdown(n.content or "_<empty>_"))
            console.print(f"[dim]{coord.session.character_count} chars · updated {n.updated_at.isoformat(timespec='minutes')}[/]")
    asyncio.run(_go())

@app.command()
def new(
    title: str = typer.Option("", "--title", "-t"),
    content: str = typer.Option("", "--content", "-c"),
    tags: Optional[str] = typer.Option(None, "--tags", "-g", help="comma separated"),
):
    async def _go():
        async with _coordinator() as coord:
            await coord.run([NewNote(), Mutate("title", title), Mutate("content", content)])
            if tags:
                await coord.dispatch(Mutate("tags", tags))
            n = await _save_or_exit(coord)
            console.print(f"[green]Created[/] {n.id[:8]}: {n.title}")
    asyncio.run(_go())

@app.command()
def edit(
    identifier: str,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    content: Optional[str] = typer.Option(None, "--content", "-c"),
    tags: Optional[str] = typer.Option(None, "--tags", "-g"),
):
    async def _go():
        async with _coordinator() as coord:
            note = _resolve(coord, identifier)
            changes = {"title": title, "content": content, "tags": tags}
            await coord.run(
                [SelectNote(note.id)]
                + [Mutate(field, value) for field, value in changes.items() if value is not None]
            )
            n = await _save_or_exit(coord)
            console.print(f"[green]Updated[/] {n.id[:8]}: {n.title}")
    asyncio.run(_go())

@app.command()
def delete(identifier: str, yes: bool = typer.Option(False, "--yes", "-y")):
    async def _go():
        async with _coordinator() as coord:
            note = _resolve(coord, identifier)
            await coord.dispatch(DeleteNote(note.id))
            question = coord.state.confirmation
            if yes or typer.confirm(f"{question.title}: {question.message}"):
                if not await coord.dispatch(ConfirmAccepted()):
                    raise typer.Exit(1)
            else:
                await coord.dispatch(ConfirmCancelled())
    asyncio.run(_go())

def _toggle(identifier: str, *, star: Optional[bool] = None, archive: Optional[bool] = None) -> None:
    async def _go():
        async with _coordinator() as coord:
            note = _resolve(coord, identifier)
            if star is not None and note.starred != star:
                await coord.dispatch(ToggleStar(note.id))
            elif archive is not None and note.archived != archive:
                await coord.dispatch(ToggleArchive(note.id))
            else:
                console.print("[dim]unchanged[/]")
    asyncio.run(_go())

@app.command()
def star(identifier: str):
    _toggle(identifier, star=True)

@app.command()
def unstar(identifier: str):
    _toggle(identifier, star=False)

@app.command()
def archive(identifier: str):
    _toggle(identifier, archive=True)

@app.command()
def unarchive(identifier: str):
    _toggle(identifier, archive=False)

@app.command()
def export(
    identifier: str,
    fmt: str = typer.Option("markdown", "--format", "-f", help="|".join(FORMATS)),
    to: Optional[Path] = typer.Option(None, "--to", help="file or directory"),
):
    async def _go():
        async with _coordinator() as coord:
            return _resolve(coord, identifier)
    try:
        note = asyncio.run(_go())
        text = render(note, fmt)
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)
    target = to or Path(export_filename(note, fmt))
    if target.is_dir():
        target = target / export_filename(note, fmt)
    target.write_text(text, encoding="utf-8")
    console.print(f"[green]Note exported as {fmt}[/] → {target}")

def main():
    try:
        app()
    except SyncError as e:
        console.print(f"[red]{e}[/]")
        raise SystemExit(1)

if __name__ == "__main__":
    main()
