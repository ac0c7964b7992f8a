from __future__ import annotations
import re

from .schemas import NoteOut

FORMATS = {"markdown": "md", "text": "txt"}

_UNSAFE = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


def to_markdown(note: NoteOut) -> str:
    out = f"# {note.title}\n\n{note.content}"
    if note.tags:
        out += "\n\n---\nTags: " + ", ".join(f"#{t}" for t in note.tags)
    return out


def to_text(note: NoteOut) -> str:
    return f"{note.title}\n\n{note.content}" if note.title else note.content


def render(note: NoteOut, fmt: str) -> str:
    if fmt == "markdown":
        return to_markdown(note)
    if fmt == "text":
        return to_text(note)
    raise ValueError(f"unknown export format: {fmt!r} (expected one of {', '.join(FORMATS)})")


def export_filename(note: NoteOut, fmt: str) -> str:
    if fmt not in FORMATS:
        raise ValueError(f"unknown export format: {fmt!r}")
    stem = _UNSAFE.sub("_", note.title).strip(" .") or "note"
    return f"{stem}.{FORMATS[fmt]}"
