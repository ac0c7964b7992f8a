# nts/app.py
from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Optional
from uuid import NAMESPACE_URL, uuid5
import base64
import json
import logging

from fastapi import FastAPI, HTTPException, Query, Request, Response

from nts.db import init_db
from nts.models import Note
from nts.schemas import LoginIn, NoteIn, NoteOut, UserOut
from nts.services import NoteNotFound, delete_note, list_notes, upsert_note

log = logging.getLogger(__name__)

USER_COOKIE = "user"
COOKIE_MAX_AGE = 60 * 60 * 24 * 30


@asynccontextmanager
async def _lifespan(_: FastAPI):
    # --- bootstrap DB ---
    init_db()
    yield


app = FastAPI(title="NTS API", lifespan=_lifespan)


def _to_out(n: Note) -> NoteOut:
    return NoteOut(
        id=n.id, title=n.title, content=n.content,
        tags=list(n.tags), starred=n.starred, archived=n.archived,
        created_at=n.created_at, updated_at=n.updated_at,
    )

def _encode_user(user: UserOut) -> str:
    return base64.urlsafe_b64encode(user.model_dump_json().encode()).decode()

def _current_user(request: Request) -> Optional[UserOut]:
    raw = request.cookies.get(USER_COOKIE)
    if not raw:
        return None
    try:
        return UserOut.model_validate(json.loads(base64.urlsafe_b64decode(raw)))
    except ValueError:
        # unreadable cookie counts as logged out
        log.debug("ignoring malformed user cookie")
        return None

def _check_owner(request: Request, user_id: str) -> None:
    user = _current_user(request)
    if user is not None and user.id != user_id:
        raise HTTPException(status_code=403, detail="User mismatch")

# ---------- Session ----------
@app.get("/session/me", response_model=Optional[UserOut])
def session_me(request: Request):
    return _current_user(request)

@app.post("/session/login", response_model=UserOut)
def session_login(payload: LoginIn, response: Response):
    # local identity step; the OAuth exchange lives outside this service
    user = UserOut(
        id=uuid5(NAMESPACE_URL, f"nts:{payload.login}").hex,
        login=payload.login,
        avatar_url=payload.avatar_url,
    )
    response.set_cookie(
        USER_COOKIE, _encode_user(user),
        max_age=COOKIE_MAX_AGE, httponly=True, path="/",
    )
    return user

@app.get("/session/logout")
def session_logout(response: Response):
    response.delete_cookie(USER_COOKIE, path="/")
    return {"ok": True}

# ---------- Notes ----------
@app.get("/notes", response_model=list[NoteOut])
def api_list_notes(request: Request, user_id: Optional[str] = Query(None, alias="userId")):
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID required")
    _check_owner(request, user_id)
    return [_to_out(n) for n in list_notes(user_id)]

@app.post("/notes", response_model=NoteOut)
def api_save_note(request: Request, payload: NoteIn):
    _check_owner(request, payload.user_id)
    try:
        n = upsert_note(
            payload.user_id,
            note_id=payload.id,
            title=payload.title,
            content=payload.content,
            tags=payload.tags,
            starred=payload.starred,
            archived=payload.archived,
        )
    except NoteNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _to_out(n)

@app.delete("/notes")
def api_delete_note(request: Request, note_id: Optional[str] = Query(None, alias="noteId")):
    if not note_id:
        raise HTTPException(status_code=400, detail="Note ID required")
    user = _current_user(request)
    try:
        delete_note(note_id, user_id=user.id if user else None)
    except NoteNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"ok": True}

@app.get("/health")
def health():
    return {"status": "healthy"}
