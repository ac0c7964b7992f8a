import asyncio

from conftest import FakeClient

from nts.collection import Collection
from nts.errors import InvalidResponseError, ServerError, TransportError
from nts.gate import BUSY, Notice, SyncGate
from nts.session import EditSession, Fields, Phase


def _gate(client: FakeClient, notes=()):
    notices = []
    session = EditSession()
    collection = Collection(notes)
    return SyncGate(client, session, collection, notices.append), notices


async def test_create_then_update_keeps_collection_consistent(fake_client):
    gate, notices = _gate(fake_client)
    gate.session.mutate("title", "A")

    created = await gate.save("u1")
    assert created.id == "n1"
    assert gate.collection.ids() == ["n1"]
    assert gate.session.selected_id == "n1"
    assert gate.session.phase == Phase.CLEAN

    gate.session.mutate("content", "more")
    updated = await gate.save("u1")
    assert updated.id == "n1"
    assert len(gate.collection) == 1
    assert gate.collection.get("n1").content == "more"
    assert updated.updated_at > created.updated_at

    first, second = fake_client.writes()
    assert first.id is None
    assert second.id == "n1"
    assert [n.message for n in notices] == ["Note saved!", "Note saved!"]


async def test_payload_trims_and_defaults_title(fake_client):
    gate, _ = _gate(fake_client)
    gate.session.mutate("content", "  hello  ")
    gate.session.mutate("tags", ["X"])

    note = await gate.save("u1")
    (payload,) = fake_client.writes()
    assert payload.title == "Untitled"
    assert payload.content == "hello"
    assert payload.tags == ["x"]
    assert payload.user_id == "u1"

    # baseline is the server's copy, not the local draft
    assert gate.session.baseline == Fields("Untitled", "hello", ("x",))
    assert gate.session.dirty is False
    assert note.title == "Untitled"


async def test_only_one_save_in_flight(fake_client):
    gate, _ = _gate(fake_client)
    fake_client.hold = asyncio.Event()
    gate.session.mutate("title", "A")

    first = asyncio.create_task(gate.save("u1"))
    await asyncio.sleep(0)
    assert gate.session.phase == Phase.SAVING

    for _ in range(3):
        assert await gate.save("u1") is None

    fake_client.hold.set()
    assert (await first).id == "n1"
    assert len(fake_client.writes()) == 1


async def test_failed_save_loses_nothing(fake_client):
    gate, notices = _gate(fake_client)
    gate.session.mutate("title", "A")
    fake_client.errors = [TransportError("connection refused")]

    assert await gate.save("u1") is None
    assert gate.session.draft.title == "A"
    assert gate.session.dirty is True
    assert gate.session.phase == Phase.DIRTY
    assert len(gate.collection) == 0
    assert notices[-1].kind == "error"

    # the in-flight marker is gone, so a retry goes out
    assert (await gate.save("u1")).id == "n1"


async def test_server_and_invalid_responses_are_failures(fake_client):
    existing = fake_client.seed("keep", "me")
    gate, notices = _gate(fake_client, [existing])
    gate.session.load_draft(existing)
    gate.session.mutate("content", "changed")

    for err in (ServerError(500, "boom"), InvalidResponseError("id missing")):
        fake_client.errors = [err]
        assert await gate.save("u1") is None
        assert gate.collection.get(existing.id) == existing
        assert gate.session.baseline == Fields("keep", "me", ())
    assert [n.message for n in notices] == ["Failed to save note"] * 2


async def test_clean_or_empty_draft_is_not_sent(fake_client):
    gate, notices = _gate(fake_client)
    assert await gate.save("u1") is None
    gate.session.mutate("title", "   ")
    assert await gate.save("u1") is None
    assert fake_client.requests == []
    assert notices == []


async def test_save_carries_starred_and_archived_flags(fake_client):
    existing = fake_client.seed("n", "c", starred=True)
    gate, _ = _gate(fake_client, [existing])
    gate.session.load_draft(existing)
    gate.session.mutate("content", "c2")
    await gate.save("u1")
    (payload,) = fake_client.writes()
    assert payload.starred is True
    assert payload.archived is False


async def test_delete_removes_and_resets_open_note(fake_client):
    a = fake_client.seed("a")
    b = fake_client.seed("b")
    gate, notices = _gate(fake_client, [b, a])
    gate.session.load_draft(a)
    gate.session.mutate("content", "unsaved")

    assert await gate.delete(a.id) is True
    assert gate.collection.ids() == [b.id]
    assert gate.session.selected_id is None
    assert gate.session.draft == Fields.empty()
    assert notices[-1].message == "Note deleted"


async def test_failed_delete_keeps_collection(fake_client):
    a = fake_client.seed("a")
    gate, notices = _gate(fake_client, [a])
    fake_client.errors = [TransportError("offline")]
    assert await gate.delete(a.id) is False
    assert gate.collection.ids() == [a.id]
    assert notices[-1].message == "Failed to delete note"


async def test_overlapping_delete_is_ignored(fake_client):
    a = fake_client.seed("a")
    gate, _ = _gate(fake_client, [a])
    fake_client.hold = asyncio.Event()

    first = asyncio.create_task(gate.delete(a.id))
    await asyncio.sleep(0)
    assert await gate.delete(a.id) is False
    fake_client.hold.set()
    assert await first is True
    assert fake_client.writes("delete") == [a.id]


async def test_load_replaces_wholesale_and_survives_failure(fake_client):
    fake_client.seed("one")
    fake_client.seed("two")
    gate, notices = _gate(fake_client)

    assert await gate.load("u1") is True
    assert gate.collection.ids() == ["n2", "n1"]

    fake_client.list_error = ServerError(500)
    assert await gate.load("u1") is False
    assert gate.collection.ids() == ["n2", "n1"]
    assert notices[-1].message == "Failed to load notes"


async def test_set_flags_persists_and_replaces_entry(fake_client):
    a = fake_client.seed("a", "body")
    gate, notices = _gate(fake_client, [a])

    saved = await gate.set_flags(a.id, "u1", starred=True)
    assert saved.starred is True
    assert gate.collection.get(a.id).starred is True
    (payload,) = fake_client.writes()
    assert payload.title == "a" and payload.content == "body"
    assert notices[-1].message == "Note starred!"


async def test_blocked_delete_and_flag_update_say_so(fake_client):
    a = fake_client.seed("a")
    gate, notices = _gate(fake_client, [a])
    fake_client.hold = asyncio.Event()

    starring = asyncio.create_task(gate.set_flags(a.id, "u1", starred=True))
    await asyncio.sleep(0)
    assert await gate.delete(a.id) is False
    assert await gate.set_flags(a.id, "u1", archived=True) is None
    assert notices == [Notice.error(BUSY), Notice.error(BUSY)]

    fake_client.hold.set()
    await starring
    assert fake_client.writes("delete") == []
    assert notices[-1].message == "Note starred!"
