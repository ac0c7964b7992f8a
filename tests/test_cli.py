import httpx
from typer.testing import CliRunner

from nts import cli
from nts.app import app as api_app
from nts.cli import app
from nts.client import NotesClient
from nts.db import init_db, reset_engine

runner = CliRunner()


class InProcessClient(NotesClient):
    """NotesClient that talks to the FastAPI app in this process."""

    def __init__(self, base_url: str = "", *, cookies=None):
        transport = httpx.ASGITransport(app=api_app)
        super().__init__(http=httpx.AsyncClient(transport=transport, base_url="http://testserver", cookies=cookies))
        self._owns_http = True


def test_note_commands_need_a_login(tmp_path, monkeypatch):
    monkeypatch.setenv("NTS_SESSION_FILE", str(tmp_path / "session.json"))
    # nothing listens on port 9
    monkeypatch.setenv("NTS_API_URL", "http://127.0.0.1:9")

    result = runner.invoke(app, ["list"])
    assert result.exit_code == 1
    assert "Not logged in" in result.output


def test_logout_without_server_still_clears_session(tmp_path, monkeypatch):
    session_file = tmp_path / "session.json"
    session_file.write_text('{"user": "stale"}', encoding="utf-8")
    monkeypatch.setenv("NTS_SESSION_FILE", str(session_file))
    monkeypatch.setenv("NTS_API_URL", "http://127.0.0.1:9")

    result = runner.invoke(app, ["logout"])
    assert result.exit_code == 0
    assert not session_file.exists()
    assert "Logged out" in result.output


def test_note_commands_against_the_api(tmp_path, monkeypatch):
    monkeypatch.setenv("NTS_DB_PATH", str(tmp_path / "cli.sqlite"))
    monkeypatch.setenv("NTS_SESSION_FILE", str(tmp_path / "session.json"))
    monkeypatch.setattr(cli, "NotesClient", InProcessClient)
    reset_engine()
    init_db()

    result = runner.invoke(app, ["login", "ada"])
    assert result.exit_code == 0, result.output
    assert "Logged in" in result.output

    result = runner.invoke(app, ["new", "--title", "Groceries", "--content", "eggs", "--tags", "Home"])
    assert result.exit_code == 0, result.output
    assert "Created" in result.output
    assert runner.invoke(app, ["new", "--title", "Books"]).exit_code == 0

    result = runner.invoke(app, ["edit", "Groceries", "--content", "eggs, milk"])
    assert result.exit_code == 0, result.output
    assert "Updated" in result.output

    result = runner.invoke(app, ["list", "--sort", "title_asc"])
    assert result.exit_code == 0, result.output
    assert result.output.index("Books") < result.output.index("Groceries")

    result = runner.invoke(app, ["export", "Groceries", "--to", str(tmp_path)])
    assert result.exit_code == 0, result.output
    exported = (tmp_path / "Groceries.md").read_text(encoding="utf-8")
    assert exported == "# Groceries\n\neggs, milk\n\n---\nTags: #home"

    result = runner.invoke(app, ["delete", "Groceries", "--yes"])
    assert result.exit_code == 0, result.output
    assert "Note deleted" in result.output

    result = runner.invoke(app, ["list"])
    assert "Groceries" not in result.output
    assert "Books" in result.output
