"""
Tests for the lyra command line
"""

import io
import json
import zipfile

import pytest

from lyra import cli
from lyra.core import config as config_module
from lyra.core.config import Config
from lyra.core.constants import ROOT_UUID
from lyra.core.errors import LyraError
from lyra.core.models import Conversation, ConversationMetadata


@pytest.fixture(autouse=True)
def isolated_config(temp_dir, monkeypatch):
    """Keep the CLI away from the user's ~/.lyra"""
    config = Config(temp_dir / "config.json")
    config.config["overlays"]["db_path"] = str(temp_dir / "default.db")
    monkeypatch.setattr(config_module, "_config", config)
    return config


@pytest.fixture
def branched_file(temp_dir):
    data = {
        "uuid": "branchy-1",
        "name": "Branchy",
        "chat_messages": [
            {"uuid": "h1", "sender": "human", "text": "pick one"},
            {"uuid": "a1", "parent_message_uuid": "h1", "sender": "assistant", "text": "first answer"},
            {"uuid": "a2", "parent_message_uuid": "h1", "sender": "assistant", "text": "second answer"},
        ],
    }
    path = temp_dir / "branchy.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _run(*argv):
    return cli.main([str(a) for a in argv])


# ===========================================================================
# Helpers
# ===========================================================================


class TestHelpers:
    """Selection parsing and conversation lookup"""

    @pytest.mark.unit
    def test_parse_selection(self):
        assert cli.parse_selection(["h1=main.1", "root=branch_root_1"]) == {
            "h1": "main.1", ROOT_UUID: "branch_root_1",
        }

    @pytest.mark.unit
    @pytest.mark.parametrize("pair", ["h1", "=main", "h1="])
    def test_parse_selection_invalid(self, pair):
        with pytest.raises(ValueError):
            cli.parse_selection([pair])

    @pytest.mark.unit
    def test_pick_conversation(self):
        conversations = [Conversation(metadata=ConversationMetadata(uuid=u))
                         for u in ("abc-1", "abd-2", "xyz-3")]
        assert cli.pick_conversation(conversations, None).uuid == "abc-1"
        assert cli.pick_conversation(conversations, "xyz").uuid == "xyz-3"
        assert cli.pick_conversation(conversations, "abd-2").uuid == "abd-2"
        with pytest.raises(LyraError):
            cli.pick_conversation(conversations, "ab")
        with pytest.raises(LyraError):
            cli.pick_conversation(conversations, "nope")


# ===========================================================================
# Commands
# ===========================================================================


class TestInspection:
    """info, branches, history, plugins"""

    @pytest.mark.unit
    def test_no_command(self):
        assert _run() == 1

    @pytest.mark.unit
    def test_plugins(self, capsys):
        assert _run("plugins") == 0
        out = capsys.readouterr().out
        assert "gemini_notebooklm" in out
        assert "granular" in out

    @pytest.mark.unit
    def test_info(self, claude_export_file, capsys):
        assert _run("info", claude_export_file) == 0
        assert "1 conversation(s) found" in capsys.readouterr().out

    @pytest.mark.unit
    def test_missing_file(self, temp_dir, capsys):
        assert _run("info", temp_dir / "missing.json") == 1
        assert "Error:" in capsys.readouterr().out

    @pytest.mark.unit
    def test_branches(self, branched_file, capsys):
        assert _run("branches", branched_file) == 0
        out = capsys.readouterr().out
        assert "Branch points (1)" in out
        assert "main.1" in out

    @pytest.mark.unit
    def test_history_default_and_selected(self, branched_file, capsys):
        assert _run("history", branched_file) == 0
        out = capsys.readouterr().out
        assert "first answer" in out
        assert "second answer" not in out

        assert _run("history", branched_file, "--select", "h1=main.1") == 0
        out = capsys.readouterr().out
        assert "second answer" in out
        assert "first answer" not in out

    @pytest.mark.unit
    def test_history_bad_selection(self, branched_file, capsys):
        assert _run("history", branched_file, "--select", "broken") == 1


class TestExport:
    """export in each format"""

    @pytest.mark.unit
    def test_markdown(self, claude_export_file, temp_dir):
        target = temp_dir / "out.md"
        assert _run("export", claude_export_file, "-f", "markdown", "-o", target) == 0
        text = target.read_text(encoding="utf-8")
        assert text.startswith("# Sorting algorithms")
        assert "Here it is." in text

    @pytest.mark.unit
    def test_markdown_numbering(self, claude_export_file, temp_dir):
        target = temp_dir / "roman.md"
        assert _run("export", claude_export_file, "-o", target, "--numbering", "roman") == 0
        assert "## II. AI" in target.read_text(encoding="utf-8")

    @pytest.mark.unit
    def test_pdf(self, claude_export_file, temp_dir):
        target = temp_dir / "out.pdf"
        assert _run("export", claude_export_file, "-f", "pdf", "-o", target, "--page", "letter") == 0
        assert target.read_bytes().startswith(b"%PDF")

    @pytest.mark.unit
    def test_granular(self, claude_export_file, temp_dir):
        target = temp_dir / "out.zip"
        assert _run("export", claude_export_file, "-f", "granular", "-o", target) == 0
        with zipfile.ZipFile(io.BytesIO(target.read_bytes())) as archive:
            assert "_metadata.json" in archive.namelist()

    @pytest.mark.unit
    def test_unknown_conversation(self, claude_export_file, temp_dir, capsys):
        assert _run("export", claude_export_file, "-c", "nope", "-o", temp_dir / "x.md") == 1
        assert "Conversation not found" in capsys.readouterr().out


def _write_account_export(temp_dir):
    def conversation(uuid, project_uuid, name):
        return {
            "uuid": uuid,
            "name": f"Chat {uuid}",
            "project_uuid": project_uuid,
            "project": {"name": name, "prompt_template": "Be concise",
                        "docs": [{"filename": "notes.md", "content": "# Notes"}]},
            "chat_messages": [{"uuid": f"{uuid}-h", "sender": "human", "text": "hi"}],
        }

    data = {"exportedAt": "2024-05-01T00:00:00Z", "conversations": [
        conversation("c1", "proj-research", "Research"),
        conversation("c2", "proj-research", "Research"),
        conversation("c3", "proj-cooking", "Cooking"),
    ]}
    path = temp_dir / "account.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestProjectExport:
    """export --project packages one project of an account export"""

    @pytest.mark.unit
    def test_project_by_name(self, temp_dir, capsys):
        source = _write_account_export(temp_dir)
        target = temp_dir / "research.zip"
        assert _run("export", source, "-f", "granular", "--project", "research", "-o", target) == 0
        assert "2 conversation(s)" in capsys.readouterr().out
        with zipfile.ZipFile(io.BytesIO(target.read_bytes())) as archive:
            names = archive.namelist()
        assert "project_metadata.json" in names
        assert "system_prompt.md" in names
        assert "knowledge_base/notes.md" in names
        assert sorted(n for n in names if n.startswith("conversations/")) == [
            "conversations/Chat_c1.zip", "conversations/Chat_c2.zip",
        ]

    @pytest.mark.unit
    def test_project_into_directory(self, temp_dir):
        source = _write_account_export(temp_dir)
        out_dir = temp_dir / "out"
        out_dir.mkdir()
        assert _run("export", source, "-f", "granular", "-p", "proj-cook", "-o", out_dir) == 0
        files = list(out_dir.iterdir())
        assert len(files) == 1
        assert files[0].name.startswith("Cooking_") and files[0].suffix == ".zip"

    @pytest.mark.unit
    def test_unknown_project(self, temp_dir, capsys):
        source = _write_account_export(temp_dir)
        assert _run("export", source, "-f", "granular", "-p", "proj", "-o", temp_dir / "x.zip") == 1
        assert "Ambiguous project" in capsys.readouterr().out
        assert _run("export", source, "-f", "granular", "-p", "gardening") == 1
        assert "Project not found" in capsys.readouterr().out

    @pytest.mark.unit
    def test_project_needs_granular(self, temp_dir, capsys):
        source = _write_account_export(temp_dir)
        assert _run("export", source, "-f", "markdown", "-p", "research") == 1
        assert "--project requires --format granular" in capsys.readouterr().out


class TestOverlayCommands:
    """mark, marks, star and rename persist in the overlay database"""

    @pytest.mark.unit
    def test_mark_filters_markdown_export(self, claude_export_file, temp_dir, capsys):
        db = temp_dir / "marks.db"
        assert _run("mark", claude_export_file, "1", "--type", "deleted", "--db", db) == 0
        assert "deleted on" in capsys.readouterr().out

        assert _run("marks", claude_export_file, "--db", db) == 0
        assert "deleted    1" in capsys.readouterr().out

        target = temp_dir / "filtered.md"
        assert _run("export", claude_export_file, "-o", target, "--marks-db", db) == 0
        text = target.read_text(encoding="utf-8")
        assert "Write quicksort" in text
        assert "Here it is." not in text

    @pytest.mark.unit
    def test_mark_out_of_range(self, claude_export_file, temp_dir):
        assert _run("mark", claude_export_file, "9", "--type", "important",
                    "--db", temp_dir / "m.db") == 1

    @pytest.mark.unit
    def test_marks_clear(self, claude_export_file, temp_dir, capsys):
        db = temp_dir / "clear.db"
        _run("mark", claude_export_file, "0", "--type", "important", "--db", db)
        assert _run("marks", claude_export_file, "--clear", "--db", db) == 0
        capsys.readouterr()
        _run("marks", claude_export_file, "--db", db)
        assert "important  -" in capsys.readouterr().out

    @pytest.mark.unit
    def test_star_toggles_native_flag(self, claude_export_file, temp_dir, capsys):
        db = temp_dir / "stars.db"
        assert _run("star", claude_export_file, "claude-conv", "--db", db) == 0
        assert "not starred" in capsys.readouterr().out
        _run("star", claude_export_file, "claude-conv", "--db", db)
        assert "not starred" not in capsys.readouterr().out

    @pytest.mark.unit
    def test_rename_applies_to_pdf_title(self, claude_export_file, temp_dir, capsys):
        db = temp_dir / "names.db"
        assert _run("rename", claude_export_file, "claude-conv-1", "Quicksort notes", "--db", db) == 0
        assert "Quicksort notes" in capsys.readouterr().out

        target = temp_dir / "renamed.pdf"
        assert _run("export", claude_export_file, "-f", "pdf", "-o", target, "--marks-db", db) == 0
        assert target.read_bytes().startswith(b"%PDF")

    @pytest.mark.unit
    def test_default_database_from_config(self, claude_export_file, temp_dir):
        assert _run("star", claude_export_file, "claude-conv-1") == 0
        assert (temp_dir / "default.db").exists()
