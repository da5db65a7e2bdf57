"""
Tests for the Claude importer
"""

import json

import pytest

from lyra.integrations.importers.claude import ClaudeImporter
from lyra.core.models import Sender


@pytest.fixture
def importer():
    return ClaudeImporter()


def _full_export(*conversations):
    return {"exportedAt": "2024-05-01T00:00:00Z", "conversations": list(conversations)}


def _project_conversation(uuid, project_uuid="p1"):
    return {
        "uuid": uuid,
        "name": f"Conversation {uuid}",
        "project_uuid": project_uuid,
        "project": {
            "name": "Research",
            "description": "Reading notes",
            "prompt_template": "Be concise",
            "docs": [{"filename": "paper.md", "content": "# Paper"}],
        },
        "chat_messages": [{"uuid": f"{uuid}-h", "sender": "human", "text": "hi"}],
    }


class TestValidation:
    """Shape detection"""

    @pytest.mark.unit
    def test_single_conversation(self, importer, claude_export_data):
        assert importer.validate(claude_export_data)

    @pytest.mark.unit
    def test_json_string(self, importer, claude_export_data):
        assert importer.validate(json.dumps(claude_export_data))

    @pytest.mark.unit
    def test_conversation_list_and_full_export(self, importer, claude_export_data):
        assert importer.validate([claude_export_data])
        assert importer.validate(_full_export(claude_export_data))

    @pytest.mark.unit
    def test_rejects_other_shapes(self, importer):
        assert not importer.validate({"mapping": {}, "current_node": "x"})
        assert not importer.validate([])
        assert not importer.validate("not json")


class TestImport:
    """Conversation and message normalization"""

    @pytest.mark.unit
    def test_metadata(self, importer, claude_export_data):
        conv = importer.import_data(claude_export_data)[0]
        assert conv.uuid == "claude-conv-1"
        assert conv.title == "Sorting algorithms"
        assert conv.metadata.model == "claude-3-opus"
        assert conv.metadata.is_starred is True
        assert conv.metadata.created_at == "2024-03-01 10:00:00"
        assert conv.format == "claude"

    @pytest.mark.unit
    def test_human_message(self, importer, claude_export_data):
        human = importer.import_data(claude_export_data)[0].messages[0]
        assert human.sender == Sender.HUMAN
        assert human.sender_label == "User"
        assert human.display_text == "Write quicksort"
        assert human.parent_uuid is None
        assert human.attachments[0].file_name == "notes.txt"
        assert human.attachments[0].extracted_content == "pivot first"

    @pytest.mark.unit
    def test_assistant_parts(self, importer, claude_export_data):
        assistant = importer.import_data(claude_export_data)[0].messages[1]
        assert assistant.parent_uuid == "h1"
        assert assistant.thinking == "Pick a pivot."
        assert assistant.display_text == "Here it is."
        assert assistant.artifacts[0].title == "quicksort.py"
        assert assistant.artifacts[0].language == "python"
        tool = assistant.tools[0]
        assert tool.name == "web_search"
        assert tool.query == "quicksort complexity"
        assert tool.result["content"][0]["url"] == "https://example.org/qs"

    @pytest.mark.unit
    def test_update_artifact(self, importer):
        data = {"uuid": "c", "chat_messages": [{
            "uuid": "a", "sender": "assistant",
            "content": [{"type": "tool_use", "name": "artifacts",
                         "input": {"command": "update", "id": "qs",
                                   "old_str": "xs", "new_str": "sorted(xs)"}}],
        }]}
        artifact = importer.import_data(data)[0].messages[0].artifacts[0]
        assert artifact.command == "update"
        assert artifact.new_str == "sorted(xs)"

    @pytest.mark.unit
    def test_human_thinking_ignored(self, importer):
        data = {"uuid": "c", "chat_messages": [{
            "uuid": "h", "sender": "human",
            "content": [{"type": "thinking", "thinking": "secret"},
                        {"type": "text", "text": "hi"}],
        }]}
        msg = importer.import_data(data)[0].messages[0]
        assert msg.thinking == ""
        assert msg.display_text == "hi"

    @pytest.mark.unit
    def test_file_citations_dropped(self, importer):
        data = {"uuid": "c", "chat_messages": [{
            "uuid": "a", "sender": "assistant",
            "content": [{"type": "text", "text": "see", "citations": [
                {"title": "Web", "url": "https://example.org"},
                {"title": "Mine", "metadata": {"source": "my_files"}},
            ]}],
        }]}
        citations = importer.import_data(data)[0].messages[0].citations
        assert [c.title for c in citations] == ["Web"]

    @pytest.mark.unit
    def test_inline_image_placeholder(self, importer):
        data = {"uuid": "c", "chat_messages": [{
            "uuid": "h", "sender": "human",
            "content": [{"type": "text", "text": "look"},
                        {"type": "image", "source": {"media_type": "image/png", "data": "AAAA"}}],
        }]}
        msg = importer.import_data(data)[0].messages[0]
        assert msg.images[0].data == "data:image/png;base64,AAAA"
        assert "[Image 1]" in msg.display_text

    @pytest.mark.unit
    def test_file_images_are_prefixed(self, importer):
        data = {"uuid": "c", "chat_messages": [{
            "uuid": "h", "sender": "human", "text": "photo",
            "files": [{"file_kind": "image", "file_name": "cat.png",
                       "preview_url": "/api/cat.png"}],
        }]}
        msg = importer.import_data(data)[0].messages[0]
        assert msg.display_text == "[Image 1: cat.png]\n\nphoto"
        assert msg.images[0].url == "/api/cat.png"

    @pytest.mark.unit
    def test_malformed_messages_skipped_and_reindexed(self, importer):
        data = {"uuid": "c", "chat_messages": ["junk", {"uuid": "h", "text": "x", "sender": "human"}]}
        messages = importer.import_data(data)[0].messages
        assert len(messages) == 1
        assert messages[0].index == 0


class TestFullExport:
    """Account exports with projects"""

    @pytest.mark.unit
    def test_all_conversations_imported(self, importer):
        data = _full_export(_project_conversation("a"), _project_conversation("b", None))
        assert [c.uuid for c in importer.import_data(data)] == ["a", "b"]

    @pytest.mark.unit
    def test_group_projects(self, importer):
        data = _full_export(_project_conversation("a"), _project_conversation("b"),
                            _project_conversation("c", None))
        projects = importer.group_projects(data)
        assert len(projects) == 1
        project = projects[0]
        assert project.name == "Research"
        assert project.system_prompt == "Be concise"
        assert project.knowledge_base == [{"name": "paper.md", "content": "# Paper"}]
        assert [c.uuid for c in project.conversations] == ["a", "b"]
