"""
Tests for the ChatGPT importer
"""

import pytest

from lyra.core.branches import build_branch_graph
from lyra.core.constants import ROOT_UUID
from lyra.core.history import select_linear_history
from lyra.integrations.importers.chatgpt import ChatGPTImporter


def _node(node_id, parent, children, role=None, parts=None, content_type="text", **metadata):
    message = None
    if role:
        message = {
            "id": node_id,
            "author": {"role": role},
            "create_time": 1700000000,
            "content": {"content_type": content_type, "parts": parts or []},
            "metadata": metadata,
        }
    return {"id": node_id, "parent": parent, "children": children, "message": message}


@pytest.fixture
def importer():
    return ChatGPTImporter()


@pytest.fixture
def branched_export():
    """
    root -> u1 -> a1
              \\-> a2 (regenerated, current)
    """
    mapping = {
        "root": _node("root", None, ["u1"]),
        "u1": _node("u1", "root", ["a1", "a2"], "user", ["What is 2+2?"]),
        "a1": _node("a1", "u1", [], "assistant", ["5"]),
        "a2": _node("a2", "u1", [], "assistant", ["4"]),
    }
    return {"title": "Math", "conversation_id": "cg-1", "create_time": 1700000000,
            "default_model_slug": "gpt-4o", "mapping": mapping, "current_node": "a2"}


class TestValidation:
    """Shape detection"""

    @pytest.mark.unit
    def test_mapping_export(self, importer, branched_export):
        assert importer.validate(branched_export)
        assert importer.validate([branched_export])

    @pytest.mark.unit
    def test_requires_current_node(self, importer, branched_export):
        branched_export["current_node"] = None
        assert not importer.validate(branched_export)


class TestImport:
    """Tree flattening"""

    @pytest.mark.unit
    def test_metadata(self, importer, branched_export):
        conv = importer.import_data(branched_export)[0]
        assert conv.uuid == "cg-1"
        assert conv.title == "Math"
        assert conv.metadata.model == "gpt-4o"
        assert conv.metadata.platform == "chatgpt"

    @pytest.mark.unit
    def test_messages_and_parents(self, importer, branched_export):
        messages = importer.import_data(branched_export)[0].messages
        assert [m.uuid for m in messages] == ["u1", "a1", "a2"]
        assert messages[0].parent_uuid == ROOT_UUID
        assert messages[1].parent_uuid == "u1"
        assert [m.index for m in messages] == [0, 1, 2]

    @pytest.mark.unit
    def test_current_node_path_is_main(self, importer, branched_export):
        conv = importer.import_data(branched_export)[0]
        assert conv.preferred_main == {"u1", "a2"}
        graph = build_branch_graph(conv.messages, conv.preferred_main)
        assert [m.display_text for m in select_linear_history(graph)] == ["What is 2+2?", "4"]

    @pytest.mark.unit
    def test_title_from_file_name(self, importer, branched_export):
        branched_export["title"] = ""
        conv = importer.import_data(branched_export, file_name="export.json")[0]
        assert conv.title == "export"

    @pytest.mark.unit
    def test_hidden_and_system_nodes_skipped(self, importer):
        mapping = {
            "s": _node("s", None, ["h"], "system", ["sys"]),
            "h": _node("h", "s", ["u"], "user", ["hidden"],
                       is_visually_hidden_from_conversation=True),
            "u": _node("u", "h", [], "user", ["visible"]),
        }
        conv = importer.import_data({"mapping": mapping, "current_node": "u"})[0]
        assert [m.display_text for m in conv.messages] == ["visible"]
        assert conv.messages[0].parent_uuid == ROOT_UUID


class TestAssistantWork:
    """Thoughts, tool calls and search results fold into the next visible reply"""

    @pytest.mark.unit
    def test_thoughts_and_search(self, importer):
        thoughts = _node("t", "u", ["c"], "assistant", content_type="thoughts")
        thoughts["message"]["content"] = {
            "content_type": "thoughts",
            "thoughts": [{"summary": "Plan", "content": "look it up"}],
        }
        mapping = {
            "u": _node("u", None, ["t"], "user", ["weather?"]),
            "t": thoughts,
            "c": _node("c", "t", ["r"], "assistant", ['{"query": "weather paris"}'],
                       content_type="code"),
            "r": _node("r", "c", ["a"], "tool", [], search_result_groups=[
                {"domain": "example.org",
                 "entries": [{"url": "https://example.org/w", "title": "Weather"}]},
            ]),
            "a": _node("a", "r", [], "assistant", ["Sunny"]),
        }
        conv = importer.import_data({"mapping": mapping, "current_node": "a"})[0]
        assert [m.uuid for m in conv.messages] == ["u", "a"]
        reply = conv.messages[1]
        assert reply.parent_uuid == "u"
        assert reply.thinking == "Plan\nlook it up"
        assert reply.tools[0].query == "weather paris"
        group = reply.tools[0].result["groups"][0]
        assert group["domain"] == "example.org"
        assert group["entries"][0]["title"] == "Weather"

    @pytest.mark.unit
    def test_pending_work_resets_on_user_turn(self, importer):
        mapping = {
            "c": _node("c", None, ["u"], "assistant", ["print(1)"], content_type="code"),
            "u": _node("u", "c", ["a"], "user", ["hi"]),
            "a": _node("a", "u", [], "assistant", ["hello"]),
        }
        reply = importer.import_data({"mapping": mapping, "current_node": "a"})[0].messages[1]
        assert reply.tools == []

    @pytest.mark.unit
    def test_system_attachments_go_to_last_user(self, importer):
        mapping = {
            "u": _node("u", None, ["s"], "user", ["read this"]),
            "s": _node("s", "u", [], "system", [],
                       attachments=[{"name": "doc.pdf", "size": 10, "mimeType": "application/pdf"}]),
        }
        user = importer.import_data({"mapping": mapping, "current_node": "s"})[0].messages[0]
        assert user.attachments[0].file_name == "doc.pdf"
        assert user.attachments[0].file_type == "application/pdf"
