"""
Tests for the JSON Lines chat importer
"""

import json

import pytest

from lyra.core.branches import build_branch_graph
from lyra.core.history import select_linear_history
from lyra.integrations.importers.jsonl_chat import JSONLChatImporter


@pytest.fixture
def importer():
    return JSONLChatImporter()


@pytest.fixture
def chat_lines():
    return [
        {"user_name": "me", "character_name": "Aria", "create_date": "2024-01-05 09:00:00",
         "chat_metadata": {}},
        {"is_user": True, "name": "me", "mes": "Tell me a story"},
        {"is_user": False, "name": "Aria", "mes": "Once",
         "swipes": ["Once upon a time", "Long ago", "<thinking>hmm</thinking>In a land"],
         "swipe_id": 1},
        {"is_system": True, "mes": "hidden"},
        {"is_user": True, "name": "me", "mes": "Go on"},
    ]


class TestValidation:
    """Shape detection"""

    @pytest.mark.unit
    def test_records(self, importer, chat_lines):
        assert importer.validate(chat_lines)

    @pytest.mark.unit
    def test_raw_text(self, importer, chat_lines):
        assert importer.validate("\n".join(json.dumps(line) for line in chat_lines))

    @pytest.mark.unit
    def test_rejects_other_lists(self, importer):
        assert not importer.validate([{"chat_messages": []}])
        assert not importer.validate([])


class TestImport:
    """Swipes become sibling branches"""

    @pytest.mark.unit
    def test_metadata(self, importer, chat_lines):
        conv = importer.import_data(chat_lines, file_name="aria.jsonl")[0]
        assert conv.title == "Chat with Aria"
        assert conv.metadata.model == "Aria"
        assert conv.metadata.created_at == "2024-01-05 09:00:00"
        assert conv.uuid.startswith("jsonl_")

    @pytest.mark.unit
    def test_title_from_file_without_metadata(self, importer):
        conv = importer.import_data([{"is_user": True, "mes": "hi"}], file_name="night.jsonl")[0]
        assert conv.title == "night"

    @pytest.mark.unit
    def test_swipes_are_siblings(self, importer, chat_lines):
        messages = importer.import_data(chat_lines)[0].messages
        assert [m.uuid for m in messages] == [
            "jsonl_0_0", "jsonl_1_0", "jsonl_1_1", "jsonl_1_2", "jsonl_3_0",
        ]
        assert {m.parent_uuid for m in messages[1:4]} == {"jsonl_0_0"}
        assert messages[4].parent_uuid == "jsonl_1_1"

    @pytest.mark.unit
    def test_selected_swipe_is_flagged(self, importer, chat_lines):
        messages = importer.import_data(chat_lines)[0].messages
        assert messages[2].display_text == "**[2/3] 🚩**\n\nLong ago"
        assert messages[1].display_text == "**[1/3]**\n\nOnce upon a time"

    @pytest.mark.unit
    def test_swipe_thinking_extracted(self, importer, chat_lines):
        swipe = importer.import_data(chat_lines)[0].messages[3]
        assert swipe.thinking == "hmm"
        assert swipe.display_text.endswith("In a land")

    @pytest.mark.unit
    def test_selected_swipe_is_main_path(self, importer, chat_lines):
        conv = importer.import_data(chat_lines)[0]
        graph = build_branch_graph(conv.messages, conv.preferred_main)
        assert [m.uuid for m in select_linear_history(graph)] == [
            "jsonl_0_0", "jsonl_1_1", "jsonl_3_0",
        ]

    @pytest.mark.unit
    def test_out_of_range_swipe_id(self, importer, chat_lines):
        chat_lines[2]["swipe_id"] = 9
        conv = importer.import_data(chat_lines)[0]
        assert conv.preferred_main == {"jsonl_1_0"}
