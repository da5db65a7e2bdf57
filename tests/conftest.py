"""
Pytest configuration and shared fixtures
"""

import json
import tempfile
from pathlib import Path
from typing import List, Optional

import pytest

from lyra.core.models import Conversation, ConversationMetadata, Message, Sender


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")


def _make_message(uuid: str, parent: Optional[str] = None, human: bool = True,
                  text: str = "", index: int = 0, **extra) -> Message:
    """Build a plain message; text defaults to its uuid"""
    return Message(
        uuid=uuid,
        parent_uuid=parent,
        sender=Sender.HUMAN if human else Sender.ASSISTANT,
        display_text=text or f"text of {uuid}",
        index=index,
        **extra,
    )


def _make_conversation(messages: List[Message], title: str = "Test Conversation",
                       uuid: str = "conv-001", **meta) -> Conversation:
    for i, msg in enumerate(messages):
        msg.index = i
    return Conversation(
        metadata=ConversationMetadata(uuid=uuid, title=title, **meta),
        messages=messages,
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def linear_conversation():
    """Four alternating messages without branches"""
    return _make_conversation([
        _make_message("m1", None, True, "Hello"),
        _make_message("m2", "m1", False, "Hi! How can I help?"),
        _make_message("m3", "m2", True, "Explain recursion"),
        _make_message("m4", "m3", False, "Recursion is a function calling itself."),
    ])


@pytest.fixture
def branching_conversation():
    """
    m1 -> m2 -> m3 -> m4
            \\-> m5 -> m6   (m2 has two replies: m3 main, m5 alternate)
    """
    return _make_conversation([
        _make_message("m1", None, True, "Question"),
        _make_message("m2", "m1", False, "Answer"),
        _make_message("m3", "m2", True, "Follow up A"),
        _make_message("m4", "m3", False, "Reply A"),
        _make_message("m5", "m2", True, "Follow up B"),
        _make_message("m6", "m5", False, "Reply B"),
    ])


@pytest.fixture
def claude_export_data():
    """A Claude single-conversation export"""
    return {
        "uuid": "claude-conv-1",
        "name": "Sorting algorithms",
        "model": "claude-3-opus",
        "created_at": "2024-03-01T10:00:00.000000Z",
        "updated_at": "2024-03-02T11:30:00.000000Z",
        "is_starred": True,
        "chat_messages": [
            {
                "uuid": "h1",
                "sender": "human",
                "created_at": "2024-03-01T10:00:00.000000Z",
                "content": [{"type": "text", "text": "Write quicksort"}],
                "attachments": [{"file_name": "notes.txt", "file_size": 12,
                                 "file_type": "txt", "extracted_content": "pivot first"}],
            },
            {
                "uuid": "a1",
                "parent_message_uuid": "h1",
                "sender": "assistant",
                "created_at": "2024-03-01T10:00:05.000000Z",
                "content": [
                    {"type": "thinking", "thinking": "  Pick a pivot.  "},
                    {"type": "text", "text": "Here it is."},
                    {"type": "tool_use", "name": "artifacts",
                     "input": {"command": "create", "id": "qs", "title": "quicksort.py",
                               "type": "application/vnd.ant.code", "language": "python",
                               "content": "def qs(xs):\n    return xs"}},
                    {"type": "tool_use", "name": "web_search",
                     "input": {"query": "quicksort complexity"}},
                    {"type": "tool_result", "name": "web_search",
                     "content": [{"title": "Quicksort", "url": "https://example.org/qs"}]},
                ],
            },
        ],
    }


@pytest.fixture
def claude_export_file(temp_dir, claude_export_data):
    path = temp_dir / "claude.json"
    path.write_text(json.dumps(claude_export_data), encoding="utf-8")
    return path
