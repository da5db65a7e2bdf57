"""
Tests for the Gemini / NotebookLM / AI Studio importer
"""

import pytest

from lyra.core.models import Sender
from lyra.integrations.importers.gemini import GeminiImporter, platform_display_name


@pytest.fixture
def importer():
    return GeminiImporter()


@pytest.fixture
def gemini_export():
    return {
        "title": "Trip planning",
        "platform": "gemini",
        "exportedAt": "2024-06-01T08:00:00Z",
        "conversation": [
            {"human": "Plan a weekend in Lisbon", "assistant": "Day 1: Alfama"},
            {"human": {"text": "Add a map", "images": ["data:image/jpeg;base64,AAAA"]},
             "assistant": {"text": "Here is a plan", "canvas": "# Itinerary\n- Belem"}},
            {"human": "", "assistant": ""},
        ],
    }


class TestValidation:
    """Shape detection"""

    @pytest.mark.unit
    def test_valid_export(self, importer, gemini_export):
        assert importer.validate(gemini_export)

    @pytest.mark.unit
    @pytest.mark.parametrize("missing", ["title", "platform", "exportedAt", "conversation"])
    def test_missing_field(self, importer, gemini_export, missing):
        del gemini_export[missing]
        assert not importer.validate(gemini_export)


class TestImport:
    """Turn pairs become a linear chain"""

    @pytest.mark.unit
    def test_metadata(self, importer, gemini_export):
        conv = importer.import_data(gemini_export)[0]
        assert conv.title == "Trip planning"
        assert conv.metadata.platform == "gemini"
        assert conv.metadata.model == "Gemini"
        assert conv.metadata.created_at == "2024-06-01 08:00:00"
        assert conv.uuid.startswith("gemini_")

    @pytest.mark.unit
    def test_uuid_is_stable(self, importer, gemini_export):
        first = importer.import_data(gemini_export)[0].uuid
        assert importer.import_data(gemini_export)[0].uuid == first

    @pytest.mark.unit
    def test_chain_and_empty_turns(self, importer, gemini_export):
        messages = importer.import_data(gemini_export)[0].messages
        assert [m.uuid for m in messages] == ["human_0", "assistant_0", "human_1", "assistant_1"]
        assert [m.parent_uuid for m in messages] == [None, "human_0", "assistant_0", "human_1"]
        assert [m.sender for m in messages] == [Sender.HUMAN, Sender.ASSISTANT] * 2
        assert messages[1].sender_label == "Gemini"

    @pytest.mark.unit
    def test_images_and_canvas(self, importer, gemini_export):
        messages = importer.import_data(gemini_export)[0].messages
        human = messages[2]
        assert human.images[0].file_type == "image/jpeg"
        assert human.display_text == "[Image 1]\n\nAdd a map"
        canvas = messages[3].artifacts[0]
        assert canvas.title == "Canvas"
        assert canvas.content.startswith("# Itinerary")

    @pytest.mark.unit
    def test_dict_image(self, importer, gemini_export):
        gemini_export["conversation"] = [
            {"human": {"text": "x", "images": [{"format": "image/webp", "data": "BBBB",
                                                "original_src": "https://example.org/i.webp"}]}},
        ]
        image = importer.import_data(gemini_export)[0].messages[0].images[0]
        assert image.data == "data:image/webp;base64,BBBB"
        assert image.url == "https://example.org/i.webp"


class TestPlatformNames:
    """Display names"""

    @pytest.mark.unit
    @pytest.mark.parametrize("platform,name", [
        ("notebooklm", "NotebookLM"),
        ("aistudio", "Google AI Studio"),
        ("perplexity", "Perplexity"),
    ])
    def test_names(self, platform, name):
        assert platform_display_name(platform) == name
