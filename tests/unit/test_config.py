"""
Tests for configuration loading and option defaults
"""

import json

import pytest

from lyra.core.config import Config
from lyra.integrations.exporters.markdown import MarkdownOptions
from lyra.pdf.styles import PdfOptions


@pytest.fixture
def config_file(temp_dir):
    path = temp_dir / "config.json"
    path.write_text(json.dumps({
        "markdown": {"numbering": "roman", "header_level": 1},
        "pdf": {"page_format": "letter"},
    }), encoding="utf-8")
    return path


class TestConfig:
    """JSON config merged over defaults"""

    @pytest.mark.unit
    def test_missing_file_gives_defaults(self, temp_dir):
        config = Config(temp_dir / "absent.json")
        assert config.get("pdf.page_format") == "a4"
        assert config.get("markdown.numbering") == "numeric"

    @pytest.mark.unit
    def test_user_values_deep_merged(self, config_file):
        config = Config(config_file)
        assert config.get("markdown.numbering") == "roman"
        assert config.get("markdown.include_thinking") is True
        assert config.get("pdf.page_format") == "letter"

    @pytest.mark.unit
    def test_invalid_json_falls_back(self, temp_dir):
        path = temp_dir / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        assert Config(path).get("pdf.page_format") == "a4"

    @pytest.mark.unit
    def test_get_default_for_unknown_key(self, temp_dir):
        assert Config(temp_dir / "absent.json").get("nope.deeper", 5) == 5

    @pytest.mark.unit
    def test_set_persists(self, temp_dir):
        path = temp_dir / "sub" / "config.json"
        config = Config(path)
        config.set("export.default_format", "pdf")
        assert Config(path).get("export.default_format") == "pdf"

    @pytest.mark.unit
    def test_section_is_a_copy(self, temp_dir):
        config = Config(temp_dir / "absent.json")
        section = config.section("markdown")
        section["numbering"] = "letter"
        assert config.get("markdown.numbering") == "numeric"


class TestOptionsFromConfig:
    """Exporter options read their config section"""

    @pytest.mark.unit
    def test_markdown_options(self, config_file):
        options = MarkdownOptions.from_config(Config(config_file))
        assert options.numbering == "roman"
        assert options.header_level == 1

    @pytest.mark.unit
    def test_overrides_win_and_none_is_ignored(self, config_file):
        options = MarkdownOptions.from_config(Config(config_file), numbering="letter",
                                              header_level=None)
        assert options.numbering == "letter"
        assert options.header_level == 1

    @pytest.mark.unit
    def test_pdf_options(self, config_file):
        options = PdfOptions.from_config(Config(config_file), font_path="/fonts/x.ttf")
        assert options.page_format == "letter"
        assert options.font_path == "/fonts/x.ttf"
        assert options.include_timestamps is False
