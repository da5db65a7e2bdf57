"""
PDF exporter: paginated documents with a table of contents and bookmarks
"""

from pathlib import Path
from typing import Any, List, Optional
import logging
import os

from lyra.core.errors import EmptyExportError
from lyra.core.formatting import document_filename
from lyra.core.models import Conversation
from lyra.core.plugin import ExporterPlugin
from lyra.pdf.fonts import FontProvider, provider_for
from lyra.pdf.layout import LayoutEngine
from lyra.pdf.render import PdfRenderer
from lyra.pdf.styles import PdfOptions

logger = logging.getLogger(__name__)


class PdfExporter(ExporterPlugin):
    """Export one conversation per PDF document"""

    name = "pdf"
    description = "Export conversations to paginated PDF with TOC and bookmarks"
    version = "1.0.0"
    supported_formats = ["pdf"]
    extension = "pdf"

    def __init__(self, font: Optional[FontProvider] = None):
        self.font = font

    def validate(self, data: Any) -> bool:
        return True

    def _font_for(self, options: PdfOptions) -> FontProvider:
        if self.font is not None:
            return self.font
        return provider_for(options.font_path)

    def generate(self, conversation: Conversation, messages=None, title: Optional[str] = None,
                 options: Optional[PdfOptions] = None) -> bytes:
        """Lay out and render one conversation"""
        options = options or PdfOptions()
        font = self._font_for(options)
        result = LayoutEngine(options, font).layout(conversation, messages=messages, title=title)
        data = PdfRenderer(font).render(result)
        logger.info(f"Exported {conversation.title!r} to PDF ({result.page_count} pages)")
        return data

    def export_data(self, conversations: List[Conversation], **kwargs) -> bytes:
        """
        Render a single conversation to PDF bytes.

        Keyword args:
            options: PdfOptions (defaults from config)
            messages: explicit message list, e.g. a selected linear history
            title: title override, e.g. a user rename

        Several conversations need a directory target; see ``export_to_file``.
        """
        if not conversations:
            raise EmptyExportError("No conversations to export")
        if len(conversations) > 1:
            raise ValueError("PDF export takes one conversation per document; "
                             "export to a directory for several")

        options = kwargs.get('options') or PdfOptions.from_config()
        return self.generate(conversations[0], messages=kwargs.get('messages'),
                             title=kwargs.get('title'), options=options)

    def export_to_file(self, conversations: List[Conversation], file_path: str, **kwargs) -> None:
        """
        Write PDF file(s).

        A directory target (or several conversations) gets one document per
        conversation, named by ``suggest_filename``.
        """
        path = Path(file_path)
        is_directory_mode = (
            len(conversations) > 1 or
            path.is_dir() or
            file_path.endswith('/') or
            file_path.endswith(os.sep) or
            (not path.suffix and not path.exists())
        )

        if is_directory_mode:
            path.mkdir(parents=True, exist_ok=True)
            if len(conversations) > 1:
                kwargs = {k: v for k, v in kwargs.items() if k not in ('messages', 'title')}
            for conv in conversations:
                target = path / self.suggest_filename(conv)
                target.write_bytes(self.export_data([conv], **kwargs))
                logger.info(f"Wrote {target}")
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(self.export_data(conversations, **kwargs))

    def suggest_filename(self, conversation: Conversation) -> str:
        return document_filename(conversation.title, self.extension)
