"""
Markdown exporter with mark-based filtering and configurable headings
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional, Set
import json
import logging
import os

from lyra.core.plugin import ExporterPlugin
from lyra.core.branches import build_branch_graph
from lyra.core.config import get_config
from lyra.core.constants import MARK_TYPES, WEB_SEARCH_RESULTS_SHOWN
from lyra.core.formatting import (
    branch_suffix, escape_xml, format_number, host_of, sender_label
)
from lyra.core.models import Artifact, Attachment, Citation, Conversation, Message, ToolCall

logger = logging.getLogger(__name__)

THINKING_LABEL = '💭 Thinking Process:'


def _quoted(value: str) -> str:
    """Double-quoted YAML scalar"""
    value = str(value).replace('\\', '\\\\').replace('"', '\\"')
    return f'"{value}"'


@dataclass
class MarkdownOptions:
    """What to include and how to format it"""
    include_thinking: bool = True
    include_tools: bool = True
    include_artifacts: bool = True
    include_citations: bool = True
    include_attachments: bool = True
    include_timestamps: bool = False
    export_obsidian_metadata: bool = False
    obsidian_properties: List[Dict[str, str]] = field(default_factory=list)
    obsidian_tags: List[str] = field(default_factory=list)
    exclude_deleted: bool = True
    include_completed: bool = False
    include_important: bool = False
    numbering: str = 'numeric'          # none, numeric, letter, roman
    header_level: int = 2               # 0 disables the heading prefix
    sender_format: str = 'default'      # default, human-assistant, custom
    human_label: str = ''
    assistant_label: str = ''
    thinking_format: str = 'codeblock'  # codeblock, xml, emoji

    @classmethod
    def from_config(cls, config=None, **overrides) -> 'MarkdownOptions':
        """Options from the ``markdown`` config section, then explicit overrides"""
        section = (config or get_config()).section('markdown')
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in section.items() if k in known}
        values.update({k: v for k, v in overrides.items() if k in known and v is not None})
        return cls(**values)


class MarkdownExporter(ExporterPlugin):
    """Export conversations to Markdown documents"""

    name = "markdown"
    description = "Export conversations to Markdown with optional Obsidian front matter"
    version = "1.0.0"
    supported_formats = ["md", "markdown"]
    extension = "md"

    def validate(self, data: Any) -> bool:
        """Markdown exporter can handle any conversation data"""
        return True

    def export_data(self, conversations: List[Conversation], **kwargs) -> str:
        """
        Render conversations to one Markdown string.

        Keyword args:
            options: MarkdownOptions (defaults from config)
            marks: {completed, important, deleted} sets of message indexes,
                or a dict of those keyed by conversation uuid
            messages: explicit message list (single conversation only)
        """
        options = kwargs.get('options') or MarkdownOptions.from_config()
        marks = kwargs.get('marks')
        documents = []
        for conv in conversations:
            conv_marks = marks.get(conv.uuid) if marks and conv.uuid in marks else marks
            documents.append(self.generate(
                conv,
                messages=kwargs.get('messages') if len(conversations) == 1 else None,
                marks=conv_marks,
                options=options,
            ))
        return '\n\n'.join(documents)

    def export_to_file(self, conversations: List[Conversation], file_path: str, **kwargs) -> None:
        """
        Export conversations to markdown file(s).

        If file_path is a directory (or has no extension), exports one file per conversation.
        Otherwise exports all conversations to a single file.
        """
        path = Path(file_path)
        is_directory_mode = (
            path.is_dir() or
            file_path.endswith('/') or
            file_path.endswith(os.sep) or
            (not path.suffix and not path.exists())
        )

        if is_directory_mode:
            path.mkdir(parents=True, exist_ok=True)
            for conv in conversations:
                target = path / self.suggest_filename(conv)
                target.write_text(self.export_data([conv], **kwargs), encoding='utf-8')
                logger.info(f"Wrote {target}")
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.export_data(conversations, **kwargs), encoding='utf-8')

    # --- Document ---

    def generate(self, conversation: Conversation, messages: Optional[List[Message]] = None,
                 marks: Optional[Dict[str, Set[int]]] = None,
                 options: Optional[MarkdownOptions] = None) -> str:
        """
        Render one conversation.

        ``messages`` defaults to every message, branch-annotated. Marks filter
        by ``Message.index``.
        """
        options = options or MarkdownOptions()
        if messages is None:
            messages = list(build_branch_graph(conversation.messages,
                                               conversation.preferred_main).messages)
        filtered = self.filter_messages(messages, marks, options)

        sections = [
            self._front_matter(conversation, options),
            self._header(conversation, options),
            self._messages(filtered, options),
            self._footer(len(filtered), len(messages)),
        ]
        return '\n'.join(s for s in sections if s)

    @staticmethod
    def filter_messages(messages: List[Message], marks: Optional[Dict[str, Set[int]]],
                        options: MarkdownOptions) -> List[Message]:
        """Apply deleted / completed / important filters"""
        marks = marks or {}
        marked = {t: set(marks.get(t) or ()) for t in MARK_TYPES}
        filtered = list(messages)

        if options.exclude_deleted:
            filtered = [m for m in filtered if m.index not in marked['deleted']]

        if options.include_completed and options.include_important:
            filtered = [m for m in filtered
                        if m.index in marked['completed'] and m.index in marked['important']]
        elif options.include_completed:
            filtered = [m for m in filtered if m.index in marked['completed']]
        elif options.include_important:
            filtered = [m for m in filtered if m.index in marked['important']]

        return filtered

    @staticmethod
    def _front_matter(conversation: Conversation, options: MarkdownOptions) -> str:
        if not options.export_obsidian_metadata:
            return ''

        now = datetime.now()
        lines = [
            '---',
            f"title: {_quoted(conversation.title or 'Conversation')}",
            f"date: {now.strftime('%Y-%m-%d')}",
            f"export_time: {now.strftime('%Y-%m-%d %H:%M:%S')}",
        ]
        for prop in options.obsidian_properties:
            name = prop.get('name')
            value = str(prop.get('value', ''))
            if not name:
                continue
            if ',' in value:
                lines.append(f"{name}:")
                lines.extend(f"  - {_quoted(v.strip())}" for v in value.split(','))
            else:
                lines.append(f"{name}: {_quoted(value)}")

        if options.obsidian_tags:
            lines.append('tags:')
            lines.extend(f"  - {_quoted(tag)}" for tag in options.obsidian_tags)

        lines.extend(['---', ''])
        return '\n'.join(lines)

    def _header(self, conversation: Conversation, options: MarkdownOptions) -> str:
        lines = [
            f"# {conversation.title or 'Conversation'}",
            f"*Created: {conversation.metadata.created_at or 'Unknown'}*",
            f"*Exported: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}*",
        ]
        description = self._filter_description(options)
        if description:
            lines.append(f"*Filters: {description}*")
        lines.extend(['', '---', ''])
        return '\n'.join(lines)

    @staticmethod
    def _filter_description(options: MarkdownOptions) -> str:
        filters = []
        if options.exclude_deleted:
            filters.append('Excluding deleted')
        if options.include_completed and options.include_important:
            filters.append('Only completed and important messages')
        elif options.include_completed:
            filters.append('Only completed messages')
        elif options.include_important:
            filters.append('Only important messages')
        return ', '.join(filters)

    def _messages(self, messages: List[Message], options: MarkdownOptions) -> str:
        if not messages:
            return '*No messages match the current filters*\n'
        return '\n---\n\n'.join(
            self.format_message(msg, position, options)
            for position, msg in enumerate(messages, 1)
        )

    @staticmethod
    def _footer(exported: int, total: int) -> str:
        if exported < total:
            return f"\n*Exported {exported} of {total} messages based on filters*"
        return ''

    # --- Message blocks ---

    def format_message(self, msg: Message, position: int, options: MarkdownOptions) -> str:
        lines = [self.format_title(msg, position, options)]

        if options.include_timestamps and msg.timestamp:
            lines.append(f"*{msg.timestamp}*")
        lines.append('')

        show_thinking = options.include_thinking and msg.thinking
        if show_thinking and options.thinking_format in ('codeblock', 'xml'):
            lines.append(self.format_thinking(msg.thinking, options.thinking_format))

        if msg.display_text:
            lines.extend([msg.display_text, ''])

        if msg.is_human and options.include_attachments and msg.attachments:
            lines.append(self.format_attachments(msg.attachments))

        if show_thinking and options.thinking_format == 'emoji':
            lines.append(self.format_thinking(msg.thinking, 'emoji'))

        if not msg.is_human and options.include_artifacts:
            lines.extend(self.format_artifact(a) for a in msg.artifacts)

        if options.include_tools:
            lines.extend(self.format_tool(t) for t in msg.tools)

        if options.include_citations and msg.citations:
            lines.append(self.format_citations(msg.citations))

        return '\n'.join(lines)

    @staticmethod
    def format_title(msg: Message, position: int, options: MarkdownOptions) -> str:
        title = ''
        if options.header_level > 0:
            title += '#' * options.header_level + ' '
        number = format_number(position, options.numbering)
        if number:
            title += number + ' '
        title += sender_label(msg, options.sender_format,
                              options.human_label, options.assistant_label)
        return title + branch_suffix(msg)

    @staticmethod
    def format_thinking(thinking: str, thinking_format: str = 'codeblock') -> str:
        if thinking_format == 'codeblock':
            return '\n'.join(['``` thinking', thinking, '```', ''])
        if thinking_format == 'xml':
            return '\n'.join(['<anthropic_thinking>', thinking, '</anthropic_thinking>', ''])
        return '\n'.join([THINKING_LABEL, '```', thinking, '```', ''])

    @staticmethod
    def format_attachments(attachments: List[Attachment]) -> str:
        lines = ['<attachments>']
        for i, att in enumerate(attachments, 1):
            lines.append(f'<attachment index="{i}">')
            lines.append(f"<file_name>{escape_xml(att.file_name or 'unknown')}</file_name>")
            lines.append(f"<file_size>{att.file_size or 0}</file_size>")
            if att.created_at:
                lines.append(f"<created_at>{escape_xml(att.created_at)}</created_at>")
            if att.extracted_content:
                lines.extend(['<attachment_content>', att.extracted_content,
                              '</attachment_content>'])
            lines.append('</attachment>')
            if i < len(attachments):
                lines.append('')
        lines.extend(['</attachments>', ''])
        return '\n'.join(lines)

    @staticmethod
    def _details(summary: str, content: List[str]) -> str:
        return '\n'.join(['<details>', f"<summary>{summary}</summary>", '']
                         + content + ['</details>', ''])

    def format_artifact(self, artifact: Artifact) -> str:
        content = [f"**Type**: `{artifact.type or 'unknown'}`", '']
        if artifact.command == 'create' and artifact.content:
            if artifact.language:
                content.append(f"**Language**: `{artifact.language}`")
            content.extend(['', '**Content**:', f"```{artifact.language or ''}",
                            artifact.content, '```'])
        elif artifact.command in ('update', 'rewrite'):
            content.extend([f"**Operation**: `{artifact.command}`", ''])
            if artifact.old_str:
                content.extend(['**Old**:', '```', artifact.old_str, '```'])
            if artifact.new_str:
                content.extend(['**New**:', '```', artifact.new_str, '```'])
        return self._details(f"🔧 Artifact: {artifact.title or 'Untitled'}", content)

    def format_tool(self, tool: ToolCall) -> str:
        content = []
        if tool.query:
            content.extend([f"**Search query**: `{tool.query}`", ''])
        elif tool.input:
            content.extend(['**Input**:', '```json',
                            json.dumps(tool.input, indent=2, ensure_ascii=False, default=str),
                            '```', ''])

        result = tool.result if isinstance(tool.result, dict) else {}
        if result.get('is_error'):
            content.extend(['**Result**: the tool reported an error', ''])
        items = result.get('content')
        if tool.name == 'web_search' and isinstance(items, list) and items:
            content.extend(['**Search results**:', ''])
            for i, item in enumerate(items[:WEB_SEARCH_RESULTS_SHOWN], 1):
                item = item if isinstance(item, dict) else {}
                content.append(f"{i}. [{item.get('title') or 'Untitled'}]({item.get('url') or '#'})")
        return self._details(f"🔍 Tool: {tool.name}", content)

    def format_citations(self, citations: List[Citation]) -> str:
        content = ['| Title | Source |', '| --- | --- |']
        for citation in citations:
            url = citation.url or '#'
            source = host_of(url) or 'Unknown site'
            content.append(f"| [{citation.title or 'Unknown source'}]({url}) | {source} |")
        return self._details('📎 Citations', content)
