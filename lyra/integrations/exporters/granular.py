"""
Granular exporter: every message element as its own file, packaged in zips.

File names follow ``DDD-AUTHOR-BRANCH-SSS-TYPE.ext``:

- ``DDD``: 1-based message position, zero padded to three digits
- ``AUTHOR``: ``USER`` for human messages, ``IA`` for the assistant
- ``BRANCH``: ``M`` on the main branch, ``Tnn`` elsewhere
- ``SSS``: element counter within the message, starting at 1
- ``TYPE``: message, thinking, artefato, tool, citation, anexo or imagem
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple
import base64
import binascii
import io
import json
import logging
import threading
import zipfile

from lyra.core.plugin import ExporterPlugin
from lyra.core.branches import build_branch_graph
from lyra.core.constants import (
    AUTHOR_AI, AUTHOR_USER, ELEMENT_ARTIFACT, ELEMENT_ATTACHMENT, ELEMENT_CITATION,
    ELEMENT_IMAGE, ELEMENT_MESSAGE, ELEMENT_THINKING, ELEMENT_TOOL, MAIN_BRANCH
)
from lyra.core.errors import ElementNotAvailableError, ExportCancelled
from lyra.core.formatting import branch_marker, filename_date, sanitize_archive_name
from lyra.core.models import Artifact, Citation, Conversation, Message, Project, ToolCall

logger = logging.getLogger(__name__)

ARTIFACT_EXTENSIONS = {
    'html': 'html',
    'css': 'css',
    'javascript': 'js',
    'js': 'js',
    'typescript': 'ts',
    'ts': 'ts',
    'python': 'py',
    'java': 'java',
    'cpp': 'cpp',
    'c++': 'cpp',
    'c': 'c',
    'csharp': 'cs',
    'c#': 'cs',
    'ruby': 'rb',
    'go': 'go',
    'rust': 'rs',
    'php': 'php',
    'swift': 'swift',
    'kotlin': 'kt',
    'scala': 'scala',
    'sql': 'sql',
    'shell': 'sh',
    'bash': 'sh',
    'powershell': 'ps1',
    'yaml': 'yaml',
    'yml': 'yml',
    'json': 'json',
    'xml': 'xml',
    'markdown': 'md',
    'md': 'md',
    'text': 'txt',
    'svg': 'svg',
    'react': 'jsx',
    'jsx': 'jsx',
    'tsx': 'tsx',
    'vue': 'vue',
}


def artifact_extension(artifact: Artifact) -> str:
    """Extension from the artifact's language, then its type; ``txt`` otherwise"""
    language = (artifact.language or '').lower()
    kind = (artifact.type or '').lower()
    return ARTIFACT_EXTENSIONS.get(language) or ARTIFACT_EXTENSIONS.get(kind) or 'txt'


def author_of(msg: Message) -> str:
    return AUTHOR_USER if msg.is_human else AUTHOR_AI


def element_filename(msg_index: int, author: str, marker: str, element_index: int,
                     element_type: str, extension: str) -> str:
    return f"{msg_index:03d}-{author}-{marker}-{element_index:03d}-{element_type}.{extension}"


def group_key(msg: Message, msg_index: int) -> str:
    """``DDD-AUTHOR-BRANCH``, the per-message archive name"""
    return f"{msg_index:03d}-{author_of(msg)}-{branch_marker(msg.branch_id)}"


def strip_data_url(data: str) -> str:
    """Drop a ``data:...;base64,`` prefix"""
    if data.startswith('data:') and ',' in data:
        return data.split(',', 1)[1]
    return data


class CancellationToken:
    """Cooperative cancellation for long exports"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExportCancelled("Export cancelled")


@dataclass
class ExportElement:
    """One file produced from a message"""
    file_name: str
    content: Optional[str]
    type: str
    is_base64: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def payload(self) -> Optional[bytes]:
        """Bytes to store, or None when there is nothing to write"""
        if not self.content:
            return None
        if self.is_base64:
            try:
                return base64.b64decode(strip_data_url(self.content))
            except (binascii.Error, ValueError) as e:
                logger.warning(f"Skipping undecodable image {self.file_name}: {e}")
                return None
        return self.content.encode('utf-8')


class GranularExporter(ExporterPlugin):
    """Export messages element by element into structured zip archives"""

    name = "granular"
    description = "Export each message element as its own file inside zip archives"
    version = "1.0.0"
    supported_formats = ["zip"]
    extension = "zip"

    def validate(self, data: Any) -> bool:
        return True

    # --- Element extraction ---

    def extract_message_elements(self, msg: Message, msg_index: int) -> List[ExportElement]:
        """All exportable elements of one message, numbered in a fixed order"""
        elements = []
        author = author_of(msg)
        marker = branch_marker(msg.branch_id)
        counter = 1

        def name(element_type: str, extension: str) -> str:
            return element_filename(msg_index, author, marker, counter, element_type, extension)

        if msg.display_text:
            elements.append(ExportElement(name(ELEMENT_MESSAGE, 'md'),
                                          self.format_message(msg), 'message'))
            counter += 1

        if msg.thinking and not msg.is_human:
            elements.append(ExportElement(name(ELEMENT_THINKING, 'md'),
                                          self.format_thinking(msg), 'thinking'))
            counter += 1

        for artifact in msg.artifacts:
            body = self.artifact_body(artifact)
            if body is None:
                continue
            extension, text = body
            elements.append(ExportElement(
                name(ELEMENT_ARTIFACT, extension),
                text,
                'artifact',
                metadata={'title': artifact.title, 'type': artifact.type,
                          'language': artifact.language, 'command': artifact.command},
            ))
            counter += 1

        for tool in msg.tools:
            elements.append(ExportElement(name(ELEMENT_TOOL, 'md'),
                                          self.format_tool(tool), 'tool'))
            counter += 1

        if msg.citations:
            elements.append(ExportElement(name(ELEMENT_CITATION, 'md'),
                                          self.format_citations(msg.citations), 'citation'))
            counter += 1

        for att in msg.attachments:
            suffix = Path(att.file_name or '').suffix.lstrip('.')
            elements.append(ExportElement(
                name(ELEMENT_ATTACHMENT, suffix or 'bin'),
                att.extracted_content or f"[Attachment: {att.file_name}]",
                'attachment',
                metadata=att.to_dict(),
            ))
            counter += 1

        for img in msg.images:
            subtype = (img.file_type or '').split('/')[-1]
            elements.append(ExportElement(
                name(ELEMENT_IMAGE, subtype or 'png'),
                img.data,
                'image',
                is_base64=True,
                metadata=img.to_dict(),
            ))
            counter += 1

        return elements

    # --- Element formatting ---

    @staticmethod
    def format_message(msg: Message) -> str:
        lines = ['# Message', '', f"**Author:** {'User' if msg.is_human else 'AI'}"]
        if msg.timestamp:
            lines.append(f"**Date:** {msg.timestamp}")
        if msg.branch_id and msg.branch_id != MAIN_BRANCH:
            lines.append(f"**Branch:** {msg.branch_id}")
        lines.extend(['', '---', '', msg.display_text or ''])
        return '\n'.join(lines)

    @staticmethod
    def format_thinking(msg: Message) -> str:
        lines = ['# Thinking Process', '', f"**Message:** #{msg.index + 1}"]
        if msg.timestamp:
            lines.append(f"**Date:** {msg.timestamp}")
        lines.extend(['', '---', '', msg.thinking])
        return '\n'.join(lines)

    @staticmethod
    def artifact_body(artifact: Artifact) -> Optional[Tuple[str, str]]:
        """
        (extension, text) of an artifact file, or None when it carries nothing.

        Edits without full content become a Markdown note of the old and new text.
        """
        if artifact.content:
            return artifact_extension(artifact), artifact.content
        if artifact.command not in ('update', 'rewrite'):
            return None
        if not artifact.old_str and not artifact.new_str:
            return None
        lines = [f"# Artifact {artifact.command}: {artifact.title or 'Untitled'}", '']
        fence = artifact.language or ''
        if artifact.old_str:
            lines.extend(['## Old', f"```{fence}", artifact.old_str, '```', ''])
        if artifact.new_str:
            lines.extend(['## New', f"```{fence}", artifact.new_str, '```'])
        return 'md', '\n'.join(lines)

    @staticmethod
    def format_tool(tool: ToolCall) -> str:
        lines = ['# Tool Use', '', f"**Tool:** {tool.name or 'unknown'}", '']
        if tool.query:
            lines.extend([f"**Query:** {tool.query}", ''])
        if tool.input:
            lines.extend(['## Input Parameters', '```json',
                          json.dumps(tool.input, indent=2, ensure_ascii=False, default=str),
                          '```', ''])
        if tool.result:
            result = (tool.result if isinstance(tool.result, str)
                      else json.dumps(tool.result, indent=2, ensure_ascii=False, default=str))
            lines.extend(['## Result', '```', result, '```'])
        return '\n'.join(lines)

    @staticmethod
    def format_citations(citations: List[Citation]) -> str:
        lines = ['# Citations', '']
        for i, citation in enumerate(citations, 1):
            lines.append(f"## Citation {i}")
            if citation.title:
                lines.append(f"**Title:** {citation.title}")
            if citation.url:
                lines.append(f"**URL:** [{citation.url}]({citation.url})")
            if citation.snippet:
                lines.extend(['', citation.snippet])
            lines.append('')
        return '\n'.join(lines)

    # --- Single elements ---

    def export_thinking(self, msg: Message, msg_index: int) -> Tuple[str, bytes]:
        if not msg.thinking:
            raise ElementNotAvailableError("Message has no thinking process")
        file_name = element_filename(msg_index, author_of(msg), branch_marker(msg.branch_id),
                                     1, ELEMENT_THINKING, 'md')
        return file_name, self.format_thinking(msg).encode('utf-8')

    def export_output(self, msg: Message, msg_index: int) -> Tuple[str, bytes]:
        if not msg.display_text:
            raise ElementNotAvailableError("Message has no text")
        file_name = element_filename(msg_index, author_of(msg), branch_marker(msg.branch_id),
                                     1, ELEMENT_MESSAGE, 'md')
        return file_name, self.format_message(msg).encode('utf-8')

    def export_artifact(self, msg: Message, msg_index: int,
                        artifact_index: int = 0) -> Tuple[str, bytes]:
        if not 0 <= artifact_index < len(msg.artifacts):
            raise ElementNotAvailableError(
                f"Message has no artifact at position {artifact_index}")
        body = self.artifact_body(msg.artifacts[artifact_index])
        if body is None:
            raise ElementNotAvailableError(
                f"Artifact at position {artifact_index} has no content")
        extension, text = body
        file_name = element_filename(msg_index, author_of(msg), branch_marker(msg.branch_id),
                                     artifact_index + 1, ELEMENT_ARTIFACT, extension)
        return file_name, text.encode('utf-8')

    # --- Archives ---

    @staticmethod
    def _zip(entries: List[Tuple[str, bytes]]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
            for name, data in entries:
                archive.writestr(name, data)
        return buffer.getvalue()

    def _element_entries(self, elements: List[ExportElement]) -> List[Tuple[str, bytes]]:
        entries = []
        for element in elements:
            data = element.payload()
            if data is not None:
                entries.append((element.file_name, data))
        return entries

    def export_message(self, msg: Message, msg_index: int) -> Tuple[str, bytes]:
        """One message's elements as ``DDD-AUTHOR-BRANCH.zip``"""
        elements = self.extract_message_elements(msg, msg_index)
        return f"{group_key(msg, msg_index)}.zip", self._zip(self._element_entries(elements))

    def _conversation_messages(self, conversation: Conversation) -> List[Message]:
        graph = build_branch_graph(conversation.messages, conversation.preferred_main)
        for warning in graph.warnings:
            logger.warning(f"{conversation.uuid or conversation.title}: {warning}")
        return list(graph.messages)

    def conversation_archive(self, conversation: Conversation,
                             messages: Optional[List[Message]] = None) -> bytes:
        """Archive bytes with one inner zip per message plus ``_metadata.json``"""
        if messages is None:
            messages = self._conversation_messages(conversation)

        groups: Dict[str, List[ExportElement]] = {}
        for position, msg in enumerate(messages, 1):
            groups.setdefault(group_key(msg, position), []).extend(
                self.extract_message_elements(msg, position))

        entries = [(f"{key}.zip", self._zip(self._element_entries(elements)))
                   for key, elements in groups.items()]
        metadata = self.conversation_metadata(conversation, messages)
        entries.append(('_metadata.json',
                        json.dumps(metadata, indent=2, ensure_ascii=False).encode('utf-8')))
        return self._zip(entries)

    def export_conversation(self, conversation: Conversation,
                            messages: Optional[List[Message]] = None) -> Tuple[str, bytes]:
        """Whole conversation as ``{title}_{YYYYMMDD}.zip``"""
        return self.suggest_filename(conversation), self.conversation_archive(conversation, messages)

    def export_project(self, project: Project,
                       cancel_token: Optional[CancellationToken] = None) -> Tuple[str, bytes]:
        """
        Project archive: metadata, system prompt, knowledge base and one
        archive per conversation under ``conversations/``.

        Raises:
            ExportCancelled: when ``cancel_token`` is cancelled between conversations
        """
        entries = []
        metadata = {
            'name': project.name or 'Project',
            'description': project.description or '',
            'system_prompt': project.system_prompt or '',
            'created_at': project.created_at,
            'updated_at': project.updated_at,
            'conversation_count': len(project.conversations),
            'export_date': datetime.now().isoformat(),
        }
        entries.append(('project_metadata.json',
                        json.dumps(metadata, indent=2, ensure_ascii=False).encode('utf-8')))

        if project.system_prompt:
            entries.append(('system_prompt.md',
                            f"# System Prompt\n\n{project.system_prompt}".encode('utf-8')))

        for i, doc in enumerate(project.knowledge_base, 1):
            doc_name = doc.get('name') or f"knowledge_{i:03d}.md"
            entries.append((f"knowledge_base/{doc_name}",
                            (doc.get('content') or '').encode('utf-8')))

        used = set()
        for i, conv in enumerate(project.conversations, 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            base = sanitize_archive_name(conv.title or f"conversation_{i:03d}")
            conv_name = base
            suffix = 2
            while conv_name in used:
                conv_name = f"{base}_{suffix}"
                suffix += 1
            used.add(conv_name)
            entries.append((f"conversations/{conv_name}.zip", self.conversation_archive(conv)))
            logger.debug(f"Packed conversation {i}/{len(project.conversations)}: {conv_name}")

        file_name = f"{sanitize_archive_name(project.name or 'project')}_{filename_date()}.zip"
        return file_name, self._zip(entries)

    @staticmethod
    def conversation_metadata(conversation: Conversation, messages: List[Message]) -> Dict[str, Any]:
        meta = conversation.metadata
        branches = []
        for msg in messages:
            if msg.branch_id and msg.branch_id not in branches:
                branches.append(msg.branch_id)

        return {
            'title': meta.title or 'Conversation',
            'uuid': meta.uuid or '',
            'platform': meta.platform or 'claude',
            'model': meta.model or '',
            'created_at': meta.created_at,
            'updated_at': meta.updated_at,
            'project_uuid': meta.project_uuid or '',
            'statistics': {
                'total_messages': len(messages),
                'user_messages': sum(1 for m in messages if m.is_human),
                'ai_messages': sum(1 for m in messages if not m.is_human),
                'messages_with_thinking': sum(1 for m in messages if m.thinking),
                'messages_with_artifacts': sum(1 for m in messages if m.artifacts),
                'messages_with_images': sum(1 for m in messages if m.images),
                'messages_with_tools': sum(1 for m in messages if m.tools),
            },
            'branches': branches,
            'export_date': datetime.now().isoformat(),
        }

    # --- Plugin interface ---

    def suggest_filename(self, conversation: Conversation) -> str:
        title = sanitize_archive_name(conversation.title or 'conversation')
        return f"{title}_{filename_date(conversation.metadata.updated_at)}.zip"

    def export_data(self, conversations: List[Conversation], **kwargs) -> bytes:
        """
        Archive bytes: a project archive when ``project`` is given, the
        conversation archive for a single conversation, otherwise one
        archive per conversation bundled together.
        """
        project = kwargs.get('project')
        if project is not None:
            return self.export_project(project, kwargs.get('cancel_token'))[1]

        if len(conversations) == 1:
            return self.conversation_archive(conversations[0], kwargs.get('messages'))

        cancel_token = kwargs.get('cancel_token')
        entries = []
        used = set()
        for conv in conversations:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            name = self.suggest_filename(conv)
            stem, suffix = name[:-len('.zip')], 2
            while name in used:
                name = f"{stem}_{suffix}.zip"
                suffix += 1
            used.add(name)
            entries.append((name, self.conversation_archive(conv)))
        return self._zip(entries)
