"""
Claude conversation importer (single conversations and full account exports)
"""

import json
import logging
from typing import List, Any, Dict, Optional

from lyra.core.plugin import ImporterPlugin
from lyra.core.formatting import display_timestamp
from lyra.core.models import (
    Conversation, ConversationMetadata, Message, Sender, Artifact, ToolCall,
    Citation, Attachment, ImageRef, Project
)

logger = logging.getLogger(__name__)


def _is_full_export(data: Any) -> bool:
    return (isinstance(data, dict) and bool(data.get('exportedAt')) and
            isinstance(data.get('conversations'), list))


def _is_conversation(data: Any) -> bool:
    return isinstance(data, dict) and isinstance(data.get('chat_messages'), list)


class ClaudeImporter(ImporterPlugin):
    """Import Claude conversation exports"""

    name = "claude"
    description = "Import Claude conversations and full account exports"
    version = "1.0.0"
    supported_formats = ["claude", "claude_full_export"]

    def validate(self, data: Any) -> bool:
        """Check if data is a Claude conversation, list of them, or a full export"""
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except (json.JSONDecodeError, TypeError, ValueError):
                return False

        if _is_full_export(data) or _is_conversation(data):
            return True

        # conversations.json from the account data export
        return isinstance(data, list) and bool(data) and _is_conversation(data[0])

    def _entries(self, data: Any) -> List[Dict]:
        if isinstance(data, str):
            data = json.loads(data)
        if _is_full_export(data):
            return data['conversations']
        if isinstance(data, list):
            return data
        return [data]

    def import_data(self, data: Any, **kwargs) -> List[Conversation]:
        """Import Claude conversation data"""
        conversations = []
        for conv_data in self._entries(data):
            if not isinstance(conv_data, dict):
                logger.warning(f"Skipping invalid conversation data: {type(conv_data)}")
                continue
            conversations.append(self.parse_conversation(conv_data))
        return conversations

    def parse_conversation(self, conv_data: Dict) -> Conversation:
        metadata = ConversationMetadata(
            uuid=conv_data.get('uuid') or '',
            title=conv_data.get('name') or 'Untitled Conversation',
            platform='claude',
            model=conv_data.get('model') or '',
            created_at=display_timestamp(conv_data.get('created_at')),
            updated_at=display_timestamp(conv_data.get('updated_at')),
            project_uuid=conv_data.get('project_uuid') or '',
            is_starred=bool(conv_data.get('is_starred', False)),
        )

        messages = [
            self._parse_message(msg_data, idx)
            for idx, msg_data in enumerate(conv_data.get('chat_messages') or [])
            if isinstance(msg_data, dict)
        ]
        # Re-index after skipping malformed entries
        for idx, msg in enumerate(messages):
            msg.index = idx

        return Conversation(metadata=metadata, messages=messages, format='claude')

    def group_projects(self, data: Any) -> List[Project]:
        """
        Group a full export's conversations into projects.

        Conversations without a project are left out. Project details come
        from each conversation's embedded ``project`` record.
        """
        projects: Dict[str, Project] = {}
        for conv_data in self._entries(data):
            if not isinstance(conv_data, dict):
                continue
            project_uuid = conv_data.get('project_uuid')
            if not project_uuid:
                continue

            project = projects.get(project_uuid)
            if project is None:
                info = conv_data.get('project') or {}
                project = Project(
                    name=info.get('name') or 'Project',
                    uuid=project_uuid,
                    description=info.get('description') or '',
                    system_prompt=info.get('prompt_template') or info.get('system_prompt') or '',
                    created_at=display_timestamp(info.get('created_at')),
                    updated_at=display_timestamp(info.get('updated_at')),
                    knowledge_base=self._knowledge_base(info),
                )
                projects[project_uuid] = project
            project.conversations.append(self.parse_conversation(conv_data))

        return list(projects.values())

    @staticmethod
    def _knowledge_base(info: Dict) -> List[Dict[str, str]]:
        docs = info.get('docs') or info.get('knowledge_base') or []
        return [
            {'name': doc.get('filename') or doc.get('name') or '',
             'content': doc.get('content') or ''}
            for doc in docs if isinstance(doc, dict)
        ]

    def _parse_message(self, msg_data: Dict, idx: int) -> Message:
        sender = Sender.from_string(msg_data.get('sender', ''))
        is_human = sender == Sender.HUMAN
        msg = Message(
            uuid=msg_data.get('uuid') or f"msg_{idx}",
            parent_uuid=msg_data.get('parent_message_uuid') or None,
            sender=sender,
            sender_label='User' if is_human else 'Claude',
            timestamp=display_timestamp(msg_data.get('created_at')),
            index=idx,
        )

        content = msg_data.get('content')
        if isinstance(content, list):
            self._process_content(content, msg, is_human)
        elif msg_data.get('text'):
            msg.display_text = msg_data['text']

        for att in msg_data.get('attachments') or []:
            if isinstance(att, dict):
                msg.attachments.append(Attachment(
                    file_name=att.get('file_name') or 'unknown',
                    file_size=att.get('file_size') or 0,
                    file_type=att.get('file_type') or '',
                    extracted_content=att.get('extracted_content') or '',
                    created_at=display_timestamp(att.get('created_at')),
                ))

        self._process_images(msg_data, msg)
        self._prefix_image_markers(msg)
        return msg

    def _process_content(self, items: List[Any], msg: Message, is_human: bool):
        text = ''
        for position, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            item_type = item.get('type', '')

            if item_type == 'text':
                text += item.get('text') or ''
                for raw in item.get('citations') or []:
                    if not isinstance(raw, dict):
                        continue
                    citation = Citation.from_dict(raw)
                    if not citation.is_file_citation():
                        msg.citations.append(citation)

            elif item_type == 'image':
                source = item.get('source') or {}
                media_type = source.get('media_type') or 'image/jpeg'
                placeholder = f" [Image {len(msg.images) + 1}] "
                msg.images.append(ImageRef(
                    file_name=f"image_content_{position}",
                    file_type=media_type,
                    data=f"data:{media_type};base64,{source.get('data', '')}",
                    placeholder=placeholder,
                ))
                text += placeholder

            elif item_type == 'thinking':
                if not is_human:
                    msg.thinking = (item.get('thinking') or '').strip()

            elif item_type == 'tool_use':
                if is_human:
                    continue
                if item.get('name') == 'artifacts':
                    artifact = self._extract_artifact(item)
                    if artifact:
                        msg.artifacts.append(artifact)
                else:
                    tool_input = item.get('input') or {}
                    msg.tools.append(ToolCall(
                        name=item.get('name') or 'unknown',
                        input=tool_input,
                        query=(tool_input.get('query')
                               if item.get('name') == 'web_search' and isinstance(tool_input, dict)
                               else None),
                    ))

            elif item_type == 'tool_result':
                result = {
                    'name': item.get('name') or 'unknown',
                    'is_error': bool(item.get('is_error', False)),
                    'content': item.get('content') or [],
                }
                if 'artifacts' in (item.get('name') or ''):
                    if msg.artifacts:
                        msg.artifacts[-1].result = result
                elif msg.tools:
                    msg.tools[-1].result = result

        msg.display_text += text.strip()

    @staticmethod
    def _extract_artifact(item: Dict) -> Optional[Artifact]:
        tool_input = item.get('input') or {}
        command = tool_input.get('command', '')
        if command == 'create':
            return Artifact(
                id=tool_input.get('id') or '',
                command=command,
                type=tool_input.get('type') or '',
                title=tool_input.get('title') or 'Untitled',
                content=tool_input.get('content') or '',
                language=tool_input.get('language') or '',
            )
        if command in ('update', 'rewrite'):
            return Artifact(
                id=tool_input.get('id') or '',
                command=command,
                old_str=tool_input.get('old_str') or '',
                new_str=tool_input.get('new_str') or '',
            )
        logger.debug(f"Ignoring artifact command: {command!r}")
        return None

    @staticmethod
    def _process_images(msg_data: Dict, msg: Message):
        """Images from uploaded files (v1, else v2) and image-typed attachments"""
        def from_files(files, version):
            for file in files or []:
                if not isinstance(file, dict) or file.get('file_kind') != 'image':
                    continue
                embedded = file.get('embedded_image') or {}
                msg.images.append(ImageRef(
                    file_name=file.get('file_name') or f"image_{version}_{len(msg.images)}",
                    file_type=embedded.get('media_type') or 'image/png',
                    data=embedded.get('data'),
                    url=file.get('preview_url') or file.get('thumbnail_url'),
                ))

        from_files(msg_data.get('files'), 'v1')
        if not msg.images:
            from_files(msg_data.get('files_v2'), 'v2')

        for att in msg_data.get('attachments') or []:
            if not isinstance(att, dict):
                continue
            file_type = att.get('file_type') or ''
            if not file_type.startswith('image/'):
                continue
            embedded = att.get('embedded_image') or {}
            msg.images.append(ImageRef(
                file_name=att.get('file_name') or f"attachment_{len(msg.images)}",
                file_type=file_type,
                data=embedded.get('data'),
                url=att.get('file_url'),
            ))

    @staticmethod
    def _prefix_image_markers(msg: Message):
        unplaced = [img for img in msg.images if not img.placeholder]
        if not unplaced:
            return
        markers = ' '.join(f"[Image {i}: {img.file_name}]"
                           for i, img in enumerate(unplaced, 1))
        msg.display_text = f"{markers}\n\n{msg.display_text}".strip()
