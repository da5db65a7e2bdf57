"""
Gemini / NotebookLM / AI Studio importer for browser-extension exports
"""

import json
import logging
from typing import List, Any, Dict, Optional

from lyra.core.plugin import ImporterPlugin
from lyra.core.formatting import display_timestamp
from lyra.core.models import (
    Conversation, ConversationMetadata, Message, Sender, Artifact, ImageRef
)
from lyra.core.uuids import java_string_hash, to_base36

logger = logging.getLogger(__name__)

PLATFORM_NAMES = {
    'gemini': 'Gemini',
    'notebooklm': 'NotebookLM',
    'aistudio': 'Google AI Studio',
}


def platform_display_name(platform: str) -> str:
    """Human-readable platform name, capitalizing unknown ones"""
    if platform in PLATFORM_NAMES:
        return PLATFORM_NAMES[platform]
    return platform[:1].upper() + platform[1:]


class GeminiImporter(ImporterPlugin):
    """Import Gemini, NotebookLM and Google AI Studio exports"""

    name = "gemini_notebooklm"
    description = "Import Gemini, NotebookLM and AI Studio conversation exports"
    version = "1.0.0"
    supported_formats = ["gemini", "notebooklm", "aistudio"]

    def validate(self, data: Any) -> bool:
        """Check for the {title, platform, exportedAt, conversation[]} shape"""
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except (json.JSONDecodeError, TypeError, ValueError):
                return False

        return (isinstance(data, dict) and
                bool(data.get('title')) and
                bool(data.get('platform')) and
                bool(data.get('exportedAt')) and
                isinstance(data.get('conversation'), list))

    def import_data(self, data: Any, **kwargs) -> List[Conversation]:
        """Import one exported conversation"""
        if isinstance(data, str):
            data = json.loads(data)

        platform = str(data.get('platform') or 'AI').lower()
        platform_name = platform_display_name(str(data.get('platform') or 'AI'))
        exported_at = display_timestamp(data.get('exportedAt'))

        # Exports carry no id; derive a stable one from title and export time
        stable = to_base36(abs(java_string_hash(f"{data.get('title', '')}_{data.get('exportedAt', '')}")))
        metadata = ConversationMetadata(
            uuid=f"{platform}_{stable}",
            title=data.get('title') or 'AI Conversation',
            platform=platform,
            model=platform_name,
            created_at=exported_at,
            updated_at=exported_at,
        )

        messages: List[Message] = []
        for item_index, item in enumerate(data.get('conversation') or []):
            if not isinstance(item, dict):
                logger.warning(f"Skipping invalid conversation item {item_index}")
                continue

            human = self._normalize_turn(item.get('human'))
            if human:
                messages.append(self._build_message(
                    human, f"human_{item_index}",
                    f"assistant_{item_index - 1}" if messages else None,
                    Sender.HUMAN, 'User', exported_at, item_index, platform,
                    len(messages)))

            assistant = self._normalize_turn(item.get('assistant'))
            if assistant:
                messages.append(self._build_message(
                    assistant, f"assistant_{item_index}", f"human_{item_index}",
                    Sender.ASSISTANT, platform_name, exported_at, item_index, platform,
                    len(messages)))

        return [Conversation(metadata=metadata, messages=messages, format='gemini_notebooklm')]

    @staticmethod
    def _normalize_turn(turn: Any) -> Optional[Dict]:
        """A turn is a plain string or {text, images, canvas}; empty turns are dropped"""
        if not turn:
            return None
        if isinstance(turn, str):
            turn = {'text': turn, 'images': []}
        if not isinstance(turn, dict):
            return None
        if not turn.get('text') and not turn.get('images'):
            return None
        return turn

    def _build_message(self, turn: Dict, uuid: str, parent_uuid: Optional[str],
                       sender: Sender, label: str, timestamp: str,
                       item_index: int, platform: str, index: int) -> Message:
        msg = Message(
            uuid=uuid,
            parent_uuid=parent_uuid,
            sender=sender,
            sender_label=label,
            display_text=turn.get('text') or '',
            timestamp=timestamp,
            index=index,
        )

        for img_index, raw in enumerate(turn.get('images') or []):
            image = self._process_image(raw, item_index, img_index, platform)
            if image:
                msg.images.append(image)

        if msg.images:
            markers = ' '.join(f"[Image {i}]" for i in range(1, len(msg.images) + 1))
            msg.display_text = f"{markers}\n\n{msg.display_text}".strip()

        canvas = turn.get('canvas')
        if isinstance(canvas, str) and canvas.strip():
            # Canvas documents travel as a markdown artifact
            msg.artifacts.append(Artifact(
                id=f"{uuid}_canvas",
                title='Canvas',
                type='text/markdown',
                content=canvas.strip(),
                language='markdown',
            ))
        return msg

    @staticmethod
    def _process_image(raw: Any, item_index: int, img_index: int,
                       platform: str) -> Optional[ImageRef]:
        file_name = f"{platform}_image_{item_index}_{img_index}"
        if isinstance(raw, str):
            file_type = (raw.split(';')[0].replace('data:', '')
                         if raw.startswith('data:image/') else 'image/png')
            return ImageRef(file_name=file_name, file_type=file_type, data=raw)
        if isinstance(raw, dict):
            file_type = raw.get('format') or 'image/png'
            return ImageRef(
                file_name=file_name,
                file_type=file_type,
                data=f"data:{file_type};base64,{raw.get('data', '')}",
                url=raw.get('original_src'),
            )
        return None
