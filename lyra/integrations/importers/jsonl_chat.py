"""
JSON Lines chat importer (SillyTavern-style character chats with swipes)
"""

import logging
import re
from typing import List, Any, Optional

from lyra.core.plugin import ImporterPlugin, parse_json_lines
from lyra.core.formatting import display_timestamp, extract_thinking_and_content
from lyra.core.models import Conversation, ConversationMetadata, Message, Sender
from lyra.core.uuids import java_string_hash, to_base36

logger = logging.getLogger(__name__)


class JSONLChatImporter(ImporterPlugin):
    """Import JSONL chat logs where each line is one turn"""

    name = "jsonl_chat"
    description = "Import JSON Lines character chats (one turn per line, with swipes)"
    version = "1.0.0"
    supported_formats = ["jsonl", "sillytavern"]

    def validate(self, data: Any) -> bool:
        """A list whose first record looks like a chat turn or chat metadata"""
        if isinstance(data, str):
            data = parse_json_lines(data)

        if not isinstance(data, list) or not data:
            return False
        first = data[0]
        return isinstance(first, dict) and bool(
            first.get('mes') or first.get('swipes') or 'chat_metadata' in first
        )

    def import_data(self, data: Any, **kwargs) -> List[Conversation]:
        """Import one chat log"""
        if isinstance(data, str):
            data = parse_json_lines(data)

        file_name = kwargs.get('file_name') or ''
        first = data[0] if data and isinstance(data[0], dict) else {}
        has_metadata = 'chat_metadata' in first
        character = first.get('character_name') if has_metadata else None

        if character:
            title = f"Chat with {character}"
        else:
            title = re.sub(r'\.(jsonl|json)$', '', file_name, flags=re.IGNORECASE) or 'Chat History'

        entries = data[1:] if has_metadata else data
        messages = []
        preferred_main = set()
        previous_selected: Optional[str] = None

        for turn, entry in enumerate(entries):
            if not isinstance(entry, dict):
                logger.warning(f"Skipping invalid JSONL entry {turn}")
                continue
            if entry.get('is_system'):
                continue

            is_user = bool(entry.get('is_user', False))
            label = 'User' if is_user else (entry.get('name') or 'Unknown')
            timestamp = display_timestamp(entry.get('send_date') or '')
            swipes = entry.get('swipes') or []

            if not is_user and len(swipes) > 1:
                selected = entry.get('swipe_id') or 0
                if not isinstance(selected, int) or not 0 <= selected < len(swipes):
                    selected = 0
                selected_uuid = None
                for swipe_index, swipe_text in enumerate(swipes):
                    msg = self._build_message(
                        turn, swipe_index, previous_selected, is_user, label,
                        timestamp, swipe_text or '', len(messages))
                    marker = f"{swipe_index + 1}/{len(swipes)}"
                    if swipe_index == selected:
                        msg.display_text = f"**[{marker}] 🚩**\n\n{msg.display_text}"
                        selected_uuid = msg.uuid
                    else:
                        msg.display_text = f"**[{marker}]**\n\n{msg.display_text}"
                    messages.append(msg)
                preferred_main.add(selected_uuid)
                previous_selected = selected_uuid
            else:
                text = entry.get('mes') or (swipes[0] if swipes else '')
                msg = self._build_message(
                    turn, 0, previous_selected, is_user, label, timestamp,
                    text or '', len(messages))
                messages.append(msg)
                previous_selected = msg.uuid

        created_at = display_timestamp(first.get('create_date')) if has_metadata else ''
        if not created_at and messages:
            created_at = messages[0].timestamp
        updated_at = messages[-1].timestamp if messages else created_at

        metadata = ConversationMetadata(
            uuid=f"jsonl_{to_base36(abs(java_string_hash(f'{file_name}_{title}_{created_at}')))}",
            title=title,
            platform='jsonl_chat',
            model=character or 'Chat Bot',
            created_at=created_at,
            updated_at=updated_at or created_at,
        )
        return [Conversation(metadata=metadata, messages=messages,
                             format='jsonl_chat', preferred_main=preferred_main)]

    @staticmethod
    def _build_message(turn: int, swipe_index: int, parent_uuid: Optional[str],
                       is_user: bool, label: str, timestamp: str,
                       text: str, index: int) -> Message:
        thinking, content = extract_thinking_and_content(text)
        return Message(
            uuid=f"jsonl_{turn}_{swipe_index}",
            parent_uuid=parent_uuid,
            sender=Sender.HUMAN if is_user else Sender.ASSISTANT,
            sender_label=label,
            display_text=content,
            thinking=thinking,
            timestamp=timestamp,
            index=index,
        )

