"""
ChatGPT conversation importer (mapping-tree exports)
"""

import json
import logging
import re
from typing import List, Any, Dict, Optional

from lyra.core.plugin import ImporterPlugin
from lyra.core.constants import ROOT_UUID
from lyra.core.formatting import display_timestamp, extract_thinking_and_content
from lyra.core.models import (
    Conversation, ConversationMetadata, Message, Sender, ToolCall, Citation, Attachment
)

logger = logging.getLogger(__name__)


def _is_chatgpt(data: Any) -> bool:
    return (isinstance(data, dict) and isinstance(data.get('mapping'), dict)
            and bool(data.get('current_node')))


def _parts_text(content: Dict) -> str:
    parts = content.get('parts')
    if isinstance(parts, list):
        return ''.join(p for p in parts if isinstance(p, str))
    if isinstance(content.get('content'), str):
        return content['content']
    return content.get('text') or ''


def _attachment(att: Dict) -> Attachment:
    return Attachment(
        file_name=att.get('name') or att.get('file_name') or 'unknown',
        file_size=att.get('size') or att.get('file_size') or 0,
        file_type=att.get('mimeType') or att.get('mime_type') or att.get('file_type') or '',
        extracted_content=att.get('extractedContent') or att.get('extracted_content') or '',
    )


def _web_citations(raw: Any) -> List[Citation]:
    citations = []
    for item in raw or []:
        if not isinstance(item, dict):
            continue
        citation = Citation.from_dict(item)
        if not citation.url and isinstance(item.get('metadata'), dict):
            citation.url = item['metadata'].get('url') or ''
            citation.title = citation.title or item['metadata'].get('title') or ''
        if not citation.is_file_citation():
            citations.append(citation)
    return citations


class _PendingState:
    """Assistant work seen before the next visible output"""

    def __init__(self):
        self.reset()
        self.attachments: List[Attachment] = []

    def reset(self):
        self.thinking = ''
        self.tools: List[ToolCall] = []


class ChatGPTImporter(ImporterPlugin):
    """Import ChatGPT conversation exports"""

    name = "chatgpt"
    description = "Import ChatGPT conversation exports (mapping trees)"
    version = "1.0.0"
    supported_formats = ["chatgpt", "openai"]

    def validate(self, data: Any) -> bool:
        """Check for a mapping dict with a current node"""
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except (json.JSONDecodeError, TypeError, ValueError):
                return False

        if isinstance(data, list) and data:
            return _is_chatgpt(data[0])
        return _is_chatgpt(data)

    def import_data(self, data: Any, **kwargs) -> List[Conversation]:
        """Import one conversation or a conversations.json list"""
        if isinstance(data, str):
            data = json.loads(data)
        if not isinstance(data, list):
            data = [data]

        file_name = kwargs.get('file_name') or ''
        conversations = []
        for conv_data in data:
            if not _is_chatgpt(conv_data):
                logger.warning(f"Skipping invalid conversation data: {type(conv_data)}")
                continue
            conversations.append(self.parse_conversation(conv_data, file_name))
        return conversations

    def parse_conversation(self, conv_data: Dict, file_name: str = '') -> Conversation:
        mapping = conv_data.get('mapping') or {}
        created_at = display_timestamp(conv_data.get('create_time'))
        title = (conv_data.get('title') or
                 re.sub(r'\.(jsonl|json)$', '', file_name, flags=re.IGNORECASE) or
                 'ChatGPT Conversation')

        metadata = ConversationMetadata(
            uuid=conv_data.get('conversation_id') or conv_data.get('id') or '',
            title=title,
            platform='chatgpt',
            model=conv_data.get('default_model_slug') or '',
            created_at=created_at,
            updated_at=display_timestamp(conv_data.get('update_time')) or created_at,
        )

        messages: List[Message] = []
        emitted: Dict[str, Message] = {}
        pending = _PendingState()
        last_user: Optional[Message] = None

        def nearest_emitted(node_id: Optional[str]) -> str:
            seen = set()
            while node_id and node_id not in seen:
                seen.add(node_id)
                if node_id in emitted:
                    return emitted[node_id].uuid
                node = mapping.get(node_id) or {}
                node_id = node.get('parent')
            return ROOT_UUID

        roots = [node_id for node_id, node in mapping.items()
                 if not node or not node.get('parent') or node.get('parent') not in mapping]

        # Depth-first, children in export order
        stack = list(reversed(roots))
        visited = set()
        while stack:
            node_id = stack.pop()
            if node_id in visited:
                continue
            visited.add(node_id)
            node = mapping.get(node_id)
            if not node:
                continue

            msg_data = node.get('message')
            if msg_data and not (msg_data.get('metadata') or {}).get('is_visually_hidden_from_conversation'):
                msg = self._visit(node_id, node, msg_data, pending, last_user,
                                  nearest_emitted, len(messages))
                if msg is not None:
                    messages.append(msg)
                    emitted[node_id] = msg
                    if msg.is_human:
                        last_user = msg

            stack.extend(reversed([c for c in node.get('children') or [] if c in mapping]))

        preferred_main = set()
        node_id = conv_data.get('current_node')
        seen = set()
        while node_id and node_id not in seen:
            seen.add(node_id)
            if node_id in emitted:
                preferred_main.add(emitted[node_id].uuid)
            node_id = (mapping.get(node_id) or {}).get('parent')

        return Conversation(metadata=metadata, messages=messages,
                            format='chatgpt', preferred_main=preferred_main)

    def _visit(self, node_id: str, node: Dict, msg_data: Dict, pending: _PendingState,
               last_user: Optional[Message], nearest_emitted, index: int) -> Optional[Message]:
        """Process one mapping node; returns a message when it produces a visible one"""
        role = (msg_data.get('author') or {}).get('role')
        metadata = msg_data.get('metadata') or {}
        content = msg_data.get('content') or {}
        content_type = content.get('content_type', '')

        if role == 'system':
            if last_user is not None:
                for att in metadata.get('attachments') or []:
                    if isinstance(att, dict):
                        last_user.attachments.append(_attachment(att))
            return None

        if role == 'user':
            pending.reset()
            raw_text = _parts_text(content)
            _, text = extract_thinking_and_content(raw_text)
            msg = self._new_message(msg_data, node_id, node, Sender.HUMAN, 'User',
                                    nearest_emitted, index)
            msg.display_text = text or raw_text
            msg.citations = _web_citations(metadata.get('citations'))
            msg.attachments = [_attachment(a) for a in metadata.get('attachments') or []
                               if isinstance(a, dict)]
            return msg

        if role == 'tool':
            self._collect_tool_output(msg_data, metadata, pending)
            return None

        if role != 'assistant':
            return None

        if content_type == 'model_editable_context':
            pending.reset()
            return None

        if content_type == 'thoughts':
            joined = '\n\n'.join(
                f"{th.get('summary', '')}\n{th.get('content', '')}".strip()
                for th in content.get('thoughts') or [] if isinstance(th, dict)
            )
            pending.thinking = f"{pending.thinking}\n\n{joined}" if pending.thinking else joined
            return None

        if content_type == 'code':
            tool = self._tool_from_code(content, metadata)
            if tool:
                pending.tools.append(tool)
            return None

        if content_type in ('tether_browsing_search_result', 'tool_result'):
            if pending.tools:
                pending.tools[-1].result = content
            else:
                pending.tools.append(ToolCall(name='tool', input={}, result=content))
            return None

        if content_type == 'reasoning_recap':
            return None

        msg = self._new_message(msg_data, node_id, node, Sender.ASSISTANT, 'ChatGPT',
                                nearest_emitted, index)
        if content_type == 'text':
            raw_text = _parts_text(content)
        elif content_type == 'image_file':
            file_name = content.get('name') or content.get('file_name') or 'image'
            msg.attachments.append(Attachment(
                file_name=file_name,
                file_size=content.get('size') or 0,
                file_type=content.get('mimeType') or 'image/png',
            ))
            raw_text = f"[Image: {file_name}]"
        else:
            raw_text = json.dumps(content, ensure_ascii=False)

        _, text = extract_thinking_and_content(raw_text)
        msg.display_text = text or raw_text
        msg.thinking = pending.thinking
        msg.attachments.extend(pending.attachments)
        pending.attachments = []
        msg.attachments.extend(_attachment(a) for a in metadata.get('attachments') or []
                               if isinstance(a, dict))
        msg.citations = _web_citations(metadata.get('citations'))
        msg.tools = [ToolCall(name=t.name, input=t.input, result=t.result, query=t.query)
                     for t in pending.tools]
        return msg

    @staticmethod
    def _new_message(msg_data: Dict, node_id: str, node: Dict, sender: Sender,
                     label: str, nearest_emitted, index: int) -> Message:
        return Message(
            uuid=msg_data.get('id') or node_id,
            parent_uuid=nearest_emitted(node.get('parent')),
            sender=sender,
            sender_label=label,
            timestamp=display_timestamp(msg_data.get('create_time')),
            index=index,
        )

    @staticmethod
    def _tool_from_code(content: Dict, metadata: Dict) -> Optional[ToolCall]:
        queries = metadata.get('search_queries')
        if isinstance(queries, list) and queries:
            inputs = [{'q': q.get('q') if isinstance(q, dict) else q} for q in queries]
            return ToolCall(name='search', input=inputs, query=inputs[0]['q'])

        text = _parts_text(content)
        if not text:
            return None
        try:
            parsed = json.loads(text)
        except (json.JSONDecodeError, TypeError, ValueError):
            return ToolCall(name='code', input=text)
        if isinstance(parsed, dict):
            query = parsed.get('search_query') or parsed.get('query')
            return ToolCall(name='search', input=query or parsed,
                            query=query if isinstance(query, str) else None)
        return ToolCall(name='search', input=parsed)

    @staticmethod
    def _collect_tool_output(msg_data: Dict, metadata: Dict, pending: _PendingState):
        """Search result groups become the pending tool's result; files wait for the next output"""
        groups = metadata.get('search_result_groups')
        if isinstance(groups, list):
            by_domain: Dict[str, List[Dict]] = {}
            for group in groups:
                if not isinstance(group, dict):
                    continue
                domain = str(group.get('domain') or '').strip()
                for entry in group.get('entries') or []:
                    if not isinstance(entry, dict):
                        continue
                    url = entry.get('url') or ''
                    key = domain
                    if not key:
                        match = re.match(r'^(?:https?://)?([^/]+)', url, re.IGNORECASE)
                        key = match.group(1) if match else ''
                    by_domain.setdefault(key, []).append({
                        'url': url,
                        'title': entry.get('title') or '',
                        'snippet': entry.get('snippet') or '',
                        'pub_date': entry.get('pub_date'),
                        'attribution': entry.get('attribution') or '',
                    })
            result: Dict[str, Any] = {
                'groups': [{'domain': d, 'entries': e} for d, e in by_domain.items()]
            }
            model_queries = metadata.get('search_model_queries') or {}
            queries = [q.get('q') if isinstance(q, dict) else q
                       for q in model_queries.get('queries') or []]
            if queries:
                result['queries'] = queries

            if pending.tools:
                last = pending.tools[-1]
                merged = last.result if isinstance(last.result, dict) else {}
                merged.update(result)
                last.result = merged
            else:
                tool_name = (msg_data.get('author') or {}).get('name') or 'tool'
                pending.tools.append(ToolCall(name=tool_name, input={}, result=result))

        for att in metadata.get('attachments') or []:
            if isinstance(att, dict):
                pending.attachments.append(_attachment(att))
