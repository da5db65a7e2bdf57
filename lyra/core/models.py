"""
Core data models for normalized chat conversations
"""

from typing import Dict, List, Optional, Any, Set
from dataclasses import dataclass, field
from enum import Enum


class Sender(Enum):
    """Message origin across platforms"""
    HUMAN = "human"
    ASSISTANT = "assistant"

    @classmethod
    def from_string(cls, sender: str) -> 'Sender':
        """Convert string to Sender, handling platform variations"""
        if not sender or not isinstance(sender, str):
            return cls.ASSISTANT

        sender = sender.lower().strip()
        if sender in ('human', 'user', 'you'):
            return cls.HUMAN
        return cls.ASSISTANT


@dataclass
class Artifact:
    """A generated code or document object attached to an assistant message"""
    id: str = ""
    title: str = ""
    type: str = ""  # language/kind tag, e.g. application/vnd.ant.code
    command: str = "create"  # create, update, rewrite
    content: str = ""
    old_str: str = ""
    new_str: str = ""
    language: str = ""
    result: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        data = {
            'id': self.id,
            'title': self.title,
            'type': self.type,
            'command': self.command,
            'content': self.content,
            'language': self.language,
        }
        if self.command in ('update', 'rewrite'):
            data['old_str'] = self.old_str
            data['new_str'] = self.new_str
        if self.result is not None:
            data['result'] = self.result
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Artifact':
        """Create from dictionary"""
        return cls(
            id=data.get('id', ''),
            title=data.get('title', ''),
            type=data.get('type', ''),
            command=data.get('command', 'create'),
            content=data.get('content', ''),
            old_str=data.get('old_str', ''),
            new_str=data.get('new_str', ''),
            language=data.get('language', ''),
            result=data.get('result'),
        )


@dataclass
class ToolCall:
    """Represents a tool invocation made by the assistant"""
    name: str = "unknown"
    input: Any = field(default_factory=dict)
    result: Optional[Any] = None
    query: Optional[str] = None  # Search query for web_search tools

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        data = {'name': self.name, 'input': self.input}
        if self.result is not None:
            data['result'] = self.result
        if self.query:
            data['query'] = self.query
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ToolCall':
        """Create from dictionary"""
        return cls(
            name=data.get('name', 'unknown'),
            input=data.get('input', {}),
            result=data.get('result'),
            query=data.get('query'),
        )


@dataclass
class Citation:
    """A web source referenced by a message"""
    title: str = ""
    url: str = ""
    snippet: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'title': self.title,
            'url': self.url,
            'snippet': self.snippet,
            'metadata': self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Citation':
        """Create from dictionary"""
        return cls(
            title=data.get('title') or '',
            url=data.get('url') or '',
            snippet=data.get('snippet') or data.get('content') or '',
            metadata=data.get('metadata') or {},
        )

    def is_file_citation(self) -> bool:
        """True for citations that point at user-uploaded files"""
        return (self.metadata.get('type') == 'file' or
                self.metadata.get('source') == 'my_files')


@dataclass
class Attachment:
    """A user-supplied file"""
    file_name: str = "unknown"
    file_size: int = 0
    file_type: str = ""
    extracted_content: str = ""
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'file_name': self.file_name,
            'file_size': self.file_size,
            'file_type': self.file_type,
            'extracted_content': self.extracted_content,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Attachment':
        """Create from dictionary"""
        return cls(
            file_name=data.get('file_name') or data.get('name') or 'unknown',
            file_size=data.get('file_size') or data.get('size') or 0,
            file_type=data.get('file_type') or data.get('mime_type') or '',
            extracted_content=data.get('extracted_content') or '',
            created_at=data.get('created_at') or '',
        )


@dataclass
class ImageRef:
    """An image carried by a message, embedded (base64/data URL) or remote"""
    file_name: str = "image"
    file_type: str = "image/png"
    data: Optional[str] = None
    url: Optional[str] = None
    placeholder: Optional[str] = None  # Inline marker already present in the text

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        data = {'file_name': self.file_name, 'file_type': self.file_type}
        if self.data:
            data['data'] = self.data
        if self.url:
            data['url'] = self.url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ImageRef':
        """Create from dictionary"""
        return cls(
            file_name=data.get('file_name', 'image'),
            file_type=data.get('file_type', 'image/png'),
            data=data.get('data'),
            url=data.get('url'),
            placeholder=data.get('placeholder'),
        )


@dataclass(frozen=True)
class BranchInfo:
    """Computed position of a message in the branch tree"""
    branch_id: str = "main"
    branch_level: int = 0
    is_branch_point: bool = False
    child_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'branch_id': self.branch_id,
            'branch_level': self.branch_level,
            'is_branch_point': self.is_branch_point,
            'child_count': self.child_count,
        }


@dataclass
class Message:
    """One turn in a conversation"""
    uuid: str
    parent_uuid: Optional[str] = None
    sender: Sender = Sender.HUMAN
    display_text: str = ""
    thinking: str = ""
    artifacts: List[Artifact] = field(default_factory=list)
    tools: List[ToolCall] = field(default_factory=list)
    citations: List[Citation] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    images: List[ImageRef] = field(default_factory=list)
    timestamp: str = ""
    sender_label: str = ""
    index: int = 0  # Position in the source list, used as the overlay mark key
    branch: Optional[BranchInfo] = None

    @property
    def is_human(self) -> bool:
        return self.sender == Sender.HUMAN

    @property
    def branch_id(self) -> Optional[str]:
        return self.branch.branch_id if self.branch else None

    @property
    def branch_level(self) -> int:
        return self.branch.branch_level if self.branch else 0

    @property
    def is_branch_point(self) -> bool:
        return bool(self.branch and self.branch.is_branch_point)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        data = {
            'uuid': self.uuid,
            'parent_uuid': self.parent_uuid,
            'sender': self.sender.value,
            'sender_label': self.sender_label,
            'index': self.index,
            'display_text': self.display_text,
            'timestamp': self.timestamp,
        }
        if self.thinking:
            data['thinking'] = self.thinking
        if self.artifacts:
            data['artifacts'] = [a.to_dict() for a in self.artifacts]
        if self.tools:
            data['tools'] = [t.to_dict() for t in self.tools]
        if self.citations:
            data['citations'] = [c.to_dict() for c in self.citations]
        if self.attachments:
            data['attachments'] = [a.to_dict() for a in self.attachments]
        if self.images:
            data['images'] = [i.to_dict() for i in self.images]
        if self.branch:
            data.update(self.branch.to_dict())
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        """Create from dictionary (branch annotations are not restored)"""
        return cls(
            uuid=data['uuid'],
            parent_uuid=data.get('parent_uuid') or None,
            sender=Sender.from_string(data.get('sender', 'human')),
            display_text=data.get('display_text', ''),
            thinking=data.get('thinking', ''),
            artifacts=[Artifact.from_dict(a) for a in data.get('artifacts', [])],
            tools=[ToolCall.from_dict(t) for t in data.get('tools', [])],
            citations=[Citation.from_dict(c) for c in data.get('citations', [])],
            attachments=[Attachment.from_dict(a) for a in data.get('attachments', [])],
            images=[ImageRef.from_dict(i) for i in data.get('images', [])],
            timestamp=data.get('timestamp', ''),
            sender_label=data.get('sender_label', ''),
            index=data.get('index', 0),
        )


@dataclass
class ConversationMetadata:
    """Metadata owned by a conversation, immutable once parsed"""
    uuid: str = ""
    title: str = "Untitled Conversation"
    platform: str = "claude"
    model: str = ""
    created_at: str = ""
    updated_at: str = ""
    project_uuid: str = ""
    is_starred: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'uuid': self.uuid,
            'title': self.title,
            'platform': self.platform,
            'model': self.model,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'project_uuid': self.project_uuid,
            'is_starred': self.is_starred,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConversationMetadata':
        """Create from dictionary"""
        return cls(
            uuid=data.get('uuid', ''),
            title=data.get('title', 'Untitled Conversation'),
            platform=data.get('platform', 'claude'),
            model=data.get('model', ''),
            created_at=data.get('created_at', ''),
            updated_at=data.get('updated_at', ''),
            project_uuid=data.get('project_uuid', ''),
            is_starred=bool(data.get('is_starred', False)),
        )


@dataclass
class Conversation:
    """A normalized conversation: metadata plus a flat message list"""
    metadata: ConversationMetadata = field(default_factory=ConversationMetadata)
    messages: List[Message] = field(default_factory=list)
    format: str = "claude"
    # uuids an importer knows to be on the default path (ChatGPT current node,
    # selected JSONL swipes); used as the main-branch tie-break
    preferred_main: Set[str] = field(default_factory=set)

    @property
    def title(self) -> str:
        return self.metadata.title

    @property
    def uuid(self) -> str:
        return self.metadata.uuid

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            'format': self.format,
            'meta_info': self.metadata.to_dict(),
            'chat_history': [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Conversation':
        """Create from dictionary"""
        return cls(
            metadata=ConversationMetadata.from_dict(data.get('meta_info', {})),
            messages=[Message.from_dict(m) for m in data.get('chat_history', [])],
            format=data.get('format', 'claude'),
        )


@dataclass
class Project:
    """A group of conversations with shared instructions and knowledge"""
    name: str = "Project"
    uuid: str = ""
    description: str = ""
    system_prompt: str = ""
    created_at: str = ""
    updated_at: str = ""
    knowledge_base: List[Dict[str, str]] = field(default_factory=list)
    conversations: List[Conversation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (without conversations)"""
        return {
            'name': self.name,
            'uuid': self.uuid,
            'description': self.description,
            'system_prompt': self.system_prompt,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'conversation_count': len(self.conversations),
        }
