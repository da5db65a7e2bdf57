"""
Lyra Exporter - normalize, browse and export AI chat histories
"""

__version__ = "1.0.0"
__author__ = "Lyra Contributors"

from .core.models import (
    Sender,
    Message,
    Artifact,
    ToolCall,
    Citation,
    Attachment,
    ImageRef,
    BranchInfo,
    Conversation,
    ConversationMetadata,
    Project,
)
from .core.branches import BranchGraph, build_branch_graph
from .core.history import select_linear_history, list_branch_options
from .core.errors import (
    LyraError,
    UnsupportedFormatError,
    ElementNotAvailableError,
    ExportCancelled,
    FontNotReadyError,
    EmptyExportError,
)
from .core.plugin import PluginRegistry, registry

__all__ = [
    # Core models
    'Sender',
    'Message',
    'Artifact',
    'ToolCall',
    'Citation',
    'Attachment',
    'ImageRef',
    'BranchInfo',
    'Conversation',
    'ConversationMetadata',
    'Project',
    # Branching
    'BranchGraph',
    'build_branch_graph',
    'select_linear_history',
    'list_branch_options',
    # Errors
    'LyraError',
    'UnsupportedFormatError',
    'ElementNotAvailableError',
    'ExportCancelled',
    'FontNotReadyError',
    'EmptyExportError',
    # Plugins
    'PluginRegistry',
    'registry',
]
