"""Importer plugins for the supported chat export formats"""

# Import importers to ensure they're registered
from . import claude
from . import gemini
from . import jsonl_chat
from . import chatgpt

__all__ = ['claude', 'gemini', 'jsonl_chat', 'chatgpt']
