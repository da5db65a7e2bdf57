"""Exporter plugins for documents and archives"""

# Import exporters to ensure they're registered
from . import markdown
from . import granular
from . import pdf

__all__ = ['markdown', 'granular', 'pdf']
