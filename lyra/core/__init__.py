"""Core components of Lyra Exporter"""

from .plugin import PluginRegistry, registry

__all__ = ['registry', 'PluginRegistry']
