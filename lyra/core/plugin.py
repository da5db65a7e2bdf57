"""
Plugin system for importers and exporters
"""

import importlib.util
import inspect
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Any, Type, Set
from abc import ABC, abstractmethod
import logging

from .constants import IMPORTER_PRIORITY
from .errors import UnsupportedFormatError
from .formatting import document_filename
from .models import Conversation

logger = logging.getLogger(__name__)

MAX_PLUGIN_FILE_SIZE = 1024 * 1024


class BasePlugin(ABC):
    """Base class for all plugins"""

    name: str = ""
    description: str = ""
    version: str = "1.0.0"
    supported_formats: List[str] = []

    @abstractmethod
    def validate(self, data: Any) -> bool:
        """Validate if this plugin can handle the data"""
        pass


class ImporterPlugin(BasePlugin):
    """Base class for importer plugins (the message normalizers)"""

    @abstractmethod
    def import_data(self, data: Any, **kwargs) -> List[Conversation]:
        """Import data and return normalized Conversation objects"""
        pass

    def detect_format(self, data: Any) -> bool:
        """Auto-detect if this importer can handle the data"""
        return self.validate(data)


class ExporterPlugin(BasePlugin):
    """Base class for exporter plugins"""

    extension: str = "txt"

    @abstractmethod
    def export_data(self, conversations: List[Conversation], **kwargs) -> Any:
        """Export Conversation objects to the target format"""
        pass

    def suggest_filename(self, conversation: Conversation) -> str:
        """Default output file name for one conversation"""
        return document_filename(conversation.title, self.extension)

    def export_to_file(self, conversations: List[Conversation],
                       file_path: str, **kwargs) -> None:
        """Export to file"""
        data = self.export_data(conversations, **kwargs)

        if isinstance(data, bytes):
            with open(file_path, 'wb') as f:
                f.write(data)
            return

        if not isinstance(data, str):
            # Assume JSON serializable
            data = json.dumps(data, indent=2, ensure_ascii=False)

        with open(file_path, 'w', encoding='utf-8') as f:
            f.write(data)


def parse_json_lines(text: str) -> List[Any]:
    """Parse JSON Lines, skipping (and logging) lines that fail to parse"""
    records = []
    for lineno, line in enumerate(text.splitlines(), 1):
        if not line.strip():
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping invalid JSONL line {lineno}: {e}")
    return records


class PluginRegistry:
    """Registry for managing plugins"""

    def __init__(self, allowed_plugin_dirs: Optional[List[str]] = None):
        self.importers: Dict[str, ImporterPlugin] = {}
        self.exporters: Dict[str, ExporterPlugin] = {}
        self._discovered = False
        # Only load plugins from trusted directories
        self.allowed_plugin_dirs: Set[str] = set(allowed_plugin_dirs or [])
        base_dir = Path(__file__).parent.parent
        self.allowed_plugin_dirs.add(str((base_dir / "integrations").resolve()))

    def register_importer(self, name: str, plugin: ImporterPlugin):
        """Register an importer plugin"""
        self.importers[name] = plugin

    def register_exporter(self, name: str, plugin: ExporterPlugin):
        """Register an exporter plugin"""
        self.exporters[name] = plugin

    def discover_plugins(self, plugin_dir: Optional[str] = None):
        """Discover and load plugins from directory"""
        if self._discovered:
            return

        if plugin_dir is None:
            base_dir = Path(__file__).parent.parent
            plugin_dir = base_dir / "integrations"
        else:
            plugin_dir = Path(plugin_dir)

        if not self._is_plugin_dir_allowed(plugin_dir):
            logger.warning(f"Plugin directory not allowed: {plugin_dir}")
            return

        importers_dir = plugin_dir / "importers"
        if importers_dir.exists():
            self._load_plugins_from_dir(importers_dir, ImporterPlugin, self.importers)

        exporters_dir = plugin_dir / "exporters"
        if exporters_dir.exists():
            self._load_plugins_from_dir(exporters_dir, ExporterPlugin, self.exporters)

        self._discovered = True

    def _load_plugins_from_dir(self, directory: Path, base_class: Type,
                               registry: Dict[str, BasePlugin]):
        """Load plugins from a directory"""
        for file_path in sorted(directory.glob("*.py")):
            if file_path.name.startswith("_"):
                continue

            if file_path.stat().st_size > MAX_PLUGIN_FILE_SIZE:
                logger.warning(f"Plugin file too large: {file_path}")
                continue

            module_name = file_path.stem
            spec = importlib.util.spec_from_file_location(
                f"lyra_plugin_{module_name}", file_path
            )
            if not spec or not spec.loader:
                continue

            module = importlib.util.module_from_spec(spec)
            sys.modules[spec.name] = module
            try:
                spec.loader.exec_module(module)
            except Exception as e:
                sys.modules.pop(spec.name, None)
                logger.error(f"Error loading plugin {file_path}: {e}")
                continue

            for name, obj in inspect.getmembers(module, inspect.isclass):
                if (issubclass(obj, base_class) and
                        obj is not base_class and
                        obj.__module__ == module.__name__ and
                        not inspect.isabstract(obj)):
                    try:
                        plugin_instance = obj()
                    except Exception as e:
                        logger.error(f"Error instantiating plugin {name}: {e}")
                        continue
                    plugin_name = plugin_instance.name or module_name
                    if self._validate_plugin_instance(plugin_instance):
                        registry[plugin_name] = plugin_instance
                        logger.info(f"Loaded plugin: {plugin_name}")
                    else:
                        logger.warning(f"Plugin validation failed: {plugin_name}")

    def get_importer(self, name: str) -> Optional[ImporterPlugin]:
        """Get an importer plugin by name"""
        self.discover_plugins()
        return self.importers.get(name)

    def get_exporter(self, name: str) -> Optional[ExporterPlugin]:
        """Get an exporter plugin by name"""
        self.discover_plugins()
        return self.exporters.get(name)

    def _ordered_importers(self) -> List[ImporterPlugin]:
        ranked = sorted(
            self.importers.items(),
            key=lambda item: (IMPORTER_PRIORITY.index(item[0])
                              if item[0] in IMPORTER_PRIORITY else len(IMPORTER_PRIORITY),
                              item[0])
        )
        return [plugin for _, plugin in ranked]

    def auto_detect_importer(self, data: Any) -> Optional[ImporterPlugin]:
        """Auto-detect appropriate importer for data, in priority order"""
        self.discover_plugins()

        for importer in self._ordered_importers():
            if importer.detect_format(data):
                return importer

        return None

    def list_importers(self) -> List[str]:
        """List available importers"""
        self.discover_plugins()
        return [p.name for p in self._ordered_importers()]

    def list_exporters(self) -> List[str]:
        """List available exporters"""
        self.discover_plugins()
        return list(self.exporters.keys())

    def load_file(self, file_path: str) -> Any:
        """Read a JSON or JSON Lines file"""
        with open(file_path, 'r', encoding='utf-8') as f:
            text = f.read()

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            records = parse_json_lines(text)
            if not records:
                raise UnsupportedFormatError(f"{file_path} is neither JSON nor JSON Lines")
            return records

    def import_data(self, data: Any, format: Optional[str] = None,
                    **kwargs) -> List[Conversation]:
        """Normalize already-parsed data with a named or detected importer"""
        if format:
            importer = self.get_importer(format)
            if not importer:
                raise UnsupportedFormatError(f"Unknown import format: {format}")
        else:
            importer = self.auto_detect_importer(data)
            if not importer:
                raise UnsupportedFormatError("Could not auto-detect format")

        return importer.import_data(data, **kwargs)

    def import_file(self, file_path: str, format: Optional[str] = None) -> List[Conversation]:
        """Import from file with auto-detection"""
        data = self.load_file(file_path)
        return self.import_data(data, format=format, file_name=Path(file_path).name)

    def export_file(self, conversations: List[Conversation],
                    file_path: str, format: str, **kwargs):
        """Export to file"""
        exporter = self.get_exporter(format)
        if not exporter:
            raise UnsupportedFormatError(f"Unknown export format: {format}")

        exporter.export_to_file(conversations, file_path, **kwargs)

    def _is_plugin_dir_allowed(self, plugin_dir: Path) -> bool:
        """Check if plugin directory is in the allowed list"""
        plugin_dir_str = str(plugin_dir.resolve())
        for allowed_dir in self.allowed_plugin_dirs:
            if plugin_dir_str.startswith(allowed_dir):
                return True
        return False

    def _validate_plugin_instance(self, plugin: BasePlugin) -> bool:
        """Validate plugin instance after creation"""
        if not getattr(plugin, 'name', None):
            return False

        if isinstance(plugin, ImporterPlugin):
            return callable(getattr(plugin, 'import_data', None))

        if isinstance(plugin, ExporterPlugin):
            return callable(getattr(plugin, 'export_data', None))

        return True

    def add_trusted_plugin_dir(self, directory: str) -> None:
        """Add a trusted plugin directory"""
        self.allowed_plugin_dirs.add(str(Path(directory).resolve()))
        logger.info(f"Added trusted plugin directory: {directory}")


# Global registry instance
registry = PluginRegistry()
