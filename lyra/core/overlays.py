"""
Overlay state: user annotations kept beside, never inside, parsed data.

Marks, stars, renames and custom message order all persist as JSON values in
one key-value store under string keys. ``OverlayStore.update`` is the single
read-modify-write entry point and is serialized per key, so two in-flight
toggles on the same key cannot lose each other's writes.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set
import copy
import json
import logging
import threading

from .constants import (MARK_TYPES, MARKS_PREFIX, RENAMES_KEY, SORT_ORDER_PREFIX,
                        STARS_KEY)
from .models import Message

logger = logging.getLogger(__name__)


class OverlayStore(ABC):
    """Key-value store for JSON-serializable overlay values"""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for ``key`` or ``default``"""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``"""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored"""
        pass

    @abstractmethod
    def keys(self, prefix: str = "") -> List[str]:
        """Stored keys starting with ``prefix``"""
        pass

    def lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """
        Atomically replace the value under ``key`` with ``fn(current)``.

        ``fn`` receives a private copy of the current value (or ``default``).
        Returning None deletes the key. Returns the new value.
        """
        with self.lock_for(key):
            current = copy.deepcopy(self.get(key, default))
            new_value = fn(current)
            if new_value is None:
                self.delete(key)
            else:
                self.set(key, new_value)
            return new_value


class MemoryOverlayStore(OverlayStore):
    """In-process store; values are kept JSON-encoded like a persisted store"""

    def __init__(self):
        super().__init__()
        self._data: Dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else default

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class NamespacedStore(OverlayStore):
    """View of another store with every key prefixed"""

    def __init__(self, store: OverlayStore, prefix: str):
        super().__init__()
        self.store = store
        self.prefix = prefix

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(self.prefix + key, default)

    def set(self, key: str, value: Any) -> None:
        self.store.set(self.prefix + key, value)

    def delete(self, key: str) -> None:
        self.store.delete(self.prefix + key)

    def keys(self, prefix: str = "") -> List[str]:
        full = self.store.keys(self.prefix + prefix)
        return [k[len(self.prefix):] for k in full]

    def lock_for(self, key: str) -> threading.Lock:
        return self.store.lock_for(self.prefix + key)

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        return self.store.update(self.prefix + key, fn, default)


# --- Managers ---

class MarkManager:
    """Per-message completed/important/deleted flags for one file or conversation"""

    def __init__(self, store: OverlayStore, file_uuid: str):
        self.store = store
        self.file_uuid = file_uuid
        self.key = f"{MARKS_PREFIX}{file_uuid}"

    @staticmethod
    def _check_type(mark_type: str):
        if mark_type not in MARK_TYPES:
            raise ValueError(f"Unknown mark type: {mark_type}")

    @staticmethod
    def _empty() -> Dict[str, List[int]]:
        return {t: [] for t in MARK_TYPES}

    def get_marks(self) -> Dict[str, Set[int]]:
        data = self.store.get(self.key) or {}
        return {t: set(data.get(t, [])) for t in MARK_TYPES}

    def is_marked(self, index: int, mark_type: str) -> bool:
        self._check_type(mark_type)
        return index in self.get_marks()[mark_type]

    def toggle(self, index: int, mark_type: str) -> bool:
        """Flip one mark; returns the new state"""
        self._check_type(mark_type)
        state = {}

        def flip(data):
            data = data or self._empty()
            marked = set(data.get(mark_type, []))
            if index in marked:
                marked.discard(index)
                state['value'] = False
            else:
                marked.add(index)
                state['value'] = True
            data[mark_type] = sorted(marked)
            return data

        self.store.update(self.key, flip)
        logger.debug(f"Toggled {mark_type} on message {index} for {self.file_uuid}")
        return state['value']

    def set_mark(self, index: int, mark_type: str, value: bool = True) -> None:
        self.batch([index], mark_type, value)

    def batch(self, indexes: Iterable[int], mark_type: str, value: bool = True) -> None:
        """Mark or unmark several messages in one write"""
        self._check_type(mark_type)
        indexes = list(indexes)

        def apply(data):
            data = data or self._empty()
            marked = set(data.get(mark_type, []))
            if value:
                marked.update(indexes)
            else:
                marked.difference_update(indexes)
            data[mark_type] = sorted(marked)
            return data

        self.store.update(self.key, apply)

    def clear_type(self, mark_type: str) -> None:
        self._check_type(mark_type)

        def clear(data):
            data = data or self._empty()
            data[mark_type] = []
            return data

        self.store.update(self.key, clear)

    def clear_all(self) -> None:
        """Drop every mark for this file (removes the stored entry)"""
        with self.store.lock_for(self.key):
            self.store.delete(self.key)

    def stats(self) -> Dict[str, int]:
        marks = self.get_marks()
        counts = {t: len(marks[t]) for t in MARK_TYPES}
        counts['total'] = sum(counts.values())
        return counts


class StarManager:
    """
    Conversation star overrides on top of the export's native ``is_starred``.

    Only differences from the native value are stored; toggling back to the
    native state removes the override.
    """

    def __init__(self, store: OverlayStore, enabled: bool = True):
        self.store = store
        self.enabled = enabled

    def overrides(self) -> Dict[str, bool]:
        return self.store.get(STARS_KEY) or {}

    def is_starred(self, conversation_uuid: str, native: bool = False) -> bool:
        if not self.enabled:
            return native
        return self.overrides().get(conversation_uuid, native)

    def toggle(self, conversation_uuid: str, native: bool = False) -> bool:
        """Flip the effective star state; returns the new state"""
        if not self.enabled:
            return native
        state = {}

        def flip(data):
            data = data or {}
            current = data.get(conversation_uuid, native)
            if conversation_uuid in data:
                del data[conversation_uuid]
            else:
                data[conversation_uuid] = not native
            state['value'] = not current
            return data or None

        self.store.update(STARS_KEY, flip)
        return state['value']

    def clear(self) -> None:
        """Restore every conversation to its native star state"""
        if not self.enabled:
            return
        with self.store.lock_for(STARS_KEY):
            self.store.delete(STARS_KEY)

    def stats(self, conversations: Sequence) -> Dict[str, int]:
        overrides = self.overrides() if self.enabled else {}
        result = {'total_starred': 0, 'manually_starred': 0, 'manually_unstarred': 0}
        for conv in conversations:
            native = conv.metadata.is_starred
            if self.is_starred(conv.uuid, native):
                result['total_starred'] += 1
            if conv.uuid in overrides:
                if overrides[conv.uuid]:
                    result['manually_starred'] += 1
                else:
                    result['manually_unstarred'] += 1
        return result


class RenameManager:
    """User-assigned conversation titles; original metadata is never touched"""

    def __init__(self, store: OverlayStore):
        self.store = store

    def renames(self) -> Dict[str, str]:
        return self.store.get(RENAMES_KEY) or {}

    def rename(self, conversation_uuid: str, name: str) -> None:
        """Set a new name; an empty or blank name removes the rename"""
        trimmed = (name or '').strip()

        def apply(data):
            data = data or {}
            if trimmed:
                data[conversation_uuid] = trimmed
            else:
                data.pop(conversation_uuid, None)
            return data or None

        self.store.update(RENAMES_KEY, apply)

    def get_name(self, conversation_uuid: str, original: str) -> str:
        return self.renames().get(conversation_uuid) or original

    def has_rename(self, conversation_uuid: str) -> bool:
        return conversation_uuid in self.renames()

    def remove(self, conversation_uuid: str) -> None:
        self.rename(conversation_uuid, '')

    def clear(self) -> None:
        with self.store.lock_for(RENAMES_KEY):
            self.store.delete(RENAMES_KEY)


class SortManager:
    """Custom message order for one file or conversation, stored as message indexes"""

    def __init__(self, store: OverlayStore, file_uuid: str):
        self.store = store
        self.key = f"{SORT_ORDER_PREFIX}{file_uuid}"

    def get_order(self) -> Optional[List[int]]:
        return self.store.get(self.key)

    def has_custom_order(self) -> bool:
        return self.get_order() is not None

    def set_order(self, order: Sequence[int]) -> None:
        order = list(order)
        self.store.update(self.key, lambda _: order)

    def apply(self, messages: Sequence[Message]) -> List[Message]:
        """
        Reorder messages by the stored index list.

        A missing order, or one that no longer matches the message set,
        leaves the list as given.
        """
        order = self.get_order()
        if order is None:
            return list(messages)
        by_index = {m.index: m for m in messages}
        if sorted(order) != sorted(by_index):
            logger.warning(f"Stored order for {self.key} does not match messages; ignoring it")
            return list(messages)
        return [by_index[i] for i in order]

    def move(self, messages: Sequence[Message], position: int, delta: int) -> List[Message]:
        """Move the message at ``position`` by ``delta`` places and persist the order"""
        current = self.apply(messages)
        target = position + delta
        if not 0 <= position < len(current) or not 0 <= target < len(current):
            return current
        item = current.pop(position)
        current.insert(target, item)
        self.set_order([m.index for m in current])
        return current

    def reset(self) -> None:
        with self.store.lock_for(self.key):
            self.store.delete(self.key)
