"""
Branch graph reconstruction over a flat message list.

Exports carry only ``parent_uuid`` back-references. This module builds the
parent/children adjacency once, finds branch points (messages with more than
one reply) and assigns every message a ``branch_id`` and ``branch_level``.
The result is an immutable arena: annotated copies of the input messages plus
index-based parent and children tables. Input messages are never mutated.

Main-branch tie-break: at a fork the child named in ``preferred_main`` (the
importer's knowledge of the active path, e.g. ChatGPT's ``current_node``
ancestry or the selected JSONL swipe) continues the parent's branch; without a
hint the first-discovered child does. Alternate children get
``"{parent_branch}.{k}"`` with ``k`` counting alternates from 1.
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Set, Tuple
import logging

from .constants import MAIN_BRANCH, ROOT_BRANCH_PREFIX, ROOT_UUID
from .models import BranchInfo, Message

logger = logging.getLogger(__name__)

NO_PARENT = -1


@dataclass(frozen=True)
class BranchGraph:
    """Immutable annotated message tree"""
    messages: Tuple[Message, ...]                # annotated copies, input order
    parent_of: Tuple[int, ...]                   # NO_PARENT for roots
    children_of: Tuple[Tuple[int, ...], ...]     # discovery order
    main_child_of: Tuple[int, ...]               # NO_PARENT when childless
    roots: Tuple[int, ...]                       # main root first
    order: Tuple[int, ...]                       # depth-first traversal
    index_by_uuid: Dict[str, int]
    warnings: Tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.messages)

    def index_of(self, uuid: str) -> Optional[int]:
        return self.index_by_uuid.get(uuid)

    def get(self, uuid: str) -> Optional[Message]:
        idx = self.index_by_uuid.get(uuid)
        return self.messages[idx] if idx is not None else None

    def parent(self, uuid: str) -> Optional[Message]:
        """Structural parent (None for roots, including cut cycles)"""
        idx = self.index_by_uuid.get(uuid)
        if idx is None or self.parent_of[idx] == NO_PARENT:
            return None
        return self.messages[self.parent_of[idx]]

    def children(self, uuid: str) -> List[Message]:
        """Children in discovery order; ROOT_UUID yields the roots"""
        return [self.messages[i] for i in self._child_indexes(uuid)]

    def main_child(self, uuid: str) -> Optional[Message]:
        if uuid == ROOT_UUID:
            return self.messages[self.roots[0]] if self.roots else None
        idx = self.index_by_uuid.get(uuid)
        if idx is None or self.main_child_of[idx] == NO_PARENT:
            return None
        return self.messages[self.main_child_of[idx]]

    @property
    def has_virtual_root(self) -> bool:
        """Several roots fork from an implicit shared root"""
        return len(self.roots) > 1

    @property
    def branch_points(self) -> Tuple[str, ...]:
        """uuids of branch points in traversal order"""
        points = [self.messages[i].uuid for i in self.order
                  if len(self.children_of[i]) > 1]
        if self.has_virtual_root:
            points.insert(0, ROOT_UUID)
        return tuple(points)

    def traversal_order(self) -> List[Message]:
        """Messages depth first from the roots; parents precede children"""
        return [self.messages[i] for i in self.order]

    def branch_ids(self) -> List[str]:
        """Distinct branch ids in input order"""
        seen = []
        for msg in self.messages:
            if msg.branch_id not in seen:
                seen.append(msg.branch_id)
        return seen

    def subtree_size(self, uuid: str) -> int:
        """Number of messages below ``uuid`` (excluding itself)"""
        total = 0
        stack = list(self._child_indexes(uuid))
        while stack:
            i = stack.pop()
            total += 1
            stack.extend(self.children_of[i])
        return total

    def _child_indexes(self, uuid: str) -> Tuple[int, ...]:
        if uuid == ROOT_UUID:
            return self.roots
        idx = self.index_by_uuid.get(uuid)
        return self.children_of[idx] if idx is not None else ()


def build_branch_graph(messages: Iterable[Message],
                       preferred_main: Optional[Set[str]] = None) -> BranchGraph:
    """
    Build the annotated branch graph for one conversation.

    Malformed input never raises: parents that do not exist and cycles turn
    the affected messages into extra roots, and a warning is logged and kept
    on ``BranchGraph.warnings``. Existing ``branch`` annotations on the input
    are ignored, so rebuilding from annotated output gives the same result.
    """
    source = list(messages)
    preferred = set(preferred_main or ())
    warnings: List[str] = []

    def warn(text: str):
        logger.warning(text)
        warnings.append(text)

    index_by_uuid: Dict[str, int] = {}
    for i, msg in enumerate(source):
        if msg.uuid in index_by_uuid:
            warn(f"Duplicate message uuid {msg.uuid!r} at position {i}; "
                 f"lookups resolve to position {index_by_uuid[msg.uuid]}")
            continue
        index_by_uuid[msg.uuid] = i

    parent_of = []
    for i, msg in enumerate(source):
        parent_uuid = msg.parent_uuid
        if not parent_uuid or parent_uuid == ROOT_UUID:
            parent_of.append(NO_PARENT)
        elif parent_uuid not in index_by_uuid:
            warn(f"Message {msg.uuid!r} references missing parent "
                 f"{parent_uuid!r}; treating it as a root")
            parent_of.append(NO_PARENT)
        else:
            parent_of.append(index_by_uuid[parent_uuid])

    children: List[List[int]] = [[] for _ in source]
    for i, p in enumerate(parent_of):
        if p != NO_PARENT:
            children[p].append(i)
    roots = [i for i, p in enumerate(parent_of) if p == NO_PARENT]

    # Anything unreachable from a root sits on (or under) a parent cycle
    visited = [False] * len(source)

    def mark_reachable(start: int):
        stack = [start]
        while stack:
            i = stack.pop()
            if visited[i]:
                continue
            visited[i] = True
            stack.extend(children[i])

    for r in roots:
        mark_reachable(r)
    for i in range(len(source)):
        if visited[i]:
            continue
        old_parent = parent_of[i]
        warn(f"Cycle detected at message {source[i].uuid!r}; treating it as a root")
        children[old_parent].remove(i)
        parent_of[i] = NO_PARENT
        roots.append(i)
        mark_reachable(i)

    if roots:
        # Orphans and cycle cuts only lead when no message is a true root
        genuine = [r for r in roots
                   if not source[r].parent_uuid or source[r].parent_uuid == ROOT_UUID]
        main_root = _pick_main(genuine or roots, source, preferred)
        roots.remove(main_root)
        roots.insert(0, main_root)

    branch_info: List[Optional[BranchInfo]] = [None] * len(source)
    main_child_of = [NO_PARENT] * len(source)
    order: List[int] = []

    for k, root in enumerate(roots):
        if k == 0:
            start = (root, MAIN_BRANCH, 0)
        else:
            start = (root, f"{ROOT_BRANCH_PREFIX}{k}", 1)
        stack = [start]
        while stack:
            i, branch_id, level = stack.pop()
            order.append(i)
            kids = children[i]
            branch_info[i] = BranchInfo(
                branch_id=branch_id,
                branch_level=level,
                is_branch_point=len(kids) > 1,
                child_count=len(kids),
            )
            if not kids:
                continue
            main = _pick_main(kids, source, preferred)
            main_child_of[i] = main
            pending = []
            alternate = 0
            for child in kids:
                if child == main:
                    pending.append((child, branch_id, level))
                else:
                    alternate += 1
                    pending.append((child, f"{branch_id}.{alternate}", level + 1))
            stack.extend(reversed(pending))

    annotated = tuple(replace(msg, branch=branch_info[i]) for i, msg in enumerate(source))

    if warnings:
        logger.debug(f"Branch graph built with {len(warnings)} warning(s)")

    return BranchGraph(
        messages=annotated,
        parent_of=tuple(parent_of),
        children_of=tuple(tuple(c) for c in children),
        main_child_of=tuple(main_child_of),
        roots=tuple(roots),
        order=tuple(order),
        index_by_uuid=index_by_uuid,
        warnings=tuple(warnings),
    )


def annotate_branches(messages: Iterable[Message],
                      preferred_main: Optional[Set[str]] = None) -> List[Message]:
    """Convenience wrapper returning only the annotated messages"""
    return list(build_branch_graph(messages, preferred_main).messages)


def _pick_main(candidates: List[int], source: List[Message], preferred: Set[str]) -> int:
    if preferred:
        for i in candidates:
            if source[i].uuid in preferred:
                return i
    return candidates[0]
