"""
Linear history selection: the single path a timeline shows.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Union

from .branches import BranchGraph, build_branch_graph
from .constants import PREVIEW_LENGTH, ROOT_UUID
from .formatting import branch_marker, clean_preview
from .models import Message


def _as_graph(source: Union[BranchGraph, Sequence[Message]]) -> BranchGraph:
    if isinstance(source, BranchGraph):
        return source
    return build_branch_graph(source)


def select_linear_history(source: Union[BranchGraph, Sequence[Message]],
                          selection: Optional[Mapping[str, str]] = None,
                          show_all_branches: bool = False) -> List[Message]:
    """
    Walk from the root following one child per branch point.

    Args:
        source: A built graph, or plain messages to build one from
        selection: branch point uuid -> branch_id of the child to follow.
            ``ROOT_UUID`` selects among several roots. Missing or unknown
            entries follow the main child.
        show_all_branches: Return every annotated message unfiltered

    Returns:
        Annotated messages in source-list order
    """
    graph = _as_graph(source)
    if show_all_branches:
        return list(graph.messages)
    if not graph.roots:
        return []

    selection = selection or {}
    chosen = set()

    current = _choose(graph, ROOT_UUID, list(graph.roots), selection)
    while current is not None:
        chosen.add(current)
        kids = list(graph.children_of[current])
        if not kids:
            break
        current = _choose(graph, graph.messages[current].uuid, kids, selection)

    return [graph.messages[i] for i in sorted(chosen)]


def _choose(graph: BranchGraph, point_uuid: str, candidates: List[int],
            selection: Mapping[str, str]) -> int:
    if len(candidates) == 1:
        return candidates[0]
    wanted = selection.get(point_uuid)
    if wanted is not None:
        for i in candidates:
            if graph.messages[i].branch_id == wanted:
                return i
    main = graph.main_child(point_uuid)
    return graph.index_of(main.uuid) if main is not None else candidates[0]


def list_branch_options(source: Union[BranchGraph, Sequence[Message]]) -> List[Dict]:
    """Distinct branches with their file-name marker and message count"""
    graph = _as_graph(source)
    branches: Dict[str, Dict] = {}
    for msg in graph.messages:
        branch_id = msg.branch_id or 'main'
        if branch_id not in branches:
            branches[branch_id] = {
                'id': branch_id,
                'marker': branch_marker(branch_id),
                'message_count': 0,
            }
        branches[branch_id]['message_count'] += 1
    return list(branches.values())


def branch_point_choices(source: Union[BranchGraph, Sequence[Message]],
                         point_uuid: str) -> List[Dict]:
    """Selectable children of one branch point, main child first"""
    graph = _as_graph(source)
    main = graph.main_child(point_uuid)
    choices = []
    for child in graph.children(point_uuid):
        choices.append({
            'branch_id': child.branch_id,
            'uuid': child.uuid,
            'is_main': main is not None and child.uuid == main.uuid,
            'preview': clean_preview(child.display_text, PREVIEW_LENGTH),
        })
    choices.sort(key=lambda c: not c['is_main'])
    return choices
