"""
Tests for branch graph reconstruction.

Covers: annotation of linear and forked conversations, main-branch choice,
malformed graphs (missing parents, cycles, duplicates) and rebuild stability.
"""

import pytest

from lyra.core.branches import NO_PARENT, annotate_branches, build_branch_graph
from lyra.core.constants import MAIN_BRANCH
from lyra.core.history import select_linear_history
from lyra.core.models import Message, Sender


def _make_message(uuid, parent=None, human=True):
    return Message(uuid=uuid, parent_uuid=parent,
                   sender=Sender.HUMAN if human else Sender.ASSISTANT,
                   display_text=f"text of {uuid}")


def _ids(graph):
    return {m.uuid: m.branch_id for m in graph.messages}


# ===========================================================================
# Annotation
# ===========================================================================


class TestLinearAnnotation:
    """Conversations without forks stay on the main branch"""

    @pytest.mark.unit
    def test_all_messages_on_main(self, linear_conversation):
        graph = build_branch_graph(linear_conversation.messages)
        assert all(m.branch_id == MAIN_BRANCH for m in graph.messages)
        assert all(m.branch_level == 0 for m in graph.messages)
        assert graph.branch_points == ()

    @pytest.mark.unit
    def test_input_messages_not_mutated(self, linear_conversation):
        build_branch_graph(linear_conversation.messages)
        assert all(m.branch is None for m in linear_conversation.messages)

    @pytest.mark.unit
    def test_empty_input(self):
        graph = build_branch_graph([])
        assert len(graph) == 0
        assert graph.roots == ()

    @pytest.mark.unit
    def test_order_preserved(self, linear_conversation):
        graph = build_branch_graph(linear_conversation.messages)
        assert [m.uuid for m in graph.messages] == ["m1", "m2", "m3", "m4"]


class TestBranchAnnotation:
    """Forked conversations"""

    @pytest.mark.unit
    def test_branch_point_detected(self, branching_conversation):
        graph = build_branch_graph(branching_conversation.messages)
        assert graph.branch_points == ("m2",)
        m2 = graph.get("m2")
        assert m2.is_branch_point
        assert m2.branch.child_count == 2

    @pytest.mark.unit
    def test_first_child_is_main_by_default(self, branching_conversation):
        ids = _ids(build_branch_graph(branching_conversation.messages))
        assert ids["m3"] == MAIN_BRANCH
        assert ids["m4"] == MAIN_BRANCH
        assert ids["m5"] == "main.1"
        assert ids["m6"] == "main.1"

    @pytest.mark.unit
    def test_alternate_branch_level(self, branching_conversation):
        graph = build_branch_graph(branching_conversation.messages)
        assert graph.get("m5").branch_level == 1
        assert graph.get("m3").branch_level == 0

    @pytest.mark.unit
    def test_preferred_main_wins(self, branching_conversation):
        graph = build_branch_graph(branching_conversation.messages, preferred_main={"m5"})
        ids = _ids(graph)
        assert ids["m5"] == MAIN_BRANCH
        assert ids["m3"] == "main.1"
        assert graph.main_child("m2").uuid == "m5"

    @pytest.mark.unit
    def test_nested_branches_compound_ids(self):
        messages = [
            _make_message("a", None),
            _make_message("b", "a", False),
            _make_message("c", "a", False),
            _make_message("d", "c"),
            _make_message("e", "c"),
        ]
        ids = _ids(build_branch_graph(messages))
        assert ids["c"] == "main.1"
        assert ids["d"] == "main.1"
        assert ids["e"] == "main.1.1"

    @pytest.mark.unit
    def test_three_children_count_alternates(self):
        messages = [
            _make_message("r", None),
            _make_message("x", "r", False),
            _make_message("y", "r", False),
            _make_message("z", "r", False),
        ]
        graph = build_branch_graph(messages)
        assert _ids(graph) == {"r": "main", "x": "main", "y": "main.1", "z": "main.2"}
        assert graph.get("r").branch.child_count == 3

    @pytest.mark.unit
    def test_parents_precede_children_in_traversal(self, branching_conversation):
        graph = build_branch_graph(branching_conversation.messages)
        position = {m.uuid: i for i, m in enumerate(graph.traversal_order())}
        for msg in graph.messages:
            if msg.parent_uuid:
                assert position[msg.parent_uuid] < position[msg.uuid]

    @pytest.mark.unit
    def test_subtree_sizes_cover_off_main_descendants(self, branching_conversation):
        graph = build_branch_graph(branching_conversation.messages)
        off_main = [m for m in graph.messages if m.branch_id != MAIN_BRANCH]
        alternates = [c for c in graph.children("m2") if c.uuid != graph.main_child("m2").uuid]
        assert sum(1 + graph.subtree_size(c.uuid) for c in alternates) == len(off_main)


# ===========================================================================
# Malformed graphs
# ===========================================================================


class TestMalformedGraphs:
    """Broken parent links never raise"""

    @pytest.mark.unit
    def test_missing_parent_becomes_root(self):
        messages = [_make_message("a", None), _make_message("b", "ghost")]
        graph = build_branch_graph(messages)
        assert graph.parent_of[1] == NO_PARENT
        assert graph.get("b").branch_id == "branch_root_1"
        assert any("missing parent" in w for w in graph.warnings)

    @pytest.mark.unit
    def test_orphan_before_real_root_stays_off_main(self):
        messages = [
            _make_message("orphan", "gone"),
            _make_message("r1", None),
            _make_message("r2", "r1", human=False),
            _make_message("r3", "r2"),
        ]
        graph = build_branch_graph(messages)
        assert _ids(graph) == {"orphan": "branch_root_1", "r1": MAIN_BRANCH,
                               "r2": MAIN_BRANCH, "r3": MAIN_BRANCH}
        assert [m.uuid for m in select_linear_history(graph)] == ["r1", "r2", "r3"]

    @pytest.mark.unit
    def test_cycle_cut_never_leads(self):
        messages = [_make_message("a", "b"), _make_message("b", "a"), _make_message("root", None)]
        graph = build_branch_graph(messages)
        assert graph.get("root").branch_id == MAIN_BRANCH

    @pytest.mark.unit
    def test_cycle_is_broken(self):
        messages = [
            _make_message("root", None),
            _make_message("a", "b"),
            _make_message("b", "a"),
        ]
        graph = build_branch_graph(messages)
        assert len(graph.roots) == 2
        assert all(m.branch is not None for m in graph.messages)
        assert any("Cycle" in w for w in graph.warnings)

    @pytest.mark.unit
    def test_self_parent_is_broken(self):
        graph = build_branch_graph([_make_message("a", "a")])
        assert graph.roots == (0,)
        assert graph.get("a").branch_id == MAIN_BRANCH

    @pytest.mark.unit
    def test_duplicate_uuid_warns(self):
        graph = build_branch_graph([_make_message("a", None), _make_message("a", None)])
        assert graph.index_of("a") == 0
        assert any("Duplicate" in w for w in graph.warnings)

    @pytest.mark.unit
    def test_several_roots_share_virtual_root(self):
        graph = build_branch_graph([_make_message("a", None), _make_message("b", None)])
        assert graph.has_virtual_root
        assert graph.main_child("00000000-0000-4000-8000-000000000000").uuid == "a"


# ===========================================================================
# Stability
# ===========================================================================


class TestRebuild:
    """Rebuilding from annotated output"""

    @pytest.mark.unit
    def test_rebuild_is_idempotent(self, branching_conversation):
        first = annotate_branches(branching_conversation.messages)
        second = annotate_branches(first)
        assert [m.branch for m in first] == [m.branch for m in second]

    @pytest.mark.unit
    def test_branch_ids_listed_in_order(self, branching_conversation):
        graph = build_branch_graph(branching_conversation.messages)
        assert graph.branch_ids() == ["main", "main.1"]
