from steptrack.models import Step, Write
from steptrack.reorder import Direction, apply_reorder, reorder


def _step(sid, order):
    return Step(id=sid, task_id="T-1", name=sid, sort_order=order)


def test_move_up_swaps_with_previous_sibling():
    a, b, c = _step("a", 0), _step("b", 1), _step("c", 2)
    writes = reorder(b, Direction.UP, [a, b, c])
    assert writes == [
        Write("steps", "b", {"sort_order": 0}),
        Write("steps", "a", {"sort_order": 1}),
    ]
    assert [s.id for s in apply_reorder([a, b, c], writes)] == ["b", "a", "c"]


def test_move_down_accepts_plain_string_direction():
    a, b, c = _step("a", 0), _step("b", 1), _step("c", 2)
    writes = reorder(b, "down", [a, b, c])
    assert [w.id for w in writes] == ["b", "c"]
    assert [s.id for s in apply_reorder([a, b, c], writes)] == ["a", "c", "b"]


def test_boundaries_are_noops():
    a, b = _step("a", 0), _step("b", 1)
    assert reorder(a, Direction.UP, [a, b]) == []
    assert reorder(b, Direction.DOWN, [a, b]) == []


def test_step_outside_siblings_yields_nothing():
    a, b = _step("a", 0), _step("b", 1)
    assert reorder(_step("z", 0), Direction.DOWN, [a, b]) == []


def test_duplicate_orders_are_renumbered():
    # a step appended after a delete can share its predecessor's order
    b, c, d = _step("b", 1), _step("c", 2), _step("d", 2)
    assert reorder(d, Direction.DOWN, [b, c, d]) == []
    writes = reorder(d, Direction.UP, [b, c, d])
    assert writes == [
        Write("steps", "b", {"sort_order": 0}),
        Write("steps", "d", {"sort_order": 1}),
    ]
    reordered = apply_reorder([b, c, d], writes)
    assert [s.id for s in reordered] == ["b", "d", "c"]
    assert [s.sort_order for s in reordered] == [0, 1, 2]


def test_non_contiguous_orders_swap_values():
    a, b, c = _step("a", 0), _step("b", 5), _step("c", 9)
    writes = reorder(b, Direction.UP, [a, b, c])
    assert writes == [
        Write("steps", "b", {"sort_order": 0}),
        Write("steps", "a", {"sort_order": 5}),
    ]
    reordered = apply_reorder([a, b, c], writes)
    assert [s.id for s in reordered] == ["b", "a", "c"]
    assert sorted(s.sort_order for s in reordered) == [0, 5, 9]
