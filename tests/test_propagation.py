import math
from dataclasses import replace

import pytest

from beambench.components import (
    Component,
    ComponentPatch,
    ComponentType,
    ConstraintMode,
    IdSequence,
    PathConstraint,
    Port,
    apply_patch,
)
from beambench.demo import build_demo_layout
from beambench.errors import ErrorKind
from beambench.layout import Layout
from beambench.propagation import (
    PairState,
    connect_components,
    move_component,
    pair_state,
    refresh_beam_path,
    remove_component,
    rotate_component,
    update_component,
)


def _close(point, expected, tol=1e-6):
    return math.isclose(point[0], expected[0], abs_tol=tol) and math.isclose(point[1], expected[1], abs_tol=tol)


def _named(layout, name):
    return next(c for c in layout.component_list() if c.name == name)


def _patched(layout, name, **changes):
    component = _named(layout, name)
    return layout.with_components([apply_patch(component, ComponentPatch(**changes))])


@pytest.fixture
def demo():
    return build_demo_layout()


def test_pair_state_matrix():
    free = Component("a", ComponentType.MIRROR)
    fixed = Component("b", ComponentType.MIRROR, is_fixed=True)
    assert pair_state(fixed, fixed) is PairState.BOTH_FIXED
    assert pair_state(free, fixed) is PairState.DYNAMIC_FOLD
    assert pair_state(fixed, free) is PairState.DYNAMIC_FOLD
    assert pair_state(free, free) is PairState.SYNCHRONIZED


def test_demo_path_is_valid(demo):
    assert math.isclose(demo.beam_path.total_path_length(), 400.0)
    assert demo.beam_path.validation_summary().invalid == 0


def test_both_fixed_blocks_move(demo):
    layout = _patched(demo, "D1", is_fixed=True)
    outcome = move_component(layout, _named(layout, "S1").id, (120.0, 100.0))
    assert not outcome.ok
    assert outcome.layout is layout
    assert outcome.error_kind is ErrorKind.CONSTRAINT_BLOCKED
    assert outcome.error == "Cannot move S1: both S1 and D1 are fixed"


def test_fixed_component_cannot_be_dragged(demo):
    outcome = move_component(demo, _named(demo, "S1").id, (120.0, 100.0))
    assert not outcome.ok
    assert outcome.layout is demo
    assert "fixed" in outcome.error


def test_unknown_component(demo):
    outcome = move_component(demo, "nope", (0.0, 0.0))
    assert not outcome.ok
    assert outcome.layout is demo


def test_dynamic_fold_relocates_mirrors(demo):
    detector = _named(demo, "D1")
    outcome = move_component(demo, detector.id, (100.0, 225.0))
    assert outcome.ok, outcome.error
    layout = outcome.layout
    m1 = _named(layout, "M1")
    m2 = _named(layout, "M2")
    assert _close(m1.position, (237.5, 100.0))
    assert _close(m2.position, (237.5, 225.0))
    assert math.isclose(m1.angle, 45.0, abs_tol=1e-6)
    assert math.isclose(m2.angle, 135.0, abs_tol=1e-6)
    assert set(outcome.changed_ids) == {detector.id, m1.id, m2.id}
    assert math.isclose(layout.beam_path.total_path_length(), 400.0)
    assert layout.beam_path.validation_summary().invalid == 0
    # the prior snapshot is untouched
    assert _named(demo, "M1").position == (250.0, 100.0)


def test_dynamic_fold_rejects_unreachable_position(demo):
    detector = _named(demo, "D1")
    outcome = move_component(demo, detector.id, (300.0, 200.0))
    assert not outcome.ok
    assert outcome.layout is demo
    assert outcome.error_kind is ErrorKind.CONSTRAINT_BLOCKED
    assert outcome.error.startswith("Fold recompute for S1-D1 failed")


def test_dynamic_fold_rejects_too_long_gap(demo):
    detector = _named(demo, "D1")
    outcome = move_component(demo, detector.id, (100.0, 600.0))
    assert not outcome.ok
    assert "Path too short" in outcome.error


def test_dynamic_fold_respects_fixed_mirror(demo):
    layout = _patched(demo, "M1", is_fixed=True)
    outcome = move_component(layout, _named(layout, "D1").id, (100.0, 225.0))
    assert not outcome.ok
    assert outcome.layout is layout
    assert "M1 is fixed" in outcome.error


def test_dynamic_fold_accepts_matching_fixed_angle(demo):
    layout = _patched(demo, "M1", is_angle_fixed=True)
    layout = _patched(layout, "M2", is_angle_fixed=True, angle=315.0)
    outcome = move_component(layout, _named(layout, "D1").id, (100.0, 225.0))
    assert outcome.ok, outcome.error
    assert outcome.layout.components[_named(layout, "M2").id].angle == 315.0


def test_dynamic_fold_rejects_wrong_fixed_angle(demo):
    layout = _patched(demo, "M1", is_angle_fixed=True, angle=60.0)
    outcome = move_component(layout, _named(layout, "D1").id, (100.0, 225.0))
    assert not outcome.ok
    assert "fixed angle" in outcome.error


def test_dynamic_fold_needs_listed_mirrors(demo):
    laser = _named(demo, "S1")
    constraint = laser.path_constraints[0]
    short = PathConstraint(constraint.partner_id, 2, 400.0, mirror_ids=(constraint.mirror_ids[0],))
    layout = _patched(demo, "S1", path_constraints=(short,))
    outcome = move_component(layout, _named(layout, "D1").id, (100.0, 225.0))
    assert not outcome.ok
    assert outcome.error_kind is ErrorKind.CONSTRAINT_BLOCKED
    assert "lists 1" in outcome.error


def test_fold_count_drift_is_infeasible(demo):
    laser = _named(demo, "S1")
    constraint = laser.path_constraints[0]
    wrong = PathConstraint(constraint.partner_id, 1, 400.0, mirror_ids=constraint.mirror_ids)
    layout = _patched(demo, "S1", path_constraints=(wrong,))
    outcome = move_component(layout, _named(layout, "D1").id, (100.0, 225.0))
    assert outcome.error_kind is ErrorKind.GEOMETRY_INFEASIBLE


def test_synchronized_move_translates_pair_and_mirrors(demo):
    layout = _patched(demo, "S1", is_fixed=False)
    outcome = move_component(layout, _named(layout, "S1").id, (110.0, 120.0))
    assert outcome.ok, outcome.error
    moved = outcome.layout
    assert _close(_named(moved, "D1").position, (110.0, 220.0))
    assert _close(_named(moved, "M1").position, (260.0, 120.0))
    assert _close(_named(moved, "M2").position, (260.0, 220.0))
    assert math.isclose(moved.beam_path.total_path_length(), 400.0)
    assert moved.beam_path.validation_summary().invalid == 0


def test_synchronized_move_blocked_by_fixed_mirror(demo):
    layout = _patched(demo, "S1", is_fixed=False)
    layout = _patched(layout, "M2", is_fixed=True)
    outcome = move_component(layout, _named(layout, "S1").id, (110.0, 120.0))
    assert not outcome.ok
    assert outcome.error == "Cannot move S1: mirror M2 is fixed"


def test_unconstrained_move_invalidates_segment(demo):
    outcome = move_component(demo, _named(demo, "M2").id, (250.0, 260.0))
    assert outcome.ok
    graph = outcome.layout.beam_path
    assert graph.validation_summary().invalid >= 1
    assert math.isclose(graph.total_path_length(), 150.0 + 160.0 + math.hypot(150.0, 60.0))


def _auto_pair(partner_angle_fixed=False):
    constraint = PathConstraint("d", 0, 200.0, mode=ConstraintMode.AUTO)
    laser = Component("s", ComponentType.SOURCE, name="S1", position=(100.0, 100.0), path_constraints=(constraint,))
    detector = Component(
        "d",
        ComponentType.DETECTOR,
        name="D1",
        position=(300.0, 100.0),
        is_angle_fixed=partner_angle_fixed,
    )
    return Layout().with_components([laser, detector])


def test_rotation_turns_auto_partner():
    layout = _auto_pair()
    outcome = rotate_component(layout, "s", 90.0)
    assert outcome.ok, outcome.error
    assert outcome.layout.components["s"].angle == 90.0
    assert outcome.layout.components["d"].angle == 90.0
    assert _close(outcome.layout.components["d"].position, (100.0, 300.0))
    assert set(outcome.changed_ids) == {"s", "d"}


def _folded_auto_pair(fold_count, detector_position, detector_angle, target, mirrors=()):
    constraint = PathConstraint(
        "d", fold_count, target, mode=ConstraintMode.AUTO, mirror_ids=tuple(m.id for m in mirrors)
    )
    laser = Component("s", ComponentType.SOURCE, name="S1", position=(100.0, 100.0), path_constraints=(constraint,))
    detector = Component("d", ComponentType.DETECTOR, name="D1", position=detector_position, angle=detector_angle)
    return Layout().with_components([laser, detector, *mirrors])


def test_rotation_carries_one_fold_auto_pair():
    mirror = Component("m", ComponentType.MIRROR, name="M1", position=(200.0, 100.0), angle=45.0)
    layout = _folded_auto_pair(1, (200.0, 200.0), 90.0, 200.0, mirrors=(mirror,))
    outcome = rotate_component(layout, "s", 90.0)
    assert outcome.ok, outcome.error
    components = outcome.layout.components
    assert _close(components["d"].position, (0.0, 200.0))
    assert components["d"].angle == 180.0
    assert _close(components["m"].position, (100.0, 200.0))
    assert components["m"].angle == 135.0
    assert set(outcome.changed_ids) == {"s", "d", "m"}


def test_rotation_carries_two_fold_auto_pair():
    layout = _folded_auto_pair(2, (100.0, 200.0), 180.0, 300.0)
    outcome = rotate_component(layout, "s", 90.0)
    assert outcome.ok, outcome.error
    detector = outcome.layout.components["d"]
    assert _close(detector.position, (0.0, 100.0))
    assert detector.angle == 270.0


def test_rotation_leaves_fixed_partner_in_place():
    layout = _folded_auto_pair(1, (200.0, 200.0), 90.0, 200.0)
    layout = layout.with_components([replace(layout.components["d"], is_fixed=True)])
    outcome = rotate_component(layout, "s", 90.0)
    assert not outcome.ok
    assert outcome.layout is layout


def test_rotation_with_angle_fixed_partner_breaks_fold_count():
    layout = _auto_pair(partner_angle_fixed=True)
    outcome = rotate_component(layout, "s", 90.0)
    assert not outcome.ok
    assert outcome.layout is layout
    assert outcome.error_kind is ErrorKind.GEOMETRY_INFEASIBLE


def test_rotation_of_angle_fixed_component_rejected():
    layout = _auto_pair(partner_angle_fixed=True)
    outcome = rotate_component(layout, "d", 10.0)
    assert not outcome.ok
    assert "angle is fixed" in outcome.error


def test_auto_constraint_drags_partner():
    layout = _auto_pair()
    outcome = move_component(layout, "s", (100.0, 150.0))
    assert outcome.ok
    assert outcome.layout.components["d"].position == (300.0, 150.0)


def test_update_component_routes_geometry_and_metadata(demo):
    mirror = _named(demo, "M2")
    outcome = update_component(demo, mirror.id, ComponentPatch(angle=150.0, name="Fold 2", notes="swap"))
    assert outcome.ok
    updated = outcome.layout.components[mirror.id]
    assert updated.angle == 150.0
    assert updated.name == "Fold 2"
    assert updated.notes == "swap"
    segment = outcome.layout.beam_path.incoming_of(_named(demo, "D1").id)[0]
    assert not segment.is_valid


def test_update_component_propagates_rejection(demo):
    layout = _patched(demo, "D1", is_fixed=True)
    outcome = update_component(layout, _named(layout, "D1").id, ComponentPatch(position=(0.0, 0.0)))
    assert not outcome.ok
    assert outcome.layout is layout


def _laser_only():
    laser = Component("s", ComponentType.SOURCE, name="S1", position=(100.0, 100.0))
    mirror = Component("m", ComponentType.MIRROR, name="M1", position=(300.0, 100.0), angle=45.0)
    off_axis = Component("x", ComponentType.MIRROR, name="M2", position=(300.0, 200.0), angle=45.0)
    return Layout().with_components([laser, mirror, off_axis])


def test_connect_to_boundary_and_recast_on_move():
    ids = IdSequence()
    outcome = connect_components(_laser_only(), "s", None, ids)
    assert outcome.ok
    segment = outcome.layout.beam_path.segments()[0]
    assert segment.target_id is None
    assert _close(segment.end_point, (600.0, 100.0))
    assert math.isclose(segment.path_length, 500.0)

    moved = move_component(outcome.layout, "s", (100.0, 300.0))
    recast = moved.layout.beam_path.get_segment(segment.id)
    assert _close(recast.end_point, (600.0, 300.0))
    assert math.isclose(recast.path_length, 500.0)


def test_connect_validates_and_rejects_duplicates():
    ids = IdSequence()
    layout = _laser_only()
    first = connect_components(layout, "s", "m", ids)
    assert first.ok
    assert first.layout.beam_path.connection_exists("s", "m", Port.OUTPUT)
    again = connect_components(first.layout, "s", "m", ids)
    assert not again.ok
    assert again.layout is first.layout
    off = connect_components(layout, "s", "x", ids)
    assert not off.ok
    assert off.error_kind is ErrorKind.CONNECTION_INVALID
    assert off.layout is layout


def test_connect_inherits_wavelength_and_colours():
    ids = IdSequence()
    layout = _laser_only()
    layout = connect_components(layout, "s", "m", ids).layout
    segment = layout.beam_path.segments()[0]
    layout = layout.with_beam_path(layout.beam_path.replace_segment(replace(segment, wavelength=1064.0)))
    outcome = connect_components(layout, "m", None, ids)
    assert outcome.ok
    boundary = outcome.layout.beam_path.boundary_segments()[0]
    assert boundary.wavelength == 1064.0
    assert _close(boundary.end_point, (300.0, 600.0))
    assert boundary.branch_index == 0


def test_connect_with_fixed_length():
    ids = IdSequence()
    outcome = connect_components(_laser_only(), "s", "m", ids, fixed_length=250.0)
    segment = outcome.layout.beam_path.segments()[0]
    assert segment.is_fixed_length
    assert segment.path_length == 250.0


def test_remove_component_strips_segments_and_constraints(demo):
    m1 = _named(demo, "M1")
    outcome = remove_component(demo, m1.id)
    assert outcome.ok
    layout = outcome.layout
    assert m1.id not in layout.components
    assert all(not s.touches(m1.id) for s in layout.beam_path)
    assert len(layout.beam_path) == 1
    laser = _named(layout, "S1")
    assert m1.id not in laser.path_constraints[0].mirror_ids
    assert outcome.changed_ids == (laser.id,)

    detector = _named(layout, "D1")
    dropped = remove_component(layout, detector.id).layout
    assert _named(dropped, "S1").path_constraints == ()


def test_refresh_is_idempotent(demo):
    once = refresh_beam_path(demo)
    twice = refresh_beam_path(once)
    assert once.beam_path == twice.beam_path
