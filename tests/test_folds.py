import math

import pytest

from beambench.components import Component, ComponentType
from beambench.errors import ErrorKind
from beambench.folds import (
    FoldEndpoint,
    calculate,
    calculate_one_fold,
    calculate_two_folds,
    calculate_zero_fold,
    determine_fold_count,
    fold_mirror_angles,
    is_geometry_solvable,
)


def _close_point(actual, expected, tol=1e-6):
    return math.isclose(actual[0], expected[0], abs_tol=tol) and math.isclose(actual[1], expected[1], abs_tol=tol)


@pytest.mark.parametrize(
    "a1, a2, expected",
    [
        (0.0, 0.0, 0),
        (0.0, 44.0, 0),
        (0.0, 45.0, 1),
        (0.0, 90.0, 1),
        (0.0, 134.0, 1),
        (0.0, 135.0, 2),
        (0.0, 180.0, 2),
        (350.0, 20.0, 0),
        (270.0, 0.0, 1),
    ],
)
def test_fold_count_buckets(a1, a2, expected):
    assert determine_fold_count(a1, a2) == expected
    assert determine_fold_count(a2, a1) == expected


def test_zero_fold_within_tolerance():
    a = FoldEndpoint((0.0, 0.0), 0.0)
    b = FoldEndpoint((200.0, 0.0), 0.0)
    geometry = calculate(a, b, 205.0)
    assert geometry.valid and geometry.fold_count == 0
    assert math.isclose(geometry.total_length, 200.0)
    assert geometry.folds == ()


def test_zero_fold_length_mismatch():
    a = FoldEndpoint((0.0, 0.0), 0.0)
    b = FoldEndpoint((200.0, 0.0), 0.0)
    geometry = calculate_zero_fold(a, b, 300.0)
    assert not geometry.valid
    assert geometry.error_kind is ErrorKind.LENGTH_MISMATCH
    assert "target 300.0mm" in geometry.error


def test_one_fold_l_shape():
    a = FoldEndpoint((0.0, 0.0), 0.0)
    b = FoldEndpoint((100.0, 100.0), 90.0)
    geometry = calculate(a, b, 200.0)
    assert geometry.valid and geometry.fold_count == 1
    assert _close_point(geometry.folds[0], (100.0, 0.0))
    assert [round(s.length, 6) for s in geometry.segments] == [100.0, 100.0]
    assert fold_mirror_angles(geometry) == pytest.approx([45.0])


def test_one_fold_failures():
    a = FoldEndpoint((0.0, 0.0), 0.0)
    b = FoldEndpoint((100.0, 100.0), 90.0)
    too_long = calculate_one_fold(a, b, 300.0)
    assert too_long.error_kind is ErrorKind.LENGTH_MISMATCH
    assert "mismatch" in too_long.error
    assert len(too_long.folds) == 1
    too_short = calculate_one_fold(a, b, 50.0)
    assert too_short.error_kind is ErrorKind.GEOMETRY_INFEASIBLE
    assert "Invalid fold position" in too_short.error
    skewed = calculate_one_fold(a, FoldEndpoint((100.0, 100.0), 45.0), 200.0)
    assert skewed.error_kind is ErrorKind.GEOMETRY_INFEASIBLE
    assert "not perpendicular" in skewed.error


def test_one_fold_behind_source():
    a = FoldEndpoint((100.0, 0.0), 0.0)
    b = FoldEndpoint((0.0, 100.0), 90.0)
    geometry = calculate_one_fold(a, b, 200.0)
    assert not geometry.valid
    assert geometry.error_kind is ErrorKind.GEOMETRY_INFEASIBLE


@pytest.mark.parametrize(
    "target, lengths, folds",
    [
        (300.0, [100.0, 100.0, 100.0], [(100.0, 0.0), (100.0, 100.0)]),
        (400.0, [150.0, 100.0, 150.0], [(150.0, 0.0), (150.0, 100.0)]),
    ],
)
def test_two_fold_u_shape(target, lengths, folds):
    a = FoldEndpoint((0.0, 0.0), 0.0)
    b = FoldEndpoint((0.0, 100.0), 180.0)
    geometry = calculate(a, b, target)
    assert geometry.valid and geometry.fold_count == 2
    assert [s.length for s in geometry.segments] == pytest.approx(lengths)
    for actual, expected in zip(geometry.folds, folds):
        assert _close_point(actual, expected)
    assert math.isclose(geometry.total_length, target)
    assert fold_mirror_angles(geometry) == pytest.approx([45.0, 135.0])


def test_two_fold_walks_to_the_negative_side():
    a = FoldEndpoint((0.0, 100.0), 0.0)
    b = FoldEndpoint((0.0, 0.0), 180.0)
    geometry = calculate_two_folds(a, b, 300.0)
    assert geometry.valid
    assert _close_point(geometry.folds[1], (100.0, 0.0))


def test_two_fold_failures():
    a = FoldEndpoint((0.0, 0.0), 0.0)
    short = calculate_two_folds(a, FoldEndpoint((0.0, 100.0), 180.0), 50.0)
    assert short.error_kind is ErrorKind.LENGTH_MISMATCH
    assert "Path too short" in short.error
    misaligned = calculate_two_folds(a, FoldEndpoint((30.0, 100.0), 180.0), 300.0)
    assert misaligned.error_kind is ErrorKind.GEOMETRY_INFEASIBLE
    assert "don't align" in misaligned.error
    assert len(misaligned.folds) == 2
    same_way = calculate_two_folds(a, FoldEndpoint((0.0, 100.0), 0.0), 300.0)
    assert same_way.error_kind is ErrorKind.GEOMETRY_INFEASIBLE
    assert "opposite-facing" in same_way.error


def test_components_are_endpoints():
    laser = Component("s", ComponentType.SOURCE, position=(100.0, 100.0), angle=0.0)
    detector = Component("d", ComponentType.DETECTOR, position=(100.0, 225.0), angle=180.0)
    geometry = calculate(laser, detector, 400.0)
    assert geometry.valid
    assert _close_point(geometry.folds[0], (237.5, 100.0))
    assert _close_point(geometry.folds[1], (237.5, 225.0))


@pytest.mark.parametrize(
    "first, second, target",
    [
        (None, FoldEndpoint((0.0, 0.0), 0.0), 100.0),
        (FoldEndpoint((0.0, 0.0), 0.0), None, 100.0),
        (FoldEndpoint((0.0, 0.0), 0.0), FoldEndpoint((100.0, 0.0), 0.0), 0.0),
        (FoldEndpoint((0.0, 0.0), 0.0), FoldEndpoint((100.0, 0.0), 0.0), -10.0),
    ],
)
def test_invalid_inputs(first, second, target):
    geometry = calculate(first, second, target)
    assert not geometry.valid
    assert geometry.error == "Invalid input parameters"


def test_feasibility_screen():
    a = FoldEndpoint((0.0, 0.0), 0.0)
    b = FoldEndpoint((100.0, 100.0), 90.0)
    assert is_geometry_solvable(a, b, 1, 200.0)
    assert not is_geometry_solvable(a, b, 1, 150.0)
    assert not is_geometry_solvable(a, b, 3, 500.0)


def test_geometry_to_dict():
    geometry = calculate(FoldEndpoint((0.0, 0.0), 0.0), FoldEndpoint((100.0, 100.0), 90.0), 200.0)
    data = geometry.to_dict()
    assert data["foldCount"] == 1
    assert data["error"] is None
    assert len(data["segments"]) == 2


def test_zero_fold_single_segment():
    geometry = calculate(FoldEndpoint((0.0, 0.0), 0.0), FoldEndpoint((100.0, 0.0), 0.0), 100.0)
    assert geometry.valid
    assert len(geometry.segments) == 1
    assert math.isclose(geometry.segments[0].length, 100.0)
    assert fold_mirror_angles(geometry) == []
