import math
from pathlib import Path

import pytest

from beambench import ComponentType, Layout, move_component, summarize
from beambench.demo import build_demo_layout, run


def test_demo_run_prints_move(capsys):
    run()
    out = capsys.readouterr().out
    assert "Total path length: 400.0mm" in out
    assert "Move detector down 25mm: ok=True" in out
    assert "New total path length: 400.0mm" in out


def test_demo_round_trip_then_move():
    layout = Layout.from_json(build_demo_layout().to_json())
    detector = next(c for c in layout.component_list() if c.type is ComponentType.DETECTOR)
    outcome = move_component(layout, detector.id, (100.0, 175.0))
    assert outcome.ok, outcome.error
    summary = summarize(outcome.layout)
    assert math.isclose(summary.total_path_length, 400.0)
    assert summary.violations == ()


def test_bundled_example_layout_loads():
    path = Path(__file__).resolve().parents[1] / "examples" / "layouts" / "two_fold.json"
    layout = Layout.load(path)
    assert len(layout.components) == 4
    assert math.isclose(layout.beam_path.total_path_length(), 400.0)
    outcome = move_component(layout, "det", (100.0, 225.0))
    assert outcome.ok, outcome.error
    assert outcome.layout.components["m1"].position == pytest.approx((237.5, 100.0))
