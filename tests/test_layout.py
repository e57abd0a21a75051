import json

import pytest

from beambench.components import ComponentType
from beambench.demo import build_demo_layout
from beambench.errors import LayoutError
from beambench.layout import Layout
from beambench.workspace import Workspace


def _by_type(layout, kind):
    return [c for c in layout.component_list() if c.type is kind]


def test_demo_layout_shape():
    layout = build_demo_layout()
    assert len(layout.components) == 4
    assert len(layout.beam_path) == 3
    assert layout.workspace == Workspace.default()
    assert [c.name for c in layout.sources()] == ["S1"]
    pairs = layout.constrained_pairs()
    assert len(pairs) == 1
    laser = layout.sources()[0]
    detector = _by_type(layout, ComponentType.DETECTOR)[0]
    assert pairs[0].owner_id == laser.id
    assert pairs[0].partner_id == detector.id
    assert layout.constraints_touching(detector.id) == pairs
    mirror = _by_type(layout, ComponentType.MIRROR)[0]
    assert layout.constraints_touching(mirror.id) == []


def test_json_round_trip():
    layout = build_demo_layout()
    restored = Layout.from_json(layout.to_json())
    assert restored == layout


def test_load_from_file(tmp_path):
    layout = build_demo_layout()
    path = tmp_path / "bench.json"
    path.write_text(layout.to_json(), encoding="utf-8")
    loaded = Layout.load(path)
    assert loaded.beam_path.total_path_length() == pytest.approx(400.0)


def test_components_may_be_keyed_by_id():
    data = {
        "components": {
            "s": {"id": "s", "type": "source", "position": {"x": 10, "y": 10}},
        },
        "constraints": {"workspace": {"width": 300, "height": 200}},
    }
    layout = Layout.from_dict(data)
    assert layout.component("s").position == (10.0, 10.0)
    assert layout.workspace == Workspace(0.0, 0.0, 300.0, 200.0)


def test_with_and_without_components_are_copies():
    layout = build_demo_layout()
    detector = _by_type(layout, ComponentType.DETECTOR)[0]
    trimmed = layout.without_component(detector.id)
    assert detector.id in layout.components
    assert detector.id not in trimmed.components


@pytest.mark.parametrize(
    "document, fragment",
    [
        ("{not json", "invalid JSON"),
        ("[1, 2]", "must be a JSON object"),
        (json.dumps({"components": [{"id": "a"}]}), "malformed"),
        (json.dumps({"components": [{"id": "a", "type": "laser_cannon"}]}), "malformed"),
        (
            json.dumps(
                {
                    "components": [
                        {"id": "a", "type": "mirror"},
                        {"id": "a", "type": "lens"},
                    ]
                }
            ),
            "duplicate",
        ),
        (
            json.dumps(
                {
                    "components": [{"id": "a", "type": "source"}],
                    "beamPath": {"segments": [{"id": "s1", "sourceId": "a", "targetId": "ghost"}]},
                }
            ),
            "orphaned target",
        ),
        (json.dumps({"constraints": ["not", "a", "mapping"]}), "malformed"),
    ],
)
def test_bad_documents_raise_layout_error(document, fragment):
    with pytest.raises(LayoutError) as excinfo:
        Layout.from_json(document)
    assert fragment in str(excinfo.value)


def test_layout_error_is_a_value_error():
    with pytest.raises(ValueError):
        Layout.from_json("")
