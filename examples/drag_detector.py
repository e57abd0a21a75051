"""Example pipeline: load a layout, drag its detector and report the fold mirrors."""

from pathlib import Path

from beambench import ComponentType, Layout, move_component, summarize

LAYOUT = Path(__file__).parent / "layouts" / "two_fold.json"


def main() -> None:
    layout = Layout.load(LAYOUT)
    detector = next(c for c in layout.component_list() if c.type is ComponentType.DETECTOR)
    for y in (225.0, 175.0, 400.0):
        outcome = move_component(layout, detector.id, (detector.position[0], y))
        print(f"Detector to y={y:.1f}: ok={outcome.ok}")
        if not outcome.ok:
            print(f"  {outcome.error_kind.value}: {outcome.error}")
            continue
        for component_id in outcome.changed_ids:
            component = outcome.layout.components[component_id]
            x, cy = component.position
            print(f"  {component.name}: ({x:.1f}, {cy:.1f}) angle {component.angle:.1f}°")
        summary = summarize(outcome.layout)
        print(f"  total path length: {summary.total_path_length:.1f}mm, violations: {len(summary.violations)}")


if __name__ == "__main__":
    main()
