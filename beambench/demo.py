from . import (
    ComponentType,
    IdSequence,
    Layout,
    PathConstraint,
    connect_components,
    create_component,
    move_component,
    summarize,
)


def build_demo_layout() -> Layout:
    """Laser -> two fold mirrors -> detector, with a 2-fold length constraint."""

    ids = IdSequence()
    detector = create_component(ComponentType.DETECTOR, (100.0, 200.0), ids, angle=180.0)
    m1 = create_component(ComponentType.MIRROR, (250.0, 100.0), ids, angle=45.0)
    m2 = create_component(ComponentType.MIRROR, (250.0, 200.0), ids, angle=135.0)
    constraint = PathConstraint(
        partner_id=detector.id,
        fold_count=2,
        target_path_length=400.0,
        mirror_ids=(m1.id, m2.id),
    )
    laser = create_component(
        ComponentType.SOURCE,
        (100.0, 100.0),
        ids,
        angle=0.0,
        is_fixed=True,
        path_constraints=(constraint,),
    )
    layout = Layout().with_components([laser, detector, m1, m2])
    for source_id, target_id in ((laser.id, m1.id), (m1.id, m2.id), (m2.id, detector.id)):
        outcome = connect_components(layout, source_id, target_id, ids)
        if not outcome.ok:
            raise RuntimeError(outcome.error)
        layout = outcome.layout
    return layout


def run():
    layout = build_demo_layout()
    summary = summarize(layout)
    print(f"Total path length: {summary.total_path_length:.1f}mm")

    detector = next(c for c in layout.component_list() if c.type is ComponentType.DETECTOR)
    outcome = move_component(layout, detector.id, (100.0, 225.0))
    print(f"Move detector down 25mm: ok={outcome.ok}")
    if outcome.ok:
        for component_id in outcome.changed_ids:
            component = outcome.layout.components[component_id]
            print(f"  {component.name}: {component.position} angle {component.angle:.1f}")
        print(f"New total path length: {outcome.layout.beam_path.total_path_length():.1f}mm")
    else:
        print(f"  rejected: {outcome.error}")


if __name__ == "__main__":
    run()
