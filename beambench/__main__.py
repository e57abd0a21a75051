import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from beambench import (
    Layout,
    LayoutError,
    check_path_constraints,
    summarize,
    trace_beam_path,
)

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def _format_angle(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:.1f}°"


def _print_traces(layout: Layout, source_ids: List[str]) -> None:
    print("Beam traces:")
    if not source_ids:
        print("  (no sources)")
    for source_id in source_ids:
        source = layout.component(source_id)
        if source is None:
            logger.warning("Unknown source %s", source_id)
            continue
        paths = trace_beam_path(source, layout.beam_path, layout.components)
        if not paths:
            print(f"  {source.name}: (no beam)")
            continue
        for idx, path in enumerate(paths):
            terminal = layout.component(path.terminal_id) if path.terminal_id else None
            end_label = terminal.name if terminal is not None else "boundary"
            status = "ok" if path.is_valid else "MISALIGNED"
            print(f"  {source.name} path {idx} -> {end_label} [{status}]")
            for step in path.steps:
                segment = layout.beam_path.get_segment(step.segment_id)
                length = segment.path_length if segment is not None else 0.0
                print(
                    f"    {step.segment_id}: expected {_format_angle(step.expected_angle)}, "
                    f"actual {_format_angle(step.beam_angle)}, {length:.1f}mm"
                    + ("" if step.is_valid else "  <-- off axis")
                )


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Analyse an optical bench layout")
    parser.add_argument("path", help="Path to the layout JSON document")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--trace",
        action="append",
        metavar="SOURCE_ID",
        help="Only trace from the given source (repeatable; default: every source)",
    )
    parser.add_argument(
        "--summary-output-path",
        help="Write the optimizer summary as JSON to the given path",
    )
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)

    logger.info("Loading layout from %s", args.path)
    try:
        layout = Layout.load(args.path)
    except (OSError, LayoutError) as exc:
        logger.error("Cannot load layout: %s", exc)
        raise SystemExit(1)
    logger.info(
        "Loaded %d component(s) and %d segment(s)",
        len(layout.components),
        len(layout.beam_path),
    )

    print("Components:")
    for component in layout.component_list():
        x, y = component.position
        flags = []
        if component.is_fixed:
            flags.append("fixed")
        if component.is_angle_fixed:
            flags.append("angle-fixed")
        if component.allow_any_angle:
            flags.append("any-angle")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"  {component.name} ({component.type.value}) at ({x:.1f}, {y:.1f}) angle {component.angle:.1f}°{suffix}")

    source_ids = args.trace or [source.id for source in layout.sources()]
    _print_traces(layout, source_ids)

    summary = summarize(layout)
    print(f"Total path length: {summary.total_path_length:.1f}mm")
    counts = layout.beam_path.validation_summary()
    print(f"Segments: {counts.valid} valid, {counts.invalid} invalid")

    print("Constrained pairs:")
    pairs = layout.constrained_pairs()
    if not pairs:
        print("  (none)")
    drift = {(v.component_id, v.other_component_id) for v in check_path_constraints(layout)}
    for pair in pairs:
        realised = layout.beam_path.calculate_path_length_between(pair.owner_id, pair.partner_id)
        status = "violated" if (pair.owner_id, pair.partner_id) in drift else "ok"
        realised_label = "n/a" if realised is None else f"{realised:.1f}mm"
        print(
            f"  {pair.owner_id} -> {pair.partner_id}: {pair.constraint.fold_count} fold(s), "
            f"target {pair.constraint.target_path_length:.1f}mm, realised {realised_label} [{status}]"
        )

    print("Violations:")
    if summary.violations:
        for violation in summary.violations:
            print(f"  - {violation.message}")
    else:
        print("  (none)")

    if args.summary_output_path:
        output_path = Path(args.summary_output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Writing summary to %s", output_path)
        output_path.write_text(json.dumps(summary.to_dict(), indent=2), encoding="utf-8")
        print(f"Summary written to {output_path}")


if __name__ == "__main__":
    main(sys.argv[1:])
