#!/usr/bin/env python3
"""Report boards, parts and layout warnings of a saved shelf document."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shelfcut import SimulatorConfig
from shelfcut.diagnostics import collect_layout_warnings, cut_lines
from shelfcut.errors import ShelfcutError
from shelfcut.naming import part_label
from shelfcut.persistence import read_document

logger = logging.getLogger("inspect_layout")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inspect a saved shelf layout: boards, parts and warnings"
    )
    parser.add_argument("document", help="Path to a saved layout (.json)")
    parser.add_argument(
        "--json-out", default=None, help="Also write the report as JSON to this path"
    )
    parser.add_argument(
        "--min-clearance-mm",
        type=float,
        default=SimulatorConfig.min_clearance_mm,
        help="Minimum gap between parts before a clearance warning",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logs"
    )
    return parser


def _build_report(document, config: SimulatorConfig) -> dict:
    forest = document.forest
    warnings = collect_layout_warnings(forest, config)
    boards = []
    for root in forest.roots():
        parts = forest.get_active_leaves(root.id)
        waste = [n for n in forest.iter_subtree(root.id) if n.is_waste]
        boards.append(
            {
                "id": root.id,
                "wood_name": root.wood_name,
                "original_dimensions": root.original_dimensions.to_dict(),
                "active_parts": [
                    {
                        "id": part.id,
                        "name": part.label,
                        "label": part_label(part.display_name),
                        "bounds": part.bounds.to_dict(),
                    }
                    for part in parts
                ],
                "waste_parts": [part.id for part in waste],
                "cut_count": len(cut_lines(forest, root.id)),
                "warnings": [w.rule_name for w in warnings if w.root_id == root.id],
            }
        )
    return {
        "boards": boards,
        "warnings": [
            {"rule": w.rule_name, "severity": w.severity, "message": w.message, "root_id": w.root_id}
            for w in warnings
        ],
    }


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = SimulatorConfig(min_clearance_mm=float(args.min_clearance_mm))
    try:
        document = read_document(Path(args.document))
    except ShelfcutError as exc:
        logger.error("Cannot inspect %s: %s", args.document, exc)
        return 1

    report = _build_report(document, config)
    for board in report["boards"]:
        dims = board["original_dimensions"]
        print(
            f"{board['wood_name']} ({dims['width']:g} x {dims['height']:g} x {dims['depth']:g} mm): "
            f"{len(board['active_parts'])} active, {len(board['waste_parts'])} waste, "
            f"{board['cut_count']} cuts"
        )
    for warning in report["warnings"]:
        print(f"  [{warning['severity']}] {warning['rule']}: {warning['message']}")
    print(f"Boards: {len(report['boards'])}  Warnings: {len(report['warnings'])}")

    if args.json_out:
        out = Path(args.json_out)
        out.parent.mkdir(parents=True, exist_ok=True)
        with out.open("w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)
        logger.info("Report written to %s", out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
