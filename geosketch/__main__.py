import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from geosketch import (
    ConsistencyWarning,
    ElementGraph,
    check_consistency,
    endpoint_from_intersection,
)

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def _run_repair(args: argparse.Namespace) -> int:
    path = Path(args.snapshot)
    logger.info("Loading snapshot from %s", path)
    with open(path, encoding="utf-8") as fin:
        snapshot = json.load(fin)

    graph = ElementGraph()
    report = graph.load_layers(snapshot)
    warnings: List[ConsistencyWarning] = check_consistency(graph)

    print("Loaded:")
    for key, count in report.loaded.items():
        print(f"  {key}: {count}")
    print("Skipped:")
    if report.skipped:
        for message in report.skipped:
            print(f"  - {message}")
    else:
        print("  (none)")
    print(f"Migrated points: {len(report.migrated_points)}")
    print(f"Repaired lines: {len(report.repaired_lines)}")
    print(f"Unlinked notes: {len(report.unlinked_notes)}")
    print("Warnings:")
    if warnings:
        for warning in warnings:
            print(f"  - {warning}")
    else:
        print("  (none)")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Writing repaired snapshot to %s", output_path)
        output_path.write_text(json.dumps(graph.export_layers(), indent=2), encoding="utf-8")
        print(f"Repaired snapshot written to {output_path}")
    return 1 if warnings else 0


def _run_endpoint(args: argparse.Namespace) -> int:
    end = endpoint_from_intersection(
        args.start_lat,
        args.start_lon,
        args.inter_lat,
        args.inter_lon,
        args.distance_km,
    )
    print(f"{end.lat:.7f} {end.lon:.7f}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Inspect and repair map element snapshots")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    repair = subparsers.add_parser("repair", help="Load a snapshot and rebuild its references")
    repair.add_argument("snapshot", help="Path to the JSON snapshot")
    repair.add_argument("-o", "--output", help="Write the repaired snapshot to this path")
    repair.set_defaults(handler=_run_repair)

    endpoint = subparsers.add_parser(
        "endpoint", help="Solve the endpoint of an intersection-mode line"
    )
    endpoint.add_argument("start_lat", type=float)
    endpoint.add_argument("start_lon", type=float)
    endpoint.add_argument("inter_lat", type=float)
    endpoint.add_argument("inter_lon", type=float)
    endpoint.add_argument("distance_km", type=float)
    endpoint.set_defaults(handler=_run_endpoint)

    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
