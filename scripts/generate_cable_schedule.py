#!/usr/bin/env python3
"""
Cable Schedule Generation Module
Size every feeder and trace every load back to its transformer.

Creates cable schedules with:
- Conductor size, core count and parallel runs per feeder
- Running voltage drop per feeder and cumulative drop per path
- Bus hierarchy level of each feeder
- Structural and sizing issues for review

Usage:
    python generate_cable_schedule.py \
        --input electrical/feeder-list.xlsx \
        --output electrical/cable-schedule.yaml \
        --xlsx electrical/cable-schedule.xlsx

Standards: IEC 60364-5-52, IEC 60287
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import yaml

from bus_topology import build_bus_graph, get_bus_levels, validate_bus_structure
from cable_catalog import CableCatalog, get_cable_catalog, load_cable_catalog
from cable_sizing import STATUS_APPROVED, STATUS_FAILED, STATUS_WARNING, size_feeders
from feeder_records import load_feeder_records
from path_discovery import CUMULATIVE_LOAD_POLICIES, analyze_paths

logger = logging.getLogger(__name__)


def generate_cable_entry(record, result, level: Optional[int] = None) -> dict:
    """
    Cable schedule row for one sized feeder.

    Args:
        record: FeederRecord (annotated by sizing)
        result: SizingResult for the record
        level: Bus hierarchy level of the feeder's load bus

    Returns:
        dict with cable schedule entry
    """
    return {
        "serial_no": record.serial_no,
        "cable_number": record.cable_number,
        "description": record.description,
        "from_bus": record.from_bus,
        "to_bus": record.to_bus,
        "bus_level": level,
        "voltage_v": record.voltage,
        "load_kw": record.load_kw,
        "load_type": record.load_type,
        "power_factor": record.power_factor,
        "efficiency": record.efficiency,
        "length_m": record.length_m,
        "core_config": result.core_config,
        "installation_method": record.installation_method,
        "ambient_temp_c": result.ambient_temp_c,
        "protection_type": record.protection_type,
        "full_load_current_a": round(result.full_load_current_a, 2),
        "derating_factor": round(result.derating_factor, 3),
        "derated_current_a": round(result.derated_current_a, 2),
        "number_of_runs": result.number_of_runs,
        "current_per_run_a": round(result.current_per_run_a, 2),
        "size_by_ampacity": result.size_by_ampacity,
        "size_by_voltage_drop": result.size_by_voltage_drop,
        "size_by_short_circuit": result.size_by_short_circuit,
        "selected_size_mm2": result.selected_size_mm2,
        "driving_constraint": result.driving_constraint,
        "catalog_rating_a": result.catalog_rating_a,
        "installed_rating_a": round(result.installed_rating_a, 1),
        "voltage_drop_v": round(result.voltage_drop_v, 6),
        "voltage_drop_pct": round(result.voltage_drop_pct, 6),
        "starting_voltage_drop_pct": (
            round(result.starting_voltage_drop_pct, 6)
            if result.starting_voltage_drop_pct is not None else None
        ),
        "designation": result.designation,
        "status": result.status,
        "warnings": list(result.warnings),
        "remarks": record.remarks,
    }


def _add_issue(issues: list, source: str, message: str):
    if not any(i["message"] == message for i in issues):
        issues.append({"source": source, "message": message})


def generate_cable_schedule(
    records: list,
    catalog: Optional[CableCatalog] = None,
    cumulative_load: str = "segment_sum",
    input_issues: Optional[list] = None
) -> dict:
    """
    Generate the cable schedule and path analysis for a feeder list.

    Sizing annotates each record in place (derating_factor,
    number_of_runs, selected_size, status).

    Args:
        records: FeederRecords
        catalog: Reference catalog (default catalog if None)
        cumulative_load: Cumulative load policy for paths
        input_issues: Issues raised while reading the feeder list

    Returns:
        dict with cable schedule
    """
    catalog = catalog or get_cable_catalog()
    issues = []
    for message in input_issues or []:
        _add_issue(issues, "input", message)

    structure = validate_bus_structure(records)
    for message in structure["issues"]:
        _add_issue(issues, "structure", message)

    graph = build_bus_graph(records)
    for message in graph.issues:
        _add_issue(issues, "structure", message)
    levels = get_bus_levels(graph)

    results = size_feeders(records, catalog)
    cables = []
    for record, result in zip(records, results):
        cables.append(generate_cable_entry(record, result, levels.get(record.from_key)))
        for warning in result.warnings:
            _add_issue(issues, "sizing", f"{record.cable_number}: {warning}")

    analysis = analyze_paths(records, catalog, cumulative_load)
    for message in analysis["issues"]:
        _add_issue(issues, "paths", message)

    paths = [p.to_dict() for p in analysis["paths"]]
    path_segments = []
    for path in paths:
        for position, drop in enumerate(path["segment_drops"], 1):
            path_segments.append({"path_id": path["path_id"], "position": position, **drop})

    # Summarize by designation for procurement
    size_summary = {}
    for cable in cables:
        if cable["status"] == STATUS_FAILED or not cable["designation"]:
            continue
        size = cable["designation"]
        if size not in size_summary:
            size_summary[size] = {"count": 0, "total_length_m": 0}
        size_summary[size]["count"] += 1
        size_summary[size]["total_length_m"] += cable["length_m"] * cable["number_of_runs"]

    status_counts = {
        status: sum(1 for c in cables if c["status"] == status)
        for status in (STATUS_APPROVED, STATUS_WARNING, STATUS_FAILED)
    }

    logger.debug("Schedule: %d cables, %d paths, %d issues", len(cables), len(paths), len(issues))

    return {
        "summary": {
            "total_cables": len(cables),
            "total_length_m": sum(c["length_m"] for c in cables),
            "status_counts": status_counts,
            "structure_valid": structure["valid"],
            "total_paths": analysis["total_paths"],
            "valid_paths": analysis["valid_paths"],
            "invalid_paths": analysis["invalid_paths"],
            "average_voltage_drop_pct": round(analysis["average_voltage_drop_pct"], 6),
            "critical_paths": [p.path_id for p in analysis["critical_paths"]],
        },
        "cable_schedule": cables,
        "paths": paths,
        "path_segments": path_segments,
        "size_summary": size_summary,
        "issues": issues,
        "generation_basis": {
            "catalog": catalog.source,
            "cumulative_load": cumulative_load,
            "running_vd_limit_pct": catalog.running_vd_limit_pct,
            "path_critical_vd_pct": catalog.path_critical_vd_pct,
        },
    }


def export_cable_schedule_summary(schedule: dict) -> str:
    """
    Export cable schedule as text summary for quick review.

    Args:
        schedule: Cable schedule dict

    Returns:
        Formatted text summary
    """
    s = schedule["summary"]
    counts = s["status_counts"]
    lines = []
    lines.append("=" * 80)
    lines.append("CABLE SCHEDULE SUMMARY")
    lines.append("=" * 80)
    lines.append(f"Total Cables: {s['total_cables']}")
    lines.append(f"Total Length: {s['total_length_m']:g} m")
    lines.append(
        f"Status: {counts[STATUS_APPROVED]} approved, {counts[STATUS_WARNING]} warning, "
        f"{counts[STATUS_FAILED]} failed"
    )
    lines.append(
        f"Paths: {s['total_paths']} ({s['valid_paths']} complete, {s['invalid_paths']} incomplete), "
        f"average V-drop {s['average_voltage_drop_pct']:.4f}%"
    )
    if s["critical_paths"]:
        lines.append(f"Critical paths (>3%): {', '.join(s['critical_paths'])}")
    lines.append("")

    lines.append("SIZE SUMMARY (for procurement):")
    lines.append("-" * 40)
    for size, data in sorted(schedule.get("size_summary", {}).items()):
        lines.append(f"  {size}: {data['count']} cables, {data['total_length_m']:g} m")

    if schedule.get("issues"):
        lines.append("")
        lines.append("ISSUES:")
        for issue in schedule["issues"]:
            lines.append(f"  * [{issue['source']}] {issue['message']}")

    return "\n".join(lines)


def write_schedule_yaml(schedule: dict, output_path: Path):
    """Write the schedule document as YAML."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        yaml.dump(schedule, f, default_flow_style=False, sort_keys=False, allow_unicode=True)


def main():
    parser = argparse.ArgumentParser(
        description="Generate a sized cable schedule and path analysis from a feeder list"
    )
    parser.add_argument(
        "--input", "-i",
        type=Path,
        required=True,
        help="Feeder list (.xlsx, .yaml or .csv)"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        required=True,
        help="Output YAML file"
    )
    parser.add_argument(
        "--xlsx",
        type=Path,
        help="Also write an Excel workbook"
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        help="Cable catalog YAML (default catalogs/cable_catalog.yaml)"
    )
    parser.add_argument(
        "--sheet",
        help="Worksheet to read from an Excel feeder list"
    )
    parser.add_argument(
        "--cumulative-load",
        choices=CUMULATIVE_LOAD_POLICIES,
        default="segment_sum",
        help="How path cumulative load is computed"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging"
    )

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )

    if not args.input.exists():
        print(f"Error: Input file not found: {args.input}")
        sys.exit(1)

    try:
        catalog = load_cable_catalog(args.catalog) if args.catalog else get_cable_catalog()
        records, input_issues = load_feeder_records(args.input, sheet=args.sheet)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Sizing {len(records)} feeders from {args.input}...")
    schedule = generate_cable_schedule(
        records, catalog, cumulative_load=args.cumulative_load, input_issues=input_issues
    )

    write_schedule_yaml(schedule, args.output)
    print(f"Wrote {args.output}")

    if args.xlsx:
        from yaml_to_xlsx import convert_schedule_to_xlsx
        counts = convert_schedule_to_xlsx(schedule, args.xlsx)
        print(f"Wrote {args.xlsx} ({counts['cables']} cables, {counts['paths']} paths)")

    print()
    print(export_cable_schedule_summary(schedule))


if __name__ == "__main__":
    main()
