#!/usr/bin/env python3
"""
Path Discovery Module
Trace every terminal load back to its supplying transformer.

Implements path discovery for a flat feeder list:
- Terminal (leaf) bus identification
- Parallel cable collapsing (runs sharing a from_bus become one segment)
- Bounded backward trace from each leaf to the source bus
- Per-path length, load and cumulative voltage drop
- Batch analysis with engine-sized segment drops

A path that cannot reach a transformer (dead end, loop) is still
returned, marked incomplete with the reason.

Standards: IEC 60364-5-52 (voltage drop)
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

from bus_topology import is_root_bus
from cable_catalog import CableCatalog, get_cable_catalog
from cable_sizing import size_feeder
from voltage_drop import calc_path_voltage_drop

logger = logging.getLogger(__name__)

MAX_TRACE_ITERATIONS = 100
DEFAULT_SEGMENT_RESISTANCE_OHM_KM = 0.1
DEFAULT_PATH_VOLTAGE = 415.0

PATH_COMPLETE = "complete"
PATH_INCOMPLETE = "incomplete"

CUMULATIVE_LOAD_POLICIES = ("segment_sum", "leaf", "downstream")


@dataclass
class CablePath:
    """Ordered segments from a terminal load (first) to its source (last)."""
    path_id: str
    start_bus: str
    end_bus: str
    segments: list = field(default_factory=list)
    start_description: str = ""
    total_length_m: float = 0.0
    total_voltage: float = DEFAULT_PATH_VOLTAGE
    cumulative_load_kw: float = 0.0
    voltage_drop_v: float = 0.0
    voltage_drop_pct: float = 0.0
    segment_drops: list = field(default_factory=list)
    status: str = PATH_COMPLETE
    message: str = ""
    trace_message: str = ""

    @property
    def is_valid(self) -> bool:
        return self.status == PATH_COMPLETE

    @property
    def cable_numbers(self) -> list[str]:
        return [seg.cable_number for seg in self.segments]

    def to_dict(self) -> dict:
        return {
            "path_id": self.path_id,
            "start_bus": self.start_bus,
            "start_description": self.start_description,
            "end_bus": self.end_bus,
            "cables": self.cable_numbers,
            "total_length_m": round(self.total_length_m, 2),
            "total_voltage_v": self.total_voltage,
            "cumulative_load_kw": round(self.cumulative_load_kw, 2),
            "voltage_drop_v": round(self.voltage_drop_v, 6),
            "voltage_drop_pct": round(self.voltage_drop_pct, 6),
            "status": self.status,
            "is_valid": self.is_valid,
            "message": self.message,
            "trace": self.trace_message,
            "segment_drops": self.segment_drops,
        }


def identify_terminal_buses(records: list) -> list[str]:
    """
    Buses that feed something but are fed by nothing.

    Returns:
        Normalized bus names in first-appearance order
    """
    to_buses = {r.to_key for r in records}
    terminals = []
    for record in records:
        key = record.from_key
        if key and key not in to_buses and key not in terminals:
            terminals.append(key)
    return terminals


def collapse_parallel_feeders(records: list) -> list:
    """
    Merge records that share a from_bus into one logical record.

    The merged record carries the summed load, the longest length, the
    number of merged cables and their ids. Inputs are not modified.

    Args:
        records: FeederRecords

    Returns:
        Logical records in first-appearance order
    """
    groups = {}
    for record in records:
        key = record.from_key
        if key not in groups:
            groups[key] = record.copy(parallel_count=1, original_cables=[record.cable_number])
            continue
        merged = groups[key]
        merged.parallel_count += 1
        merged.original_cables.append(record.cable_number)
        merged.load_kw = (merged.load_kw or 0) + (record.load_kw or 0)
        merged.length_m = max(merged.length_m or 0, record.length_m or 0)
    return list(groups.values())


def build_from_bus_index(records: list) -> dict:
    """from_bus -> logical (collapsed) record."""
    return {record.from_key: record for record in collapse_parallel_feeders(records)}


def trace_to_root(start, records: list, index: Optional[dict] = None) -> tuple[list, str, str]:
    """
    Follow parent feeders from a starting record up to a transformer bus.

    Stops when the current to_bus is a transformer (complete), when no
    feeder leaves the current to_bus (dead end), when a bus repeats
    (loop), or after MAX_TRACE_ITERATIONS steps.

    Args:
        start: Starting (leaf) record
        records: All feeder records
        index: Prebuilt from_bus index (built from records if None)

    Returns:
        (segments, status, message)
    """
    if index is None:
        index = build_from_bus_index(records)

    segments = [start]
    current = start
    visited = {start.from_key}

    for _ in range(MAX_TRACE_ITERATIONS):
        next_bus = current.to_key

        if is_root_bus(next_bus):
            return segments, PATH_COMPLETE, f"Transformer reached at {next_bus}"

        if next_bus in visited:
            logger.debug("Trace from %s loops at %s", start.from_key, next_bus)
            return segments, PATH_INCOMPLETE, f"Cycle detected at bus {next_bus}"
        visited.add(next_bus)

        parent = index.get(next_bus)
        if parent is None:
            return segments, PATH_INCOMPLETE, f"Dead end at {next_bus} (no feeder upstream, treated as root)"

        segments.append(parent)
        current = parent

    return segments, PATH_INCOMPLETE, f"Trace stopped after {MAX_TRACE_ITERATIONS} steps (possible cycle)"


def calc_segment_voltage_drop(record, resistance_ohm_km: Optional[float] = None) -> dict:
    """
    Estimated drop across one segment before the cable is sized.

    I = P × 1000 / (√3 × V × PF × η)
    Vd = √3 × I × R × L / 1000

    Uses the record's resistance, else 0.1 Ω/km.
    """
    r = resistance_ohm_km or record.resistance_ohm_km or DEFAULT_SEGMENT_RESISTANCE_OHM_KM
    voltage = record.voltage or DEFAULT_PATH_VOLTAGE
    denominator = math.sqrt(3) * voltage * (record.power_factor or 0.85) * (record.efficiency or 0.95)
    current = (record.load_kw or 0) * 1000 / denominator
    drop = math.sqrt(3) * current * r * (record.length_m or 0) / 1000
    pct = drop / voltage * 100

    return {
        "cable_number": record.cable_number,
        "length_m": record.length_m,
        "resistance_ohm_km": r,
        "current_a": round(current, 2),
        "voltage_drop_v": round(drop, 3),
        "voltage_drop_pct": round(pct, 3),
        "formula": (
            f"Vdrop = (√3 × {current:.2f}A × {r:.3f}Ω/km × {record.length_m:g}m) / 1000 "
            f"= {drop:.3f}V ({pct:.2f}%)"
        ),
    }


def _apply_drop(path: CablePath, limit_pct: float):
    drop = calc_path_voltage_drop(
        [d["voltage_drop_v"] for d in path.segment_drops], path.total_voltage, limit_pct
    )
    path.voltage_drop_v = drop["voltage_drop_v"]
    path.voltage_drop_pct = drop["voltage_drop_pct"]
    path.message = drop["message"]
    if not path.is_valid:
        path.message = f"Incomplete path: {path.trace_message}. {path.message}"


def _apply_cumulative_load(paths: list, policy: str):
    if policy == "segment_sum":
        for path in paths:
            path.cumulative_load_kw = sum(seg.load_kw or 0 for seg in path.segments)
    elif policy == "leaf":
        for path in paths:
            path.cumulative_load_kw = path.segments[0].load_kw or 0
    else:
        carried = {}
        for path in paths:
            top = path.segments[-1].from_key
            carried[top] = carried.get(top, 0) + (path.segments[0].load_kw or 0)
        for path in paths:
            path.cumulative_load_kw = carried[path.segments[-1].from_key]


def discover_cable_paths(
    records: list,
    cumulative_load: str = "segment_sum",
    limit_pct: float = 5.0
) -> tuple[list[CablePath], list[str]]:
    """
    Discover one path per terminal bus.

    Args:
        records: FeederRecords
        cumulative_load: segment_sum (sum of each segment's declared load),
            leaf (leaf load only) or downstream (all leaf loads routed
            through the path's top segment)
        limit_pct: Path voltage drop limit for the status message

    Returns:
        (paths, issues)
    """
    if cumulative_load not in CUMULATIVE_LOAD_POLICIES:
        raise ValueError(
            f"Unknown cumulative load policy: {cumulative_load} "
            f"(expected one of {', '.join(CUMULATIVE_LOAD_POLICIES)})"
        )

    records = [r for r in records if r.from_key and r.to_key and r.from_key != r.to_key]
    index = build_from_bus_index(records)
    issues = []
    paths = []

    for bus in identify_terminal_buses(records):
        start = index[bus]
        segments, status, trace_message = trace_to_root(start, records, index)

        path = CablePath(
            path_id=f"PATH-{len(paths) + 1:03d}",
            start_bus=start.from_bus,
            start_description=start.description,
            end_bus=segments[-1].to_bus,
            segments=segments,
            total_length_m=sum(seg.length_m or 0 for seg in segments),
            total_voltage=start.voltage or DEFAULT_PATH_VOLTAGE,
            segment_drops=[calc_segment_voltage_drop(seg) for seg in segments],
            status=status,
            trace_message=trace_message,
        )
        _apply_drop(path, limit_pct)
        if not path.is_valid:
            issues.append(f"{path.path_id} ({path.start_bus}): {trace_message}")
        paths.append(path)

    _apply_cumulative_load(paths, cumulative_load)

    if not paths and records:
        issues.append(
            f"No paths discovered from {len(records)} feeders - "
            "check that every load feeds a panel and panels lead to a transformer"
        )

    logger.debug("Discovered %d paths from %d feeders", len(paths), len(records))
    return paths, issues


def analyze_paths(
    records: list,
    catalog: Optional[CableCatalog] = None,
    cumulative_load: str = "segment_sum"
) -> dict:
    """
    Discover paths and re-evaluate their drops with sized cables.

    Every segment is sized with the cable sizing engine; segment drops
    are replaced by the drop of the selected cable and runs.

    Args:
        records: FeederRecords
        catalog: Reference catalog
        cumulative_load: Cumulative load policy

    Returns:
        dict with path summary
    """
    catalog = catalog or get_cable_catalog()
    paths, issues = discover_cable_paths(records, cumulative_load, catalog.running_vd_limit_pct)

    sized = {}
    for path in paths:
        drops = []
        for seg in path.segments:
            if seg.cable_number not in sized:
                sized[seg.cable_number] = size_feeder(seg, catalog)
            result = sized[seg.cable_number]
            drops.append({
                "cable_number": seg.cable_number,
                "length_m": seg.length_m,
                "resistance_ohm_km": result.resistance_ohm_km,
                "current_a": round(result.full_load_current_a, 2),
                "current_per_run_a": round(result.current_per_run_a, 2),
                "voltage_drop_v": round(result.voltage_drop_v, 6),
                "voltage_drop_pct": round(result.voltage_drop_pct, 6),
                "size_mm2": result.selected_size_mm2,
                "number_of_runs": result.number_of_runs,
                "sizing_status": result.status,
            })
        path.segment_drops = drops
        _apply_drop(path, catalog.running_vd_limit_pct)

    critical = [p for p in paths if p.voltage_drop_pct > catalog.path_critical_vd_pct]
    valid = [p for p in paths if p.is_valid]

    return {
        "total_paths": len(paths),
        "valid_paths": len(valid),
        "invalid_paths": len(paths) - len(valid),
        "average_voltage_drop_pct": (
            sum(p.voltage_drop_pct for p in paths) / len(paths) if paths else 0.0
        ),
        "critical_paths": critical,
        "paths": paths,
        "issues": issues,
    }


if __name__ == "__main__":
    from feeder_records import FeederRecord

    print("Testing path_discovery module...")
    print("=" * 60)

    records = [
        FeederRecord("C1", "MOTOR-1", "MCC-1", load_kw=30, length_m=40),
        FeederRecord("C2A", "MOTOR-2", "MCC-1", load_kw=10, length_m=55),
        FeederRecord("C2B", "MOTOR-2", "MCC-1", load_kw=10, length_m=60),
        FeederRecord("C3", "MCC-1", "TRF-MAIN", load_kw=50, length_m=20, load_type="Feeder"),
        FeederRecord("C4", "HEATER-1", "DB-9", load_kw=5, length_m=15, load_type="Heater"),
    ]

    paths, issues = discover_cable_paths(records)
    for path in paths:
        print(f"\n{path.path_id}: {path.start_bus} -> {path.end_bus} [{path.status}]")
        print(f"   Cables: {', '.join(path.cable_numbers)}")
        print(f"   Length: {path.total_length_m:.0f}m, load {path.cumulative_load_kw:.0f}kW")
        print(f"   {path.message}")
    for issue in issues:
        print(f"   Issue: {issue}")

    summary = analyze_paths(records)
    print(f"\nSized analysis: {summary['valid_paths']}/{summary['total_paths']} complete, "
          f"average drop {summary['average_voltage_drop_pct']:.4f}%")

    print("\n" + "=" * 60)
    print("All tests completed!")
