from dataclasses import replace

import pytest

from cable_sizing import size_cable
from feeder_records import FeederRecord
from path_discovery import (
    MAX_TRACE_ITERATIONS,
    PATH_COMPLETE,
    PATH_INCOMPLETE,
    analyze_paths,
    build_from_bus_index,
    calc_segment_voltage_drop,
    collapse_parallel_feeders,
    discover_cable_paths,
    identify_terminal_buses,
    trace_to_root,
)


def parallel_example():
    return [
        FeederRecord("C1A", "A", "B", load_kw=10, length_m=50),
        FeederRecord("C1B", "a", "B", load_kw=10, length_m=60),
        FeederRecord("C2", "B", "TRF-MAIN", load_kw=20, length_m=20),
    ]


def mcc_example():
    return [
        FeederRecord("C1", "M1", "MCC", load_kw=30, length_m=40),
        FeederRecord("C2", "M2", "MCC", load_kw=45, length_m=50),
        FeederRecord("C3", "MCC", "TRF-1", load_kw=75, length_m=15, load_type="Feeder"),
    ]


def test_identify_terminal_buses():
    assert identify_terminal_buses(mcc_example()) == ["M1", "M2"]
    assert identify_terminal_buses(parallel_example()) == ["A"]


def test_collapse_parallel_feeders():
    records = parallel_example()
    logical = collapse_parallel_feeders(records)
    assert len(logical) == 2
    merged = logical[0]
    assert merged.parallel_count == 2
    assert merged.load_kw == 20
    assert merged.length_m == 60
    assert merged.original_cables == ["C1A", "C1B"]
    assert logical[1].parallel_count == 1
    assert logical[1].original_cables == ["C2"]


def test_collapse_does_not_mutate_inputs():
    records = parallel_example()
    collapse_parallel_feeders(records)
    assert [r.load_kw for r in records] == [10, 10, 20]
    assert all(r.parallel_count == 1 for r in records)
    assert all(r.original_cables == [] for r in records)


def test_parallel_runs_form_one_path():
    paths, issues = discover_cable_paths(parallel_example())
    assert issues == []
    assert len(paths) == 1
    path = paths[0]
    assert path.path_id == "PATH-001"
    assert path.status == PATH_COMPLETE
    assert path.is_valid
    assert path.end_bus == "TRF-MAIN"
    assert len(path.segments) == 2
    assert path.cable_numbers == ["C1A", "C2"]
    assert path.total_length_m == 60 + 20
    assert path.segments[0].parallel_count == 2


def test_path_segments_are_contiguous():
    paths, _ = discover_cable_paths(mcc_example())
    assert [p.path_id for p in paths] == ["PATH-001", "PATH-002"]
    for path in paths:
        for lower, upper in zip(path.segments, path.segments[1:]):
            assert lower.to_key == upper.from_key
        assert path.segments[-1].to_key == "TRF-1"


def test_path_drop_is_sum_of_segment_drops():
    paths, _ = discover_cable_paths(mcc_example())
    path = paths[0]
    total = sum(d["voltage_drop_v"] for d in path.segment_drops)
    assert path.voltage_drop_v == pytest.approx(total)
    assert path.voltage_drop_pct == pytest.approx(total / 415 * 100)
    assert path.message.startswith("V-drop:")


def test_segment_drop_uses_default_resistance():
    record = FeederRecord("C1", "M1", "MCC", load_kw=10, length_m=100, power_factor=1.0, efficiency=1.0)
    drop = calc_segment_voltage_drop(record)
    current = 10000 / (3 ** 0.5 * 415)
    assert drop["resistance_ohm_km"] == 0.1
    assert drop["current_a"] == pytest.approx(current, abs=0.01)
    assert drop["voltage_drop_v"] == pytest.approx(3 ** 0.5 * current * 0.1 * 100 / 1000, abs=0.001)

    record.resistance_ohm_km = 0.5
    assert calc_segment_voltage_drop(record)["resistance_ohm_km"] == 0.5


def test_cycle_gives_incomplete_path():
    records = [
        FeederRecord("C0", "X", "A"),
        FeederRecord("C1", "A", "B"),
        FeederRecord("C2", "B", "C"),
        FeederRecord("C3", "C", "A"),
    ]
    paths, issues = discover_cable_paths(records)
    assert len(paths) == 1
    path = paths[0]
    assert path.status == PATH_INCOMPLETE
    assert not path.is_valid
    assert path.cable_numbers == ["C0", "C1", "C2", "C3"]
    assert "Cycle detected at bus A" in path.message
    assert len(issues) == 1


def test_trace_from_inside_loop_lists_each_feeder_once():
    records = [
        FeederRecord("C1", "A", "B", length_m=10),
        FeederRecord("C2", "B", "C", length_m=10),
        FeederRecord("C3", "C", "A", length_m=10),
    ]
    index = build_from_bus_index(records)
    segments, status, message = trace_to_root(index["A"], records, index)
    assert [s.cable_number for s in segments] == ["C1", "C2", "C3"]
    assert status == PATH_INCOMPLETE
    assert message == "Cycle detected at bus A"


def test_pure_cycle_has_no_paths():
    records = [
        FeederRecord("C1", "A", "B"),
        FeederRecord("C2", "B", "A"),
    ]
    paths, issues = discover_cable_paths(records)
    assert paths == []
    assert issues[0].startswith("No paths discovered")


def test_dead_end_is_returned_incomplete():
    paths, issues = discover_cable_paths([FeederRecord("C1", "HEATER-1", "DB-9", load_kw=5)])
    path = paths[0]
    assert path.status == PATH_INCOMPLETE
    assert path.end_bus == "DB-9"
    assert "Dead end at DB-9" in path.trace_message
    assert issues == [f"PATH-001 (HEATER-1): {path.trace_message}"]


def test_trace_stops_at_iteration_ceiling():
    records = [FeederRecord(f"C{i}", f"B{i}", f"B{i + 1}") for i in range(150)]
    records.append(FeederRecord("C150", "B150", "TRF"))
    index = build_from_bus_index(records)
    segments, status, message = trace_to_root(index["B0"], records, index)
    assert status == PATH_INCOMPLETE
    assert len(segments) == MAX_TRACE_ITERATIONS + 1
    assert "after 100 steps" in message


def test_trace_builds_index_when_missing():
    records = mcc_example()
    segments, status, _ = trace_to_root(records[0], records)
    assert status == PATH_COMPLETE
    assert [s.cable_number for s in segments] == ["C1", "C3"]


def test_cumulative_load_policies():
    by_policy = {}
    for policy in ("segment_sum", "leaf", "downstream"):
        paths, _ = discover_cable_paths(mcc_example(), cumulative_load=policy)
        by_policy[policy] = [p.cumulative_load_kw for p in paths]
    assert by_policy["segment_sum"] == [105, 120]
    assert by_policy["leaf"] == [30, 45]
    assert by_policy["downstream"] == [75, 75]


def test_unknown_cumulative_load_policy():
    with pytest.raises(ValueError, match="Unknown cumulative load policy"):
        discover_cable_paths(mcc_example(), cumulative_load="peak")


def test_rejected_records_do_not_break_discovery():
    records = mcc_example() + [FeederRecord("C9", "", "MCC"), FeederRecord("C8", "X", "x")]
    paths, _ = discover_cable_paths(records)
    assert len(paths) == 2


def test_analyze_paths_uses_sized_cables(catalog):
    records = [
        FeederRecord("C1", "M1", "MCC", load_kw=75, power_factor=0.85, efficiency=0.90, length_m=95),
        FeederRecord("C2", "MCC", "TRF-1", load_kw=75, length_m=15, load_type="Feeder"),
    ]
    summary = analyze_paths(records, replace(catalog, path_critical_vd_pct=0.003))
    assert summary["total_paths"] == 1
    assert summary["valid_paths"] == 1
    assert summary["invalid_paths"] == 0

    path = summary["paths"][0]
    first = path.segment_drops[0]
    expected = size_cable(
        load_kw=75, voltage=415, power_factor=0.85, efficiency=0.90, length_m=95, catalog=catalog
    )
    assert first["size_mm2"] == 35
    assert first["voltage_drop_v"] == pytest.approx(expected.voltage_drop_v, abs=0.001)
    assert path.voltage_drop_v == pytest.approx(sum(d["voltage_drop_v"] for d in path.segment_drops))
    assert path.voltage_drop_pct == pytest.approx(0.00368, abs=1e-5)
    assert summary["critical_paths"] == [path]
    assert summary["average_voltage_drop_pct"] == pytest.approx(path.voltage_drop_pct)
    # Input records are left untouched
    assert records[0].status is None


def test_analyze_paths_empty(catalog):
    summary = analyze_paths([], catalog)
    assert summary["total_paths"] == 0
    assert summary["average_voltage_drop_pct"] == 0.0
    assert summary["critical_paths"] == []
