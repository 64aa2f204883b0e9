from bus_topology import (
    build_bus_graph,
    find_root_buses,
    get_bus_levels,
    is_root_bus,
    validate_bus_structure,
)
from feeder_records import FeederRecord


def radial_records():
    return [
        FeederRecord("C1", "MOTOR-1", "MCC-1", load_kw=30),
        FeederRecord("C2", "MOTOR-2", "mcc-1 ", load_kw=45),
        FeederRecord("C3", "MCC-1", "PMCC-1", load_kw=75),
        FeederRecord("C4", "PMCC-1", "TRF-MAIN", load_kw=75),
    ]


def test_is_root_bus():
    assert is_root_bus("TRF-MAIN")
    assert is_root_bus("trf1")
    assert is_root_bus("MAIN TRANSFORMER")
    assert not is_root_bus("MCC-1")
    assert not is_root_bus("")


def test_levels_follow_hierarchy():
    graph = build_bus_graph(radial_records())
    assert graph.roots == ["TRF-MAIN"]
    assert get_bus_levels(graph) == {
        "MCC-1": 2,
        "MOTOR-1": 3,
        "MOTOR-2": 3,
        "PMCC-1": 1,
        "TRF-MAIN": 0,
    }
    assert graph.disconnected == []
    assert graph.issues == []


def test_nodes_record_feeders_and_children():
    graph = build_bus_graph(radial_records())
    mcc = graph.get("mcc-1")
    assert mcc.children == ["MOTOR-1", "MOTOR-2"]
    assert [f.cable_number for f in mcc.feeders] == ["C3"]
    assert graph.get("TRF-MAIN").is_root


def test_top_level_bus_without_trf_name_is_root():
    graph = build_bus_graph([
        FeederRecord("C1", "M1", "DB-9"),
        FeederRecord("C2", "M2", "TRF-1"),
    ])
    assert sorted(find_root_buses(graph)) == ["DB-9", "TRF-1"]
    assert graph.get("M1").level == 1


def test_invalid_records_rejected():
    graph = build_bus_graph([
        FeederRecord("C1", "", "MCC-1"),
        FeederRecord("C2", "MCC-1", "mcc-1"),
        FeederRecord("C3", "MCC-1", "TRF"),
    ])
    assert set(graph.nodes) == {"MCC-1", "TRF"}
    assert len(graph.issues) == 2
    assert "C1" in graph.issues[0]
    assert "C2" in graph.issues[1]


def test_loop_without_source_is_disconnected():
    graph = build_bus_graph([
        FeederRecord("L1", "A", "B"),
        FeederRecord("L2", "B", "A"),
        FeederRecord("C1", "M1", "TRF"),
    ])
    assert sorted(graph.disconnected) == ["A", "B"]
    assert any("not connected to any source" in issue for issue in graph.issues)


def test_valid_structure():
    result = validate_bus_structure(radial_records())
    assert result == {"valid": True, "issues": []}


def test_cycle_reported_with_bus_sequence():
    result = validate_bus_structure([
        FeederRecord("L1", "A", "B"),
        FeederRecord("L2", "B", "C"),
        FeederRecord("L3", "C", "A"),
    ])
    assert result["valid"] is False
    assert "Circular bus reference: A -> B -> C -> A" in result["issues"]
    assert any("No transformer found" in issue for issue in result["issues"])


def test_missing_endpoint_and_isolated_bus():
    result = validate_bus_structure([
        FeederRecord("C1", "M1", "MCC-1"),
        FeederRecord("C2", "MCC-1", "TRF-MAIN"),
        FeederRecord("C9", "SPARE-1", ""),
    ])
    assert result["valid"] is False
    assert "Feeder C9: missing from_bus or to_bus" in result["issues"]
    assert "Isolated bus: SPARE-1 - not connected to any feeder" in result["issues"]


def test_self_loop_flagged():
    result = validate_bus_structure([
        FeederRecord("C1", "MCC-1", "MCC-1"),
        FeederRecord("C2", "MCC-1", "TRF"),
    ])
    assert result["issues"] == ["Feeder C1: bus MCC-1 feeds itself"]


def test_deep_radial_chain_validates():
    records = [FeederRecord(f"C{i}", f"B{i}", f"B{i + 1}") for i in range(1500)]
    records.append(FeederRecord("C1500", "B1500", "TRF-MAIN"))
    result = validate_bus_structure(records)
    assert result == {"valid": True, "issues": []}


def test_cycle_at_end_of_deep_chain():
    records = [FeederRecord(f"C{i}", f"B{i}", f"B{i + 1}") for i in range(1500)]
    records.append(FeederRecord("C1500", "B1500", "B0"))
    records.append(FeederRecord("C9", "M1", "TRF-MAIN"))
    result = validate_bus_structure(records)
    cycles = [i for i in result["issues"] if i.startswith("Circular bus reference")]
    assert len(cycles) == 1
    assert cycles[0].startswith("Circular bus reference: B0 -> B1 -> B2")
    assert cycles[0].endswith("B1499 -> B1500 -> B0")
