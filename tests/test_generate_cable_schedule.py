import sys

import pytest
import yaml
from openpyxl import load_workbook

import generate_cable_schedule
from feeder_records import FeederRecord
from generate_cable_schedule import (
    export_cable_schedule_summary,
    generate_cable_schedule as build_schedule,
    write_schedule_yaml,
)
from yaml_to_xlsx import convert_schedule_to_xlsx, convert_yaml_to_xlsx


def feeder_list():
    return [
        FeederRecord("C1", "M1", "MCC-1", description="Pump 1", load_kw=30, length_m=40),
        FeederRecord("C2A", "M2", "MCC-1", description="Pump 2", load_kw=20, length_m=55),
        FeederRecord("C2B", "M2", "MCC-1", description="Pump 2", load_kw=20, length_m=60),
        FeederRecord("C3", "MCC-1", "TRF-MAIN", load_kw=90, length_m=20, load_type="Feeder"),
        FeederRecord("C4", "HEATER-1", "DB-9", load_kw=5, length_m=15, load_type="Heater"),
        FeederRecord("C5", "M9", "MCC-1", load_kw=10, length_m=10, core_config="5C"),
    ]


def test_schedule_contents(catalog):
    records = feeder_list()
    schedule = build_schedule(records, catalog)

    cables = schedule["cable_schedule"]
    assert [c["cable_number"] for c in cables] == ["C1", "C2A", "C2B", "C3", "C4", "C5"]
    assert cables[0]["bus_level"] == 2
    assert cables[3]["bus_level"] == 1
    assert cables[5]["status"] == "FAILED"
    assert cables[0]["ambient_temp_c"] == 40

    # Records are annotated in place
    assert records[0].status == cables[0]["status"]
    assert records[0].selected_size == cables[0]["designation"]

    summary = schedule["summary"]
    assert summary["total_cables"] == 6
    assert summary["status_counts"]["FAILED"] == 1
    assert summary["total_paths"] == 4
    assert summary["invalid_paths"] == 1
    assert summary["structure_valid"] is True

    assert [p["path_id"] for p in schedule["paths"]] == ["PATH-001", "PATH-002", "PATH-003", "PATH-004"]
    assert schedule["paths"][1]["cables"] == ["C2A", "C3"]
    assert len(schedule["path_segments"]) == 7

    sources = {issue["source"] for issue in schedule["issues"]}
    assert {"sizing", "paths"} <= sources
    assert any("C5: Error" in issue["message"] for issue in schedule["issues"])


def test_input_issues_carried(catalog):
    schedule = build_schedule(feeder_list()[:1], catalog, input_issues=["Row 4: no bus names, skipped"])
    assert schedule["issues"][0] == {"source": "input", "message": "Row 4: no bus names, skipped"}


def test_text_summary(catalog):
    text = export_cable_schedule_summary(build_schedule(feeder_list(), catalog))
    assert "CABLE SCHEDULE SUMMARY" in text
    assert "Total Cables: 6" in text
    assert "ISSUES:" in text


def test_yaml_and_excel_export(catalog, tmp_path):
    schedule = build_schedule(feeder_list(), catalog)
    yaml_path = tmp_path / "out" / "cable-schedule.yaml"
    write_schedule_yaml(schedule, yaml_path)

    with open(yaml_path) as f:
        loaded = yaml.safe_load(f)
    assert loaded["summary"]["total_cables"] == 6
    assert loaded["cable_schedule"][0]["cable_number"] == "C1"

    xlsx_path = tmp_path / "cable-schedule.xlsx"
    counts = convert_schedule_to_xlsx(schedule, xlsx_path)
    assert counts == {"cables": 6, "paths": 4, "segments": 7, "issues": len(schedule["issues"])}

    wb = load_workbook(xlsx_path)
    assert wb.sheetnames == ["Cable Schedule", "Paths", "Path Segments", "Issues"]
    ws = wb["Cable Schedule"]
    assert ws["B1"].value == "Cable No"
    assert ws["B2"].value == "C1"
    assert ws.cell(row=8, column=1).value == "TOTAL"

    again = tmp_path / "from-yaml.xlsx"
    assert convert_yaml_to_xlsx(yaml_path, again)["paths"] == 4


def test_issues_sheet_when_clean(tmp_path):
    path = tmp_path / "clean.xlsx"
    convert_schedule_to_xlsx({"cable_schedule": [], "paths": [], "issues": []}, path)
    ws = load_workbook(path)["Issues"]
    assert ws["B2"].value == "No issues found"


def test_cli(tmp_path, monkeypatch, capsys):
    feeders = tmp_path / "feeders.yaml"
    feeders.write_text(yaml.dump([
        {"Cable No": "C1", "From Bus": "M1", "To Bus": "MCC-1", "Load (kW)": 22, "Length (m)": 35},
        {"Cable No": "C2", "From Bus": "MCC-1", "To Bus": "TRF-1", "Load (kW)": 22, "Length (m)": 10},
    ]))
    output = tmp_path / "schedule.yaml"
    xlsx = tmp_path / "schedule.xlsx"
    monkeypatch.setattr(sys, "argv", [
        "generate-cable-schedule", "--input", str(feeders), "--output", str(output),
        "--xlsx", str(xlsx), "--cumulative-load", "downstream",
    ])

    generate_cable_schedule.main()

    assert output.exists()
    assert xlsx.exists()
    with open(output) as f:
        schedule = yaml.safe_load(f)
    assert schedule["generation_basis"]["cumulative_load"] == "downstream"
    assert schedule["paths"][0]["status"] == "complete"
    assert "CABLE SCHEDULE SUMMARY" in capsys.readouterr().out


def test_cli_missing_input(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", [
        "generate-cable-schedule", "--input", str(tmp_path / "nope.xlsx"),
        "--output", str(tmp_path / "out.yaml"),
    ])
    with pytest.raises(SystemExit) as exc:
        generate_cable_schedule.main()
    assert exc.value.code == 1
    assert "Error: Input file not found" in capsys.readouterr().out
