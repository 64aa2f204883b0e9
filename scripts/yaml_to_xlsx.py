#!/usr/bin/env python3
"""
YAML to Excel Converter
Converts cable schedule YAML to a formatted Excel workbook.

Sheets:
- Cable Schedule (one row per feeder with sizing results)
- Paths (one row per load-to-transformer path)
- Path Segments (per-segment voltage drop breakdown)
- Issues (structural, path and sizing issues)

Usage:
    python yaml_to_xlsx.py \
        --input electrical/cable-schedule.yaml \
        --output electrical/cable-schedule.xlsx
"""

import argparse
import sys
from pathlib import Path

import yaml

try:
    from openpyxl import Workbook
    from openpyxl.styles import (
        Font, Alignment, Border, Side, PatternFill, NamedStyle
    )
    from openpyxl.utils import get_column_letter
except ImportError:
    print("Error: openpyxl is required. Install with: pip install openpyxl")
    sys.exit(1)


# =============================================================================
# COLUMN DEFINITIONS
# =============================================================================

CABLE_SCHEDULE_COLUMNS = [
    ("serial_no", "S.No", 6),
    ("cable_number", "Cable No", 12),
    ("description", "Description", 25),
    ("from_bus", "From Bus", 14),
    ("to_bus", "To Bus", 14),
    ("bus_level", "Level", 7),
    ("voltage_v", "Voltage (V)", 11),
    ("load_kw", "Load kW", 10),
    ("load_type", "Load Type", 11),
    ("length_m", "Length (m)", 11),
    ("core_config", "Cores", 7),
    ("installation_method", "Install", 9),
    ("protection_type", "Protection", 10),
    ("full_load_current_a", "FLC (A)", 9),
    ("derating_factor", "K", 7),
    ("derated_current_a", "Derated (A)", 11),
    ("number_of_runs", "Runs", 6),
    ("size_by_ampacity", "Size Amp", 9),
    ("size_by_voltage_drop", "Size VD", 9),
    ("size_by_short_circuit", "Size Isc", 9),
    ("selected_size_mm2", "Size (mm²)", 10),
    ("driving_constraint", "Driving", 13),
    ("installed_rating_a", "Installed (A)", 12),
    ("voltage_drop_pct", "VD (%)", 8),
    ("starting_voltage_drop_pct", "Start VD (%)", 11),
    ("designation", "Designation", 32),
    ("status", "Status", 10),
    ("warnings", "Warnings", 50),
]

PATH_COLUMNS = [
    ("path_id", "Path ID", 10),
    ("start_bus", "Start Bus", 14),
    ("start_description", "Description", 25),
    ("end_bus", "End Bus", 14),
    ("cables", "Cables", 30),
    ("total_length_m", "Length (m)", 11),
    ("total_voltage_v", "Voltage (V)", 11),
    ("cumulative_load_kw", "Load kW", 10),
    ("voltage_drop_v", "VD (V)", 9),
    ("voltage_drop_pct", "VD (%)", 8),
    ("status", "Status", 11),
    ("message", "Message", 60),
]

PATH_SEGMENT_COLUMNS = [
    ("path_id", "Path ID", 10),
    ("position", "Seq", 6),
    ("cable_number", "Cable No", 12),
    ("length_m", "Length (m)", 11),
    ("size_mm2", "Size (mm²)", 10),
    ("number_of_runs", "Runs", 6),
    ("resistance_ohm_km", "R (Ω/km)", 10),
    ("current_a", "Current (A)", 11),
    ("voltage_drop_v", "VD (V)", 9),
    ("voltage_drop_pct", "VD (%)", 8),
    ("sizing_status", "Status", 10),
]

# Engine drops are small; shown to six decimals
VOLTAGE_DROP_KEYS = ("voltage_drop_v", "voltage_drop_pct", "starting_voltage_drop_pct")

ISSUE_COLUMNS = [
    ("source", "Source", 12),
    ("message", "Issue", 100),
]

# Status values highlighted with the warning style
FLAGGED_VALUES = ("FAILED", "WARNING", "incomplete")


# =============================================================================
# STYLES
# =============================================================================

def create_styles(wb: Workbook) -> dict:
    """Create and register named styles."""
    styles = {}

    # Header style
    header = NamedStyle(name="header")
    header.font = Font(bold=True, color="FFFFFF", size=10)
    header.fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    header.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
    header.border = Border(
        bottom=Side(style="thin", color="000000")
    )
    wb.add_named_style(header)
    styles["header"] = header

    # Data style
    data = NamedStyle(name="data")
    data.font = Font(size=9)
    data.alignment = Alignment(vertical="center")
    wb.add_named_style(data)
    styles["data"] = data

    # Number style
    number = NamedStyle(name="number")
    number.font = Font(size=9)
    number.alignment = Alignment(horizontal="right", vertical="center")
    number.number_format = "#,##0.00"
    wb.add_named_style(number)
    styles["number"] = number

    # Integer style
    integer = NamedStyle(name="integer")
    integer.font = Font(size=9)
    integer.alignment = Alignment(horizontal="right", vertical="center")
    integer.number_format = "#,##0"
    wb.add_named_style(integer)
    styles["integer"] = integer

    # Subtotal style
    subtotal = NamedStyle(name="subtotal")
    subtotal.font = Font(bold=True, size=9)
    subtotal.fill = PatternFill(start_color="E2EFDA", end_color="E2EFDA", fill_type="solid")
    subtotal.alignment = Alignment(vertical="center")
    wb.add_named_style(subtotal)
    styles["subtotal"] = subtotal

    # Warning style (for non-compliant values)
    warning = NamedStyle(name="warning")
    warning.font = Font(size=9, color="C00000")
    warning.alignment = Alignment(vertical="center")
    warning.fill = PatternFill(start_color="FFCCCC", end_color="FFCCCC", fill_type="solid")
    wb.add_named_style(warning)
    styles["warning"] = warning

    return styles


# =============================================================================
# SHEET WRITERS
# =============================================================================

def write_generic_sheet(ws, data: list[dict], columns: list, styles: dict,
                        title: str = None, add_totals: list = None):
    """Generic sheet writer with column definitions."""
    ws.title = title[:31] if title else "Data"  # Excel max 31 chars

    start_row = 1

    # Write headers
    for col_idx, (key, header, width) in enumerate(columns, 1):
        cell = ws.cell(row=start_row, column=col_idx, value=header)
        cell.style = "header"
        ws.column_dimensions[get_column_letter(col_idx)].width = width

    # Write data
    for row_idx, item in enumerate(data, start_row + 1):
        for col_idx, (key, _, _) in enumerate(columns, 1):
            value = item.get(key, "")

            if key in ("status", "sizing_status") and value in FLAGGED_VALUES:
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                cell.style = "warning"
            elif isinstance(value, bool):
                cell = ws.cell(row=row_idx, column=col_idx, value="Yes" if value else "No")
                cell.style = "data"
            elif isinstance(value, (int, float)):
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                if isinstance(value, int):
                    cell.style = "integer"
                else:
                    cell.style = "number"
                if key in VOLTAGE_DROP_KEYS:
                    cell.number_format = "0.000000"
            elif isinstance(value, list):
                cell = ws.cell(row=row_idx, column=col_idx, value="; ".join(str(v) for v in value))
                cell.style = "data"
            else:
                cell = ws.cell(row=row_idx, column=col_idx, value=str(value) if value else "")
                cell.style = "data"

    # Add totals row if requested
    if add_totals and data:
        total_row = len(data) + start_row + 1
        ws.cell(row=total_row, column=1, value="TOTAL").style = "subtotal"
        for col_idx, (key, _, _) in enumerate(columns, 1):
            if key in add_totals:
                col_letter = get_column_letter(col_idx)
                cell = ws.cell(
                    row=total_row, column=col_idx,
                    value=f"=SUM({col_letter}{start_row+1}:{col_letter}{total_row-1})"
                )
                cell.style = "subtotal"
                cell.number_format = "#,##0.0"

    # Add autofilter
    if data:
        ws.auto_filter.ref = f"A{start_row}:{get_column_letter(len(columns))}{len(data)+start_row}"

    # Freeze header row
    ws.freeze_panes = f"A{start_row + 1}"


def write_cable_schedule_sheet(ws, cables: list[dict], styles: dict):
    """Write the Cable Schedule sheet."""
    write_generic_sheet(
        ws, cables, CABLE_SCHEDULE_COLUMNS, styles,
        title="Cable Schedule",
        add_totals=["length_m", "load_kw"]
    )


def write_paths_sheet(ws, paths: list[dict], styles: dict):
    write_generic_sheet(ws, paths, PATH_COLUMNS, styles, title="Paths")


def write_path_segments_sheet(ws, segments: list[dict], styles: dict):
    write_generic_sheet(ws, segments, PATH_SEGMENT_COLUMNS, styles, title="Path Segments")


def write_issues_sheet(ws, issues: list[dict], styles: dict):
    """Write the Issues sheet (a single row when there are none)."""
    rows = issues or [{"source": "-", "message": "No issues found"}]
    write_generic_sheet(ws, rows, ISSUE_COLUMNS, styles, title="Issues")


# =============================================================================
# MAIN CONVERTER
# =============================================================================

def convert_schedule_to_xlsx(schedule: dict, output_path: Path) -> dict:
    """
    Write a cable schedule document to an Excel workbook.

    Args:
        schedule: Output of generate_cable_schedule()
        output_path: Path for output Excel file

    Returns:
        dict with exported row counts
    """
    cables = schedule.get("cable_schedule", [])
    paths = schedule.get("paths", [])
    segments = schedule.get("path_segments", [])
    issues = schedule.get("issues", [])

    wb = Workbook()
    styles = create_styles(wb)

    write_cable_schedule_sheet(wb.active, cables, styles)
    write_paths_sheet(wb.create_sheet(), paths, styles)
    write_path_segments_sheet(wb.create_sheet(), segments, styles)
    write_issues_sheet(wb.create_sheet(), issues, styles)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)

    return {
        "cables": len(cables),
        "paths": len(paths),
        "segments": len(segments),
        "issues": len(issues),
    }


def convert_yaml_to_xlsx(input_path: Path, output_path: Path) -> dict:
    """Convert a cable schedule YAML file to Excel."""
    with open(input_path) as f:
        schedule = yaml.safe_load(f) or {}
    return convert_schedule_to_xlsx(schedule, output_path)


def main():
    parser = argparse.ArgumentParser(
        description="Convert cable schedule YAML to Excel"
    )
    parser.add_argument(
        "--input", "-i",
        type=Path,
        required=True,
        help="Input YAML file"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        required=True,
        help="Output Excel file"
    )

    args = parser.parse_args()

    if not args.input.exists():
        print(f"Error: Input file not found: {args.input}")
        sys.exit(1)

    print(f"Converting {args.input} to {args.output}...")

    counts = convert_yaml_to_xlsx(args.input, args.output)

    print(f"Done! Exported:")
    print(f"  - {counts['cables']} cables")
    print(f"  - {counts['paths']} paths")
    print(f"  - {counts['segments']} path segments")
    print(f"  - {counts['issues']} issues")


if __name__ == "__main__":
    main()
