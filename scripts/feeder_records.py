#!/usr/bin/env python3
"""
Feeder Records Module
Canonical feeder (cable) record and the normalizer that produces it.

Maps arbitrarily-labelled feeder list columns onto one record schema:
- Prioritized synonym table with case-insensitive and substring fallback
- Numeric parsing of strings like "11 kV", "1,250", "415V"
- Unit normalization (kV -> V, kVA -> kW, percent PF/efficiency)
- Documented defaults for missing optional fields

Also reads raw feeder rows from .xlsx, .yaml/.yml and .csv files.

The topology, path and sizing modules only ever see FeederRecord values;
none of them looks at raw header names.
"""

import csv
import logging
import re
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from cable_catalog import normalize_core_config

logger = logging.getLogger(__name__)


# Defaults applied when a column is missing or blank
DEFAULT_VOLTAGE = 415.0
DEFAULT_POWER_FACTOR = 0.85
DEFAULT_EFFICIENCY = 0.95
DEFAULT_AMBIENT_C = 40.0
DEFAULT_CORE_CONFIG = "3C"
DEFAULT_INSTALLATION = "Air"
DEFAULT_PROTECTION = "MCCB"
DEFAULT_LOAD_TYPE = "Motor"

LOAD_TYPES = ["Motor", "Heater", "Transformer", "Feeder", "Pump", "Fan", "Compressor"]
PROTECTION_TYPES = ["ACB", "MCCB", "MCB", "None"]


@dataclass
class FeederRecord:
    """One physical or logical cable segment (load side -> source side)."""
    cable_number: str
    from_bus: str
    to_bus: str
    description: str = ""
    serial_no: int = 0
    voltage: float = DEFAULT_VOLTAGE
    load_kw: float = 0.0
    power_factor: float = DEFAULT_POWER_FACTOR
    efficiency: float = DEFAULT_EFFICIENCY
    phase: int = 3
    length_m: float = 0.0
    core_config: str = DEFAULT_CORE_CONFIG
    installation_method: str = DEFAULT_INSTALLATION
    protection_type: str = DEFAULT_PROTECTION
    load_type: str = DEFAULT_LOAD_TYPE
    conductor_material: str = "Cu"
    insulation: str = "XLPE"
    ambient_temp_c: float = DEFAULT_AMBIENT_C
    short_circuit_ka: Optional[float] = None
    clearing_time_s: Optional[float] = None
    starting_method: str = "DOL"
    starting_current_a: Optional[float] = None
    starting_pf: Optional[float] = None
    resistance_ohm_km: Optional[float] = None
    loaded_circuits: int = 1
    remarks: str = ""

    # Populated by later stages
    derating_factor: Optional[float] = None
    number_of_runs: Optional[int] = None
    selected_size: Optional[str] = None
    status: Optional[str] = None
    parallel_count: int = 1
    original_cables: list = field(default_factory=list)

    @property
    def from_key(self) -> str:
        return normalize_bus(self.from_bus)

    @property
    def to_key(self) -> str:
        return normalize_bus(self.to_bus)

    def copy(self, **changes) -> "FeederRecord":
        """Independent copy (lists are not shared)."""
        changes.setdefault("original_cables", list(self.original_cables))
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_bus(name: Any) -> str:
    """Bus identifiers compare case-insensitively with whitespace trimmed."""
    if name is None:
        return ""
    return str(name).strip().upper()


# =============================================================================
# COLUMN SYNONYMS
# =============================================================================

# Format: canonical_field -> [synonyms in priority order]
FIELD_SYNONYMS = {
    "serial_no": ["serial no", "sl no", "sl no.", "s.no", "sno", "serial", "index"],
    "cable_number": ["cable number", "cable no", "cable no.", "tag no", "tag no.", "cable #",
                     "cable tag", "cable", "feeder id", "feeder no", "id"],
    "description": ["feeder description", "description", "desc", "feeder name",
                    "equipment name", "name"],
    "from_bus": ["from bus", "from", "source", "equipment", "origin", "start"],
    "to_bus": ["to bus", "to", "destination", "panel", "target", "end"],
    "voltage": ["rated voltage (v)", "voltage (v)", "voltage", "rated voltage",
                "nominal voltage", "supply voltage", "v (v)", "kv", "v"],
    "load_kw": ["load (kw)", "load kw", "rated power (kw)", "power (kw)", "rated power",
                "load", "power", "kw"],
    "rated_kva": ["rated power (kva)", "load (kva)", "power kva", "kva"],
    "unit": ["unit (kw / kva)", "unit (kw/kva)", "power unit", "unit"],
    "phase": ["3phase / 1phase", "phase", "phases"],
    "power_factor": ["power factor", "pf", "cos φ", "cos phi", "cos"],
    "efficiency": ["efficiency (%)", "efficiency", "eff (%)", "eff"],
    "length_m": ["cable length for each run", "length (m)", "cable length", "route length",
                 "length", "distance", "l (m)"],
    "core_config": ["no. of cores", "number of cores", "core count", "cores", "core"],
    "installation_method": ["installation method", "installation", "cable installation", "method"],
    "protection_type": ["protection type", "breaker type", "protection", "breaker", "circuit breaker"],
    "short_circuit_ka": ["short circuit current of switchboard", "short circuit current (ka)",
                         "isc (ka)", "isc", "short circuit", "sc current"],
    "clearing_time_s": ["protection clearing time", "clearing time", "sc withstand duration",
                        "short circuit current withstand duration", "withstand duration"],
    "ambient_temp_c": ["ambient temp (°c)", "ambient temperature", "ambient temp", "ambient (°c)",
                       "temperature", "temp"],
    "load_type": ["load type", "type of feeder", "feeder type", "type"],
    "conductor_material": ["conductor material", "conductor", "material"],
    "insulation": ["insulation type", "insulation"],
    "starting_method": ["starting method", "starting", "starter type"],
    "starting_current_a": ["motor starting current", "starting current", "startup current"],
    "starting_pf": ["motor starting power factor", "motor starting pf", "starting pf",
                    "starting power factor"],
    "resistance_ohm_km": ["cable resistance", "resistance (ohm/km)", "resistance"],
    "loaded_circuits": ["grouped loaded circuits", "number of circuits", "grouped circuits",
                        "circuits"],
    "remarks": ["remarks", "notes", "comment"],
}

# Substring matching is only attempted for synonyms at least this long,
# otherwise "v" or "to" would match almost every header.
MIN_SUBSTRING_SYNONYM = 4


def detect_column_mappings(headers: list) -> dict:
    """
    Auto-detect column mappings from table headers.

    Pass 1 matches synonyms exactly (case-insensitive, trimmed) in priority
    order. Pass 2 lets still-unmapped fields claim a header that contains
    one of their longer synonyms. A header is claimed by at most one field.

    Args:
        headers: Raw header strings

    Returns:
        dict of canonical field -> original header
    """
    normalized = {}
    for header in headers:
        if header is None:
            continue
        key = str(header).strip().lower()
        if key and key not in normalized:
            normalized[key] = header

    mappings = {}
    claimed = set()

    # Canonical names pass through untouched
    for field_name in FIELD_SYNONYMS:
        if field_name in normalized:
            mappings[field_name] = normalized[field_name]
            claimed.add(field_name)

    for field_name, synonyms in FIELD_SYNONYMS.items():
        if field_name in mappings:
            continue
        for syn in synonyms:
            if syn in normalized and syn not in claimed:
                mappings[field_name] = normalized[syn]
                claimed.add(syn)
                break

    # Longest synonyms first across all fields, so "cable length" wins the
    # "Cable Length (m)" header before "cable" can claim it
    candidates = sorted(
        ((syn, field_name)
         for field_name, synonyms in FIELD_SYNONYMS.items()
         if field_name not in mappings
         for syn in synonyms if len(syn) >= MIN_SUBSTRING_SYNONYM),
        key=lambda item: len(item[0]), reverse=True
    )
    for syn, field_name in candidates:
        if field_name in mappings:
            continue
        match = next((k for k in normalized if syn in k and k not in claimed), None)
        if match is not None:
            mappings[field_name] = normalized[match]
            claimed.add(match)

    return mappings


# =============================================================================
# VALUE PARSING
# =============================================================================

_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")


def parse_number(value: Any, fallback: Optional[float] = 0.0) -> Optional[float]:
    """
    Parse a numeric cell.

    Plain numbers pass through; strings like "11 kV" or "37 kW" yield their
    first numeric token. Blank or unparseable values return the fallback.
    """
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return fallback
    try:
        return float(text.replace(",", ""))
    except ValueError:
        pass
    match = _NUMBER_RE.search(text)
    if match:
        return float(match.group(0).replace(",", "."))
    return fallback


def parse_voltage(value: Any) -> float:
    """
    Parse a voltage cell to volts.

    Values marked kV, or bare numbers below 100, are treated as kV.
    """
    voltage = parse_number(value, DEFAULT_VOLTAGE)
    if isinstance(value, str) and re.search(r"k\s?v", value, re.IGNORECASE):
        if 0 < voltage < 100000:
            voltage *= 1000
    elif 0 < voltage < 100:
        voltage *= 1000
    return voltage if voltage > 0 else DEFAULT_VOLTAGE


def parse_fraction(value: Any, fallback: float) -> float:
    """Power factor / efficiency; percentages (>1) are scaled to 0-1."""
    number = parse_number(value, fallback)
    if number is None or number <= 0:
        return fallback
    return number / 100 if number > 1 else number


def parse_phase(value: Any, voltage: float) -> int:
    """Phase count from "3Ø", "1Ph", 3 ...; defaults by voltage level."""
    if value not in (None, ""):
        text = str(value).lower()
        if "1" in text:
            return 1
        if "3" in text:
            return 3
    return 3 if voltage >= 400 else 1


def parse_installation(value: Any) -> str:
    """Map installation text onto Air / Trench / Duct."""
    text = str(value or "").strip().lower()
    if not text:
        return DEFAULT_INSTALLATION
    if "duct" in text or "conduit" in text:
        return "Duct"
    if "trench" in text or "buried" in text or "ground" in text:
        return "Trench"
    return "Air"


def parse_protection(value: Any) -> str:
    text = str(value or "").strip().upper()
    if not text:
        return DEFAULT_PROTECTION
    for name in ("MCCB", "ACB", "MCB"):
        if name in text:
            return name
    if text in ("NONE", "NA", "N/A", "-"):
        return "None"
    return text


def parse_load_type(value: Any) -> str:
    text = str(value or "").strip().lower()
    if not text:
        return DEFAULT_LOAD_TYPE
    for load_type in LOAD_TYPES:
        if load_type.lower() in text:
            return load_type
    if text in ("m",):
        return "Motor"
    if text in ("f",):
        return "Feeder"
    return DEFAULT_LOAD_TYPE


def _text(value: Any, fallback: str = "") -> str:
    if value is None:
        return fallback
    text = str(value).strip()
    return text if text else fallback


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize_feeder_row(row: dict, mappings: dict, index: int = 0) -> FeederRecord:
    """
    Build one FeederRecord from a raw row.

    Args:
        row: Raw row dict (header -> cell value)
        mappings: Output of detect_column_mappings()
        index: 1-based row position, used for default ids

    Returns:
        FeederRecord with defaults applied
    """
    def get(field_name: str) -> Any:
        header = mappings.get(field_name)
        if header is None:
            return None
        value = row.get(header)
        if isinstance(value, str) and not value.strip():
            return None
        return value

    voltage = parse_voltage(get("voltage"))
    phase = parse_phase(get("phase"), voltage)
    power_factor = parse_fraction(get("power_factor"), DEFAULT_POWER_FACTOR)
    efficiency = parse_fraction(get("efficiency"), DEFAULT_EFFICIENCY)

    unit = _text(get("unit")).lower()
    load_value = parse_number(get("load_kw"), None)
    kva_value = parse_number(get("rated_kva"), None)
    if load_value is not None and "kva" in unit:
        kva_value, load_value = load_value, None

    if load_value is not None and load_value > 0:
        load_kw = load_value
    elif kva_value is not None and kva_value > 0:
        load_kw = kva_value * power_factor * efficiency
    else:
        load_kw = 0.0

    loaded_circuits = parse_number(get("loaded_circuits"), 1) or 1

    return FeederRecord(
        cable_number=_text(get("cable_number"), f"C{index}"),
        from_bus=_text(get("from_bus")),
        to_bus=_text(get("to_bus")),
        description=_text(get("description")),
        serial_no=int(parse_number(get("serial_no"), index) or index),
        voltage=voltage,
        load_kw=load_kw,
        power_factor=power_factor,
        efficiency=efficiency,
        phase=phase,
        length_m=parse_number(get("length_m"), 0.0) or 0.0,
        core_config=normalize_core_config(get("core_config") or DEFAULT_CORE_CONFIG),
        installation_method=parse_installation(get("installation_method")),
        protection_type=parse_protection(get("protection_type")),
        load_type=parse_load_type(get("load_type")),
        conductor_material="Al" if _text(get("conductor_material")).lower().startswith("al") else "Cu",
        insulation="PVC" if _text(get("insulation")).upper() == "PVC" else "XLPE",
        ambient_temp_c=parse_number(get("ambient_temp_c"), DEFAULT_AMBIENT_C),
        short_circuit_ka=parse_number(get("short_circuit_ka"), None),
        clearing_time_s=parse_number(get("clearing_time_s"), None),
        starting_method=_text(get("starting_method"), "DOL"),
        starting_current_a=parse_number(get("starting_current_a"), None),
        starting_pf=parse_number(get("starting_pf"), None),
        resistance_ohm_km=parse_number(get("resistance_ohm_km"), None),
        loaded_circuits=int(loaded_circuits),
        remarks=_text(get("remarks")),
    )


def normalize_feeders(rows: list[dict]) -> tuple[list[FeederRecord], list[str]]:
    """
    Normalize raw feeder rows into FeederRecords.

    Blank rows are skipped. Rows whose endpoints are missing are kept so the
    topology stage can report them.

    Args:
        rows: Raw row dicts (header -> value)

    Returns:
        (records, issues) where issues lists skipped rows and unmapped
        required columns
    """
    issues = []
    if not rows:
        return [], issues

    headers = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)
    mappings = detect_column_mappings(headers)
    logger.debug("Column mappings: %s", mappings)

    for required in ("from_bus", "to_bus"):
        if required not in mappings:
            issues.append(f"No column found for {required}")

    records = []
    for index, row in enumerate(rows, 1):
        if not any(v not in (None, "") for v in row.values()):
            continue
        record = normalize_feeder_row(row, mappings, index)
        if not record.from_bus and not record.to_bus:
            issues.append(f"Row {index}: no bus names, skipped")
            continue
        records.append(record)

    return records, issues


# =============================================================================
# FILE INPUT
# =============================================================================

def read_feeder_rows(path: Path, sheet: Optional[str] = None) -> list[dict]:
    """
    Read raw feeder rows from a feeder list file.

    Supported: .xlsx (first row is the header), .yaml/.yml (a list of
    mappings, or a mapping with a "feeders" list), .csv.

    Args:
        path: Input file
        sheet: Worksheet name for .xlsx (default active sheet)

    Returns:
        List of row dicts
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Feeder list not found: {path}")

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        with open(path) as f:
            data = yaml.safe_load(f) or []
        if isinstance(data, dict):
            data = data.get("feeders", [])
        return [dict(row) for row in data if isinstance(row, dict)]

    if suffix == ".csv":
        with open(path, newline="", encoding="utf-8-sig") as f:
            return [dict(row) for row in csv.DictReader(f)]

    if suffix in (".xlsx", ".xlsm"):
        from openpyxl import load_workbook

        wb = load_workbook(path, read_only=True, data_only=True)
        try:
            ws = wb[sheet] if sheet else wb.active
            rows = ws.iter_rows(values_only=True)
            header = next(rows, None)
            if header is None:
                return []
            keys = [str(h).strip() if h is not None else f"column_{i}" for i, h in enumerate(header, 1)]
            return [dict(zip(keys, values)) for values in rows]
        finally:
            wb.close()

    raise ValueError(f"Unsupported feeder list format: {suffix}")


def load_feeder_records(path: Path, sheet: Optional[str] = None) -> tuple[list[FeederRecord], list[str]]:
    """Read and normalize a feeder list file."""
    return normalize_feeders(read_feeder_rows(path, sheet))


if __name__ == "__main__":
    print("Testing feeder_records module...")
    print("=" * 60)

    rows = [
        {"Cable No": "C-101", "From Bus": "PUMP-01", "To Bus": "MCC-1",
         "Voltage": "415 V", "Load (kW)": 37, "Length (m)": 60, "PF": 85},
        {"Cable No": "C-102", "From Bus": "MCC-1", "To Bus": "TRF-MAIN",
         "Voltage": "0.415 kV", "Load (kW)": 250, "Length (m)": 20, "Cores": 1},
    ]
    print("\nColumn mappings:")
    for name, header in detect_column_mappings(list(rows[0].keys())).items():
        print(f"  {name:15} <- {header}")

    records, issues = normalize_feeders(rows)
    for r in records:
        print(f"\n  {r.cable_number}: {r.from_bus} -> {r.to_bus}")
        print(f"    {r.voltage:.0f} V, {r.load_kw} kW, PF {r.power_factor}, {r.core_config}, {r.length_m} m")
    print(f"\nIssues: {issues or 'none'}")

    print("\n" + "=" * 60)
    print("All tests completed!")
