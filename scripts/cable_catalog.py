#!/usr/bin/env python3
"""
Cable Reference Catalog
Read-only conductor data for the cable sizing engine.

Loads catalogs/cable_catalog.yaml and exposes:
- Ampacity / resistance / reactance per core configuration and size
- Temperature and grouping derating factors
- Short-circuit material constants (k)
- Typical power factor and efficiency per load type
- Voltage drop limits and motor starting multipliers

The catalog schema is fixed; its contents are swappable configuration.
Pass a different path to load_cable_catalog() to size against another
manufacturer's data.

Standards: IEC 60287, IEC 60364-5-52, IS 732
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent.parent / "catalogs" / "cable_catalog.yaml"

CORE_CONFIGS = ("1C", "2C", "3C", "4C")
INSTALLATION_METHODS = ("air", "trench", "duct")


@dataclass(frozen=True)
class CableCatalogEntry:
    """One (core configuration, conductor size) row of the catalog."""
    core_config: str
    size_mm2: float
    air: float
    trench: float
    duct: float
    resistance_ohm_km: float
    reactance_ohm_km: float
    diameter_mm: float = 0.0

    def rating(self, installation_method: str) -> float:
        """Ampacity (A) for an installation method (air/trench/duct)."""
        method = installation_method.strip().lower()
        if method not in INSTALLATION_METHODS:
            raise KeyError(f"Unknown installation method: {installation_method}")
        return getattr(self, method)

    @property
    def size_label(self) -> str:
        return format_size(self.size_mm2)


@dataclass(frozen=True)
class CableCatalog:
    """Complete reference catalog (immutable, safe to share between workers)."""
    tables: dict
    temperature_factor: dict
    grouping_factor: dict
    material_constant: dict
    default_clearing_time_s: float
    load_types: dict
    running_vd_limit_pct: float = 5.0
    starting_vd_limit_pct: float = 15.0
    path_critical_vd_pct: float = 3.0
    starting_multipliers: Optional[dict] = None
    starting_power_factor: float = 0.2
    practical_size_limit_mm2: float = 240
    source: str = ""

    def entries(self, core_config: str) -> tuple:
        """Entries for a core configuration in ascending size order."""
        key = normalize_core_config(core_config)
        if key not in self.tables:
            raise KeyError(f"No catalog data for core config: {core_config}")
        return self.tables[key]

    def entry(self, core_config: str, size_mm2: float) -> CableCatalogEntry:
        """Exact catalog entry for a size."""
        for candidate in self.entries(core_config):
            if candidate.size_mm2 == float(size_mm2):
                return candidate
        raise KeyError(f"Selected size {format_size(size_mm2)}mm² not in {core_config} catalog")

    def sizes(self, core_config: str) -> list[float]:
        return [e.size_mm2 for e in self.entries(core_config)]


def format_size(size_mm2: float) -> str:
    """Render a size the way catalog keys are written ("2.5", "95")."""
    size = float(size_mm2)
    return str(int(size)) if size.is_integer() else str(size)


def normalize_core_config(value) -> str:
    """
    Map core configuration spellings to the catalog keys.

    Accepts 3, "3", "3C", "3c", "3 Core", "3C+E" -> "3C".
    Unrecognised values are returned upper-cased so the lookup fails
    with a descriptive error.
    """
    if value is None:
        return "3C"
    text = str(value).strip().upper().replace(" ", "")
    if not text:
        return "3C"
    if text.endswith(".0"):
        text = text[:-2]
    for digit in "1234":
        if text in (digit, f"{digit}C", f"{digit}CORE", f"{digit}CORES"):
            return f"{digit}C"
    if text.startswith("3C+") or text.startswith("3.5C"):
        return "4C"
    return text


def _parse_tables(raw_tables: dict) -> dict:
    tables = {}
    for core_config, sizes in raw_tables.items():
        entries = []
        for size_key, data in sizes.items():
            entries.append(CableCatalogEntry(
                core_config=str(core_config),
                size_mm2=float(size_key),
                air=float(data["air"]),
                trench=float(data["trench"]),
                duct=float(data["duct"]),
                resistance_ohm_km=float(data["resistance_90C"]),
                reactance_ohm_km=float(data.get("reactance", 0.0)),
                diameter_mm=float(data.get("diameter", 0.0)),
            ))
        entries.sort(key=lambda e: e.size_mm2)
        tables[str(core_config)] = tuple(entries)
    return tables


def load_cable_catalog(path: Optional[Path] = None) -> CableCatalog:
    """
    Load the cable catalog from YAML.

    Args:
        path: Catalog file (default catalogs/cable_catalog.yaml)

    Returns:
        CableCatalog

    Raises:
        FileNotFoundError: catalog file does not exist
        ValueError: catalog has no ampacity tables
    """
    path = Path(path) if path else DEFAULT_CATALOG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Catalog not found: {path}")
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    raw_tables = raw.get("ampacity_tables")
    if not raw_tables:
        raise ValueError(f"Catalog has no ampacity_tables: {path}")

    try:
        tables = _parse_tables(raw_tables)
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Malformed catalog entry in {path}: {e}") from e

    derating = raw.get("derating", {})
    short_circuit = raw.get("short_circuit", {})
    limits = raw.get("voltage_drop_limits", {})
    starting = dict(raw.get("motor_starting", {}))
    starting_pf = starting.pop("starting_power_factor", 0.2)

    catalog = CableCatalog(
        tables=tables,
        temperature_factor=derating.get("temperature_factor", {}),
        grouping_factor={int(k): v for k, v in derating.get("grouping_factor", {}).items()},
        material_constant=short_circuit.get("material_constant", {}),
        default_clearing_time_s=short_circuit.get("default_clearing_time_s", 0.1),
        load_types=raw.get("load_types", {}),
        running_vd_limit_pct=limits.get("running_pct", 5.0),
        starting_vd_limit_pct=limits.get("starting_pct", 15.0),
        path_critical_vd_pct=limits.get("path_critical_pct", 3.0),
        starting_multipliers=starting,
        starting_power_factor=starting_pf,
        practical_size_limit_mm2=raw.get("practical_size_limit_mm2", 240),
        source=str(path),
    )
    logger.debug("Loaded cable catalog %s (%s)", path, ", ".join(tables))
    return catalog


# Cache for catalog
_CABLE_CATALOG: Optional[CableCatalog] = None


def get_cable_catalog() -> CableCatalog:
    """Get cached default cable catalog."""
    global _CABLE_CATALOG
    if _CABLE_CATALOG is None:
        _CABLE_CATALOG = load_cable_catalog()
    return _CABLE_CATALOG


def get_temperature_factor(
    catalog: CableCatalog,
    installation_method: str,
    core_config: str
) -> float:
    """
    Temperature derating factor K1 by installation method.

    Single-core cables use the 'single' column, everything else 'multi'.
    """
    method = installation_method.strip().lower()
    factors = catalog.temperature_factor.get(method)
    if factors is None:
        raise KeyError(f"No derating data for installation method: {installation_method}")
    column = "single" if normalize_core_config(core_config) == "1C" else "multi"
    return float(factors[column])


def get_grouping_factor(catalog: CableCatalog, circuits: int) -> float:
    """
    Grouping factor K2 for a number of loaded circuits.

    Uses the nearest tabulated count at or below the requested one.
    """
    if circuits <= 1 or not catalog.grouping_factor:
        return 1.0
    counts = sorted(c for c in catalog.grouping_factor if c <= circuits)
    if not counts:
        return 1.0
    return float(catalog.grouping_factor[counts[-1]])


def get_material_constant(
    catalog: CableCatalog,
    conductor_material: str = "Cu",
    insulation: str = "XLPE"
) -> float:
    """Short-circuit constant k for conductor material and insulation."""
    material = "Al" if str(conductor_material).strip().lower().startswith("al") else "Cu"
    insul = "PVC" if str(insulation).strip().upper() == "PVC" else "XLPE"
    return float(catalog.material_constant.get(f"{material}_{insul}", 143))


def get_load_type_defaults(catalog: CableCatalog, load_type: Optional[str]) -> dict:
    """Typical efficiency / power factor for a load type (Motor if unknown)."""
    if load_type:
        for name, data in catalog.load_types.items():
            if name.lower() == str(load_type).strip().lower():
                return data
    return catalog.load_types.get("Motor", {
        "typical_efficiency": 0.95,
        "typical_power_factor": 0.85,
        "starting_check": True,
    })


if __name__ == "__main__":
    print("Testing cable_catalog module...")
    print("=" * 60)

    catalog = get_cable_catalog()
    print(f"\nSource: {catalog.source}")
    for core in CORE_CONFIGS:
        sizes = catalog.sizes(core)
        print(f"  {core}: {len(sizes)} sizes, {format_size(sizes[0])}-{format_size(sizes[-1])} mm²")

    print("\nDerating (Air, 3C):", get_temperature_factor(catalog, "Air", "3C"))
    print("Derating (Duct, 1C):", get_temperature_factor(catalog, "Duct", "1C"))
    print("k (Cu XLPE):", get_material_constant(catalog, "Cu", "XLPE"))

    print("\n" + "=" * 60)
    print("All tests completed!")
