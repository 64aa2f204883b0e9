#!/usr/bin/env python3
"""
Cable Sizing Module
Constraint-driven conductor selection per IEC 60364-5-52 / IEC 60287.

Implements cable sizing for feeders including:
- Full-load current from rated power
- Temperature derating (grouping/soil/depth default to 1.0)
- Size selection by ampacity, with parallel runs when one cable is not enough
- Size selection by running voltage drop
- Size selection by short-circuit thermal withstand (ACB-protected feeders)
- Final verdict: APPROVED / WARNING / FAILED

Each feeder is sized independently. Lookup errors (unknown core
configuration, missing catalog entry) come back as a FAILED result; the
engine never raises to its caller.

Standards: IEC 60364-5-52, IEC 60287, IEC 60949
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Optional

from cable_catalog import (
    CableCatalog,
    format_size,
    get_cable_catalog,
    get_grouping_factor,
    get_load_type_defaults,
    get_material_constant,
    get_temperature_factor,
    normalize_core_config,
)
from voltage_drop import (
    calc_motor_starting_voltage_drop,
    calc_voltage_drop,
    find_size_for_voltage_drop,
)

logger = logging.getLogger(__name__)

MAX_PARALLEL_RUNS = 10

STATUS_APPROVED = "APPROVED"
STATUS_WARNING = "WARNING"
STATUS_FAILED = "FAILED"

# Checked in this order when two constraints call for the same size
CONSTRAINT_PRIORITY = ("short_circuit", "voltage_drop", "ampacity")


@dataclass(frozen=True)
class SizingResult:
    """Outcome of sizing one feeder. Re-sizing produces a new result."""
    cable_number: str
    core_config: str
    full_load_current_a: float = 0.0
    derating_factor: float = 1.0
    derated_current_a: float = 0.0
    number_of_runs: int = 1
    current_per_run_a: float = 0.0
    size_by_ampacity: float = 0.0
    size_by_voltage_drop: float = 0.0
    size_by_short_circuit: Optional[float] = None
    selected_size_mm2: float = 0.0
    driving_constraint: Optional[str] = None
    catalog_rating_a: float = 0.0
    installed_rating_a: float = 0.0
    resistance_ohm_km: float = 0.0
    reactance_ohm_km: float = 0.0
    ambient_temp_c: float = 40.0
    voltage_drop_v: float = 0.0
    voltage_drop_pct: float = 0.0
    starting_voltage_drop_pct: Optional[float] = None
    designation: str = ""
    status: str = STATUS_APPROVED
    warnings: tuple = field(default_factory=tuple)

    @property
    def capacity_ok(self) -> bool:
        return self.installed_rating_a >= self.full_load_current_a

    def to_dict(self) -> dict:
        result = asdict(self)
        result["warnings"] = list(self.warnings)
        return result


def calc_full_load_current(
    load_kw: float,
    voltage: float,
    power_factor: float,
    efficiency: float,
    phases: int = 3
) -> float:
    """
    Calculate full-load current.

    I = P × 1000 / (√3 × V × cosφ × η)   (3-phase)
    I = P × 1000 / (V × cosφ × η)        (1-phase)

    Args:
        load_kw: Rated load (kW)
        voltage: Line voltage (V)
        power_factor: cos φ
        efficiency: η (0-1)
        phases: 1 or 3

    Returns:
        Current in Amps
    """
    if voltage <= 0:
        raise ValueError(f"Voltage must be positive: {voltage}")
    denominator = voltage * power_factor * efficiency
    if phases == 3:
        denominator *= math.sqrt(3)
    if denominator <= 0:
        raise ValueError("Power factor and efficiency must be positive")
    return (load_kw * 1000) / denominator


def calc_derating_factor(
    catalog: CableCatalog,
    installation_method: str,
    core_config: str,
    grouping_factor: Optional[float] = None,
    ground_temp_factor: float = 1.0,
    depth_factor: float = 1.0,
    thermal_resistivity_factor: float = 1.0,
    loaded_circuits: int = 1
) -> float:
    """
    Overall derating factor K = K1 × K2 × K3 × K4 × K5.

    K1 (temperature) comes from the catalog by installation method and
    single/multi-core. K2 is taken from the catalog grouping table when
    more than one loaded circuit is given; K3-K5 are 1.0 unless supplied.

    Returns:
        K_total
    """
    k1 = get_temperature_factor(catalog, installation_method, core_config)
    if grouping_factor is None:
        grouping_factor = get_grouping_factor(catalog, loaded_circuits)
    return k1 * grouping_factor * ground_temp_factor * depth_factor * thermal_resistivity_factor


def find_size_by_ampacity(
    entries: tuple,
    full_load_current_a: float,
    derating_factor: float,
    installation_method: str,
    max_runs: int = MAX_PARALLEL_RUNS
) -> tuple[int, float, bool]:
    """
    Smallest size (and fewest runs) whose rating carries the load.

    Required rating per run = FLC / (K × runs). Runs are only added when
    no single catalog entry is large enough.

    Returns:
        (runs, size_mm2, satisfied). When even max_runs of the largest
        size fall short, (max_runs, largest size, False).
    """
    for runs in range(1, max(int(max_runs), 1) + 1):
        required = full_load_current_a / (derating_factor * runs)
        for entry in entries:
            if entry.rating(installation_method) >= required:
                return runs, entry.size_mm2, True
    return max(int(max_runs), 1), entries[-1].size_mm2, False


def find_size_by_short_circuit(
    entries: tuple,
    short_circuit_ka: float,
    material_constant: float,
    clearing_time_s: float
) -> tuple[float, float, bool]:
    """
    Minimum area for short-circuit thermal withstand.

    A_min = I_sc / (k × √t)

    Returns:
        (size_mm2, a_min_mm2, satisfied)
    """
    a_min = (short_circuit_ka * 1000) / (material_constant * math.sqrt(clearing_time_s))
    for entry in entries:
        if entry.size_mm2 >= a_min:
            return entry.size_mm2, a_min, True
    return entries[-1].size_mm2, a_min, False


def select_driving_constraint(
    selected: float,
    by_ampacity: float,
    by_voltage_drop: float,
    by_short_circuit: Optional[float]
) -> str:
    """Constraint that set the final size (short-circuit, then VD, then ampacity)."""
    sizes = {
        "short_circuit": by_short_circuit,
        "voltage_drop": by_voltage_drop,
        "ampacity": by_ampacity,
    }
    for name in CONSTRAINT_PRIORITY:
        if sizes[name] is not None and sizes[name] == selected:
            return name
    return "ampacity"


def format_designation(runs: int, voltage: float, core_config: str, size_mm2: float) -> str:
    """Cable designation, e.g. "2R X 0.415kV X 3C X 240 Sqmm"."""
    suffix = " Sqmm Per Phase" if core_config == "1C" else " Sqmm"
    return f"{runs}R X {voltage / 1000:g}kV X {core_config} X {format_size(size_mm2)}{suffix}"


def size_cable(
    load_kw: float,
    voltage: float,
    phase: int = 3,
    power_factor: Optional[float] = None,
    efficiency: Optional[float] = None,
    core_config: str = "3C",
    conductor_material: str = "Cu",
    insulation: str = "XLPE",
    installation_method: str = "Air",
    length_m: float = 0.0,
    ambient_temp_c: float = 40,
    load_type: str = "Motor",
    protection_type: str = "MCCB",
    short_circuit_ka: Optional[float] = None,
    clearing_time_s: Optional[float] = None,
    starting_method: str = "DOL",
    starting_current_a: Optional[float] = None,
    starting_pf: Optional[float] = None,
    grouping_factor: Optional[float] = None,
    loaded_circuits: int = 1,
    max_runs: int = MAX_PARALLEL_RUNS,
    include_reactance: bool = False,
    cable_number: str = "",
    catalog: Optional[CableCatalog] = None
) -> SizingResult:
    """
    Select conductor size and number of runs for one feeder.

    Args:
        load_kw: Rated load (kW)
        voltage: Rated voltage (V)
        phase: 1 or 3
        power_factor: cos φ (load-type typical value if None)
        efficiency: η (load-type typical value if None)
        core_config: 1C / 2C / 3C / 4C
        conductor_material: Cu or Al (short-circuit constant)
        insulation: XLPE or PVC (short-circuit constant)
        installation_method: Air / Trench / Duct
        length_m: Route length (m)
        ambient_temp_c: Site ambient, carried on the result; K1 comes from
            the catalog temperature factor, not from this value
        load_type: Motor, Pump, Feeder ... (typical PF/η, starting check)
        protection_type: ACB enables the short-circuit constraint
        short_circuit_ka: Prospective fault current (kA)
        clearing_time_s: Protection clearing time (s)
        starting_method: DOL / StarDelta / SoftStarter / VFD
        starting_current_a: Motor starting current (multiple of FLC if None)
        starting_pf: Starting power factor (catalog default if None)
        grouping_factor: Explicit K2 (catalog table by loaded_circuits if None)
        loaded_circuits: Grouped loaded circuits for the K2 lookup
        max_runs: Upper bound on parallel runs
        include_reactance: Include X × sin(φ) in running voltage drop
        cable_number: Feeder id carried into the result
        catalog: Reference catalog (default catalog if None)

    Returns:
        SizingResult
    """
    core_key = normalize_core_config(core_config)
    warnings = []

    try:
        catalog = catalog or get_cable_catalog()
        entries = catalog.entries(core_key)

        defaults = get_load_type_defaults(catalog, load_type)
        pf = power_factor or defaults.get("typical_power_factor", 0.85)
        eff = efficiency or defaults.get("typical_efficiency", 0.95)

        # Step 1: full-load current
        flc = calc_full_load_current(load_kw, voltage, pf, eff, phase)

        # Step 2: derating
        k_total = calc_derating_factor(
            catalog, installation_method, core_key,
            grouping_factor=grouping_factor, loaded_circuits=loaded_circuits
        )

        # Step 3: ampacity (decides the number of runs)
        runs, by_ampacity, ampacity_ok = find_size_by_ampacity(
            entries, flc, k_total, installation_method, max_runs
        )

        # Step 4: running voltage drop
        by_vd, _ = find_size_for_voltage_drop(
            entries, flc, length_m, voltage, phase, pf,
            limit_pct=catalog.running_vd_limit_pct,
            include_reactance=include_reactance, runs=runs
        )

        # Step 5: short-circuit withstand
        by_sc = None
        sc_ok = True
        if str(protection_type).upper() == "ACB" and short_circuit_ka:
            k_material = get_material_constant(catalog, conductor_material, insulation)
            t = clearing_time_s or catalog.default_clearing_time_s
            by_sc, a_min, sc_ok = find_size_by_short_circuit(entries, short_circuit_ka, k_material, t)
            if not sc_ok:
                warnings.append(
                    f"Short-circuit withstand needs {a_min:.0f}mm², above largest "
                    f"{core_key} size ({format_size(by_sc)}mm²)"
                )

        # Step 6: final size
        selected = max(by_ampacity, by_vd, by_sc or 0)
        driving = select_driving_constraint(selected, by_ampacity, by_vd, by_sc)

        entry = catalog.entry(core_key, selected)
        rating = entry.rating(installation_method)
        installed = rating * k_total * runs

        # Step 7: verdict
        vd = calc_voltage_drop(
            flc, length_m, entry.resistance_ohm_km, voltage, phase, pf,
            entry.reactance_ohm_km, include_reactance, runs
        )

        starting_vd_pct = None
        if defaults.get("starting_check", False):
            multiplier = (catalog.starting_multipliers or {}).get(starting_method, 6.5)
            i_start = starting_current_a or multiplier * flc
            start = calc_motor_starting_voltage_drop(
                i_start, length_m, entry.resistance_ohm_km, entry.reactance_ohm_km,
                voltage, phase, starting_pf or catalog.starting_power_factor, runs,
                limit_pct=catalog.starting_vd_limit_pct
            )
            starting_vd_pct = start["voltage_drop_pct"]

        status = STATUS_APPROVED
        if not ampacity_ok:
            warnings.append(
                f"No {core_key} size carries {flc:.1f}A with {runs} runs "
                f"(installed {installed:.0f}A)"
            )
        if vd["voltage_drop_pct"] > catalog.running_vd_limit_pct:
            warnings.append(
                f"Voltage drop high: {vd['voltage_drop_pct']:.4f}% "
                f"(limit {catalog.running_vd_limit_pct:g}%)"
            )
            status = STATUS_WARNING
        if starting_vd_pct is not None and starting_vd_pct > catalog.starting_vd_limit_pct:
            warnings.append(
                f"Starting voltage dip high: {starting_vd_pct:.4f}% "
                f"(limit {catalog.starting_vd_limit_pct:g}%)"
            )
            status = STATUS_WARNING
        if selected > catalog.practical_size_limit_mm2:
            warnings.append(
                f"Large conductor size selected ({format_size(selected)}mm²); "
                "consider parallel smaller cables or higher voltage"
            )
        if not ampacity_ok or not sc_ok or installed < flc:
            status = STATUS_FAILED

        return SizingResult(
            cable_number=cable_number,
            core_config=core_key,
            full_load_current_a=flc,
            derating_factor=k_total,
            derated_current_a=flc / k_total,
            number_of_runs=runs,
            current_per_run_a=flc / runs,
            size_by_ampacity=by_ampacity,
            size_by_voltage_drop=by_vd,
            size_by_short_circuit=by_sc,
            selected_size_mm2=selected,
            driving_constraint=driving,
            catalog_rating_a=rating,
            installed_rating_a=installed,
            resistance_ohm_km=entry.resistance_ohm_km,
            reactance_ohm_km=entry.reactance_ohm_km,
            ambient_temp_c=ambient_temp_c,
            voltage_drop_v=vd["voltage_drop_v"],
            voltage_drop_pct=vd["voltage_drop_pct"],
            starting_voltage_drop_pct=starting_vd_pct,
            designation=format_designation(runs, voltage, core_key, selected),
            status=status,
            warnings=tuple(warnings),
        )

    except Exception as e:
        logger.debug("Sizing failed for %s: %s", cable_number or "feeder", e)
        message = e.args[0] if isinstance(e, KeyError) and e.args else e
        warnings.append(f"Error: {message}")
        return SizingResult(
            cable_number=cable_number,
            core_config=core_key,
            ambient_temp_c=ambient_temp_c,
            status=STATUS_FAILED,
            warnings=tuple(warnings),
        )


def size_feeder(record, catalog: Optional[CableCatalog] = None, **overrides) -> SizingResult:
    """
    Size one FeederRecord and attach the outcome to it.

    The record's derating_factor, number_of_runs, selected_size and status
    are overwritten with the new result.

    Args:
        record: FeederRecord
        catalog: Reference catalog
        **overrides: Extra size_cable() arguments (e.g. max_runs)

    Returns:
        SizingResult
    """
    params = dict(
        load_kw=record.load_kw,
        voltage=record.voltage,
        phase=record.phase,
        power_factor=record.power_factor,
        efficiency=record.efficiency,
        core_config=record.core_config,
        conductor_material=record.conductor_material,
        insulation=record.insulation,
        installation_method=record.installation_method,
        length_m=record.length_m,
        ambient_temp_c=record.ambient_temp_c,
        load_type=record.load_type,
        protection_type=record.protection_type,
        short_circuit_ka=record.short_circuit_ka,
        clearing_time_s=record.clearing_time_s,
        starting_method=record.starting_method,
        starting_current_a=record.starting_current_a,
        starting_pf=record.starting_pf,
        loaded_circuits=record.loaded_circuits,
        cable_number=record.cable_number,
        catalog=catalog,
    )
    params.update(overrides)
    result = size_cable(**params)

    record.derating_factor = result.derating_factor
    record.number_of_runs = result.number_of_runs
    record.selected_size = result.designation or None
    record.status = result.status
    return result


def size_feeders(records: list, catalog: Optional[CableCatalog] = None, **overrides) -> list[SizingResult]:
    """
    Size every feeder independently.

    One feeder's failure never affects another's.

    Returns:
        SizingResults in record order
    """
    catalog = catalog or get_cable_catalog()
    return [size_feeder(record, catalog, **overrides) for record in records]


if __name__ == "__main__":
    print("Testing cable_sizing module...")
    print("=" * 60)

    print("\n1. 75 kW motor, 415V, 95m, Air, 3C")
    result = size_cable(
        load_kw=75, voltage=415, power_factor=0.85, efficiency=0.90,
        length_m=95, installation_method="Air", core_config="3C"
    )
    print(f"   FLC: {result.full_load_current_a:.1f}A, K = {result.derating_factor}")
    print(f"   By ampacity: {format_size(result.size_by_ampacity)}mm²")
    print(f"   By V-drop: {format_size(result.size_by_voltage_drop)}mm²")
    print(f"   Selected: {result.designation} ({result.driving_constraint})")
    print(f"   V-drop: {result.voltage_drop_pct:.4f}%, status {result.status}")

    print("\n2. 400 kW feeder needing parallel runs")
    result = size_cable(load_kw=400, voltage=415, load_type="Feeder", length_m=120)
    print(f"   FLC: {result.full_load_current_a:.1f}A")
    print(f"   Selected: {result.designation}")
    print(f"   Installed rating: {result.installed_rating_a:.0f}A")

    print("\n3. ACB feeder with 50 kA fault")
    result = size_cable(
        load_kw=30, voltage=415, load_type="Feeder", length_m=20,
        protection_type="ACB", short_circuit_ka=50, clearing_time_s=0.1
    )
    print(f"   By short circuit: {format_size(result.size_by_short_circuit)}mm²")
    print(f"   Selected: {result.designation} ({result.driving_constraint})")

    print("\n4. Unknown core configuration")
    result = size_cable(load_kw=10, voltage=415, core_config="7C")
    print(f"   Status: {result.status} {list(result.warnings)}")

    print("\n" + "=" * 60)
    print("All tests completed!")
