#!/usr/bin/env python3
"""
Voltage Drop Calculation Module
Running and starting voltage drop for catalog cables.

Implements voltage drop calculations for:
- Running condition at full-load current (limit 5%)
- Motor starting (instantaneous, limit 15%)
- Whole source-to-load paths (sum of segment drops)

Cable resistance and reactance come from the reference catalog in Ω/km;
lengths are one-way route lengths in metres. Running and starting drops
divide by VD_DIVISOR (10⁶).

Standards: IEC 60364-5-52 Annex G
"""

import math
from typing import Optional


RUNNING_VD_LIMIT_PCT = 5.0
STARTING_VD_LIMIT_PCT = 15.0
VD_DIVISOR = 1000 * 1000


def calc_voltage_drop(
    current_a: float,
    length_m: float,
    resistance_ohm_km: float,
    voltage: float,
    phases: int = 3,
    power_factor: float = 0.85,
    reactance_ohm_km: float = 0.0,
    include_reactance: bool = False,
    runs: int = 1
) -> dict:
    """
    Calculate voltage drop for a cable run.

    Formula (3-phase):
    Vd = √3 × I × L × (R × cos(φ) [+ X × sin(φ)]) / 10⁶
    Vd% = (Vd / V) × 100

    Single-phase drops the √3 factor (Vd = I × L × R × cos(φ) / 10⁶).
    The reactive term is left out by default; LV cable reactance is
    small next to R × cos(φ).

    Args:
        current_a: Total load current in Amps
        length_m: One-way cable length in metres
        resistance_ohm_km: AC resistance at operating temperature (Ω/km)
        voltage: System voltage (line-to-line for 3-phase)
        phases: 1 or 3
        power_factor: Load power factor
        reactance_ohm_km: Cable reactance (Ω/km)
        include_reactance: Add the X × sin(φ) term
        runs: Parallel runs sharing the current

    Returns:
        dict with voltage drop results
    """
    runs = max(int(runs), 1)
    current_per_run = current_a / runs

    cos_phi = power_factor
    sin_phi = math.sqrt(max(0.0, 1 - cos_phi ** 2))

    z_per_km = resistance_ohm_km * cos_phi
    if include_reactance:
        z_per_km += reactance_ohm_km * sin_phi

    if phases == 3:
        vd_volts = math.sqrt(3) * current_per_run * length_m * z_per_km / VD_DIVISOR
    else:
        vd_volts = current_per_run * length_m * z_per_km / VD_DIVISOR

    vd_pct = (vd_volts / voltage) * 100 if voltage > 0 else 0.0

    return {
        "voltage_drop_v": vd_volts,
        "voltage_drop_pct": vd_pct,
        "voltage_at_load_v": voltage - vd_volts,
        "current_a": current_a,
        "current_per_run_a": current_per_run,
        "runs": runs,
        "length_m": length_m,
        "voltage_v": voltage,
        "phases": phases,
        "power_factor": power_factor,
        "compliant": vd_pct <= RUNNING_VD_LIMIT_PCT,
    }


def calc_motor_starting_voltage_drop(
    starting_current_a: float,
    length_m: float,
    resistance_ohm_km: float,
    reactance_ohm_km: float,
    voltage: float,
    phases: int = 3,
    starting_pf: float = 0.2,
    runs: int = 1,
    limit_pct: float = STARTING_VD_LIMIT_PCT
) -> dict:
    """
    Calculate voltage drop during motor starting.

    Starting current is highly inductive, so the reactive term is always
    included here.

    Args:
        starting_current_a: Locked rotor / starting current (A)
        length_m: Cable length to motor
        resistance_ohm_km: Cable resistance (Ω/km)
        reactance_ohm_km: Cable reactance (Ω/km)
        voltage: System voltage
        phases: Number of phases
        starting_pf: Power factor during starting (0.2 typical)
        runs: Parallel runs
        limit_pct: Permissible starting dip

    Returns:
        dict with starting voltage drop analysis
    """
    result = calc_voltage_drop(
        starting_current_a, length_m, resistance_ohm_km, voltage, phases,
        starting_pf, reactance_ohm_km, include_reactance=True, runs=runs
    )

    vd_pct = result["voltage_drop_pct"]

    if vd_pct <= 10:
        impact = "LOW - No issues expected"
    elif vd_pct <= 15:
        impact = "MODERATE - May affect sensitive loads"
    elif vd_pct <= 20:
        impact = "HIGH - Consider soft starter or VFD"
    else:
        impact = "EXCESSIVE - Require soft starter, VFD, or larger cable"

    result.update({
        "application": "motor_starting",
        "starting_current_a": starting_current_a,
        "starting_power_factor": starting_pf,
        "impact": impact,
        "target_max_pct": limit_pct,
        "compliant": vd_pct <= limit_pct,
    })
    return result


def calc_path_voltage_drop(
    segment_drops_v: list[float],
    voltage: float,
    limit_pct: float = RUNNING_VD_LIMIT_PCT
) -> dict:
    """
    Calculate total voltage drop along a source-to-load path.

    Segment drops in volts are summed and expressed against the leaf
    (load) voltage.

    Args:
        segment_drops_v: Absolute drop of each segment (V)
        voltage: Leaf segment nominal voltage
        limit_pct: Permissible total drop

    Returns:
        dict with total voltage drop assessment
    """
    total_v = sum(segment_drops_v)
    total_pct = (total_v / voltage) * 100 if voltage > 0 else 0.0
    compliant = total_pct <= limit_pct

    return {
        "voltage_drop_v": total_v,
        "voltage_drop_pct": total_pct,
        "target_max_pct": limit_pct,
        "compliant": compliant,
        "message": (
            f"V-drop: {total_pct:.4f}% (IEC 60364 compliant)" if compliant
            else f"V-drop: {total_pct:.4f}% (exceeds {limit_pct:g}% limit - optimize cable sizing)"
        ),
    }


def find_size_for_voltage_drop(
    entries: tuple,
    current_a: float,
    length_m: float,
    voltage: float,
    phases: int = 3,
    power_factor: float = 0.85,
    limit_pct: float = RUNNING_VD_LIMIT_PCT,
    include_reactance: bool = False,
    runs: int = 1
) -> tuple[float, Optional[dict]]:
    """
    Select minimum catalog size to meet a voltage drop limit.

    Args:
        entries: Catalog entries in ascending size order
        current_a: Load current
        length_m: Cable length
        voltage: System voltage
        phases: Number of phases
        power_factor: Power factor
        limit_pct: Voltage drop limit
        include_reactance: Add the X × sin(φ) term
        runs: Parallel runs

    Returns:
        (size_mm2, drop result) for the smallest compliant size, or the
        largest size and None when no size meets the limit
    """
    for entry in entries:
        result = calc_voltage_drop(
            current_a, length_m, entry.resistance_ohm_km, voltage, phases,
            power_factor, entry.reactance_ohm_km, include_reactance, runs
        )
        if result["voltage_drop_pct"] <= limit_pct:
            return entry.size_mm2, result
    return entries[-1].size_mm2, None


if __name__ == "__main__":
    print("Testing voltage_drop module...")
    print("=" * 60)

    print("\n1. Running Voltage Drop (3C 35mm², R=0.668 Ω/km)")
    result = calc_voltage_drop(
        current_a=136.4, length_m=95, resistance_ohm_km=0.668,
        voltage=415, phases=3, power_factor=0.85
    )
    print(f"   136.4A, 95m @ 415V")
    print(f"   Voltage drop: {result['voltage_drop_v']:.4f}V ({result['voltage_drop_pct']:.4f}%)")
    print(f"   Compliant (≤5%): {result['compliant']}")

    print("\n2. Motor Starting Voltage Drop")
    result = calc_motor_starting_voltage_drop(
        starting_current_a=6.5 * 136.4, length_m=95,
        resistance_ohm_km=0.668, reactance_ohm_km=0.079, voltage=415
    )
    print(f"   Starting voltage drop: {result['voltage_drop_pct']:.4f}%")
    print(f"   Impact: {result['impact']}")

    print("\n3. Path Voltage Drop")
    result = calc_path_voltage_drop([4.2, 3.1, 1.5], 415)
    print(f"   {result['message']}")

    print("\n" + "=" * 60)
    print("All tests completed!")
