import pytest

from cable_catalog import (
    DEFAULT_CATALOG_PATH,
    format_size,
    get_grouping_factor,
    get_load_type_defaults,
    get_material_constant,
    get_temperature_factor,
    load_cable_catalog,
    normalize_core_config,
)


def test_default_catalog_has_all_core_configs(catalog):
    for core in ("1C", "2C", "3C", "4C"):
        assert catalog.entries(core)
    assert catalog.source == str(DEFAULT_CATALOG_PATH)


def test_entries_are_sorted_by_size(catalog):
    sizes = catalog.sizes("3C")
    assert sizes == sorted(sizes)
    assert sizes[0] == 1.5
    assert sizes[-1] == 400


def test_entry_lookup(catalog):
    entry = catalog.entry("3C", 35)
    assert entry.rating("Air") == 163
    assert entry.rating("trench") == 177
    assert entry.resistance_ohm_km == pytest.approx(0.668)
    assert entry.size_label == "35"


def test_unknown_core_config_raises(catalog):
    with pytest.raises(KeyError, match="No catalog data for core config"):
        catalog.entries("5C")


def test_missing_size_raises(catalog):
    with pytest.raises(KeyError, match="not in 1C catalog"):
        catalog.entry("1C", 2.5)


def test_unknown_installation_method_raises(catalog):
    with pytest.raises(KeyError, match="Unknown installation method"):
        catalog.entry("3C", 35).rating("Overhead")
    with pytest.raises(KeyError):
        get_temperature_factor(catalog, "Overhead", "3C")


def test_temperature_factor_single_vs_multi_core(catalog):
    assert get_temperature_factor(catalog, "Air", "3C") == pytest.approx(0.90)
    assert get_temperature_factor(catalog, "Air", "1C") == pytest.approx(0.76)
    assert get_temperature_factor(catalog, "Duct", "4C") == pytest.approx(0.80)
    assert get_temperature_factor(catalog, "Duct", "1C") == pytest.approx(0.67)


def test_grouping_factor(catalog):
    assert get_grouping_factor(catalog, 1) == 1.0
    assert get_grouping_factor(catalog, 3) == pytest.approx(0.90)
    # 5 circuits falls back to the 4-circuit value
    assert get_grouping_factor(catalog, 5) == pytest.approx(0.85)
    assert get_grouping_factor(catalog, 12) == pytest.approx(0.80)


def test_material_constants(catalog):
    assert get_material_constant(catalog, "Cu", "XLPE") == 143
    assert get_material_constant(catalog, "Cu", "PVC") == 115
    assert get_material_constant(catalog, "Aluminium", "XLPE") == 94
    assert get_material_constant(catalog, "Al", "PVC") == 76


def test_load_type_defaults(catalog):
    assert get_load_type_defaults(catalog, "heater")["typical_power_factor"] == 1.0
    assert get_load_type_defaults(catalog, "Unknown")["starting_check"] is True


@pytest.mark.parametrize("value, expected", [
    (3, "3C"),
    ("3", "3C"),
    ("3c", "3C"),
    ("3 Core", "3C"),
    (1.0, "1C"),
    ("3C+E", "4C"),
    ("3.5C", "4C"),
    (None, "3C"),
    ("", "3C"),
    ("5C", "5C"),
])
def test_normalize_core_config(value, expected):
    assert normalize_core_config(value) == expected


def test_format_size():
    assert format_size(2.5) == "2.5"
    assert format_size(240.0) == "240"


def test_missing_catalog_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="Catalog not found"):
        load_cable_catalog(tmp_path / "missing.yaml")


def test_catalog_without_tables(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("derating: {}\n")
    with pytest.raises(ValueError, match="no ampacity_tables"):
        load_cable_catalog(path)


def test_malformed_catalog_entry(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text('ampacity_tables:\n  "3C":\n    "10": {air: 78}\n')
    with pytest.raises(ValueError, match="Malformed catalog entry"):
        load_cable_catalog(path)


def test_custom_catalog(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text(
        'ampacity_tables:\n'
        '  "3C":\n'
        '    "50": {air: 200, trench: 210, duct: 170, resistance_90C: 0.5}\n'
        '    "10": {air: 80, trench: 90, duct: 70, resistance_90C: 2.3}\n'
        'derating:\n'
        '  temperature_factor:\n'
        '    air: {multi: 1.0, single: 1.0}\n'
    )
    custom = load_cable_catalog(path)
    assert custom.sizes("3C") == [10.0, 50.0]
    assert custom.entry("3C", 10).reactance_ohm_km == 0.0
    assert custom.running_vd_limit_pct == 5.0
