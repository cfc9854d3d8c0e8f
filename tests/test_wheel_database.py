"""Tests for wheel_database module."""

from custom_components.euc_range.wheel_database import (
    WHEEL_SPECS,
    all_manufacturers,
    all_wheel_specs,
    create_custom_spec,
    find_wheel_spec,
    supported_cell_counts,
)


class TestFindWheelSpec:
    """Tests for model lookup."""

    def test_case_insensitive_and_trimmed(self):
        """Test lookup ignores case and surrounding whitespace."""
        spec = find_wheel_spec("  sherman max ")
        assert spec is not None
        assert spec.display_name == "Veteran Sherman Max"
        assert spec.battery.cell_count == 30

    def test_alias(self):
        """Test aliases resolve to the same wheel."""
        assert find_wheel_spec("EXN") is find_wheel_spec("Begode EX.N")

    def test_blank_and_unknown(self):
        """Test blank or unknown models are not matched."""
        assert find_wheel_spec("") is None
        assert find_wheel_spec("   ") is None
        assert find_wheel_spec(None) is None
        assert find_wheel_spec("Segway") is None


class TestCatalogue:
    """Tests for catalogue queries."""

    def test_every_wheel_uses_supported_cells(self):
        """Test all catalogued packs have a supported cell count."""
        cells = set(supported_cell_counts())
        assert all(spec.battery.cell_count in cells for spec in WHEEL_SPECS)

    def test_filter_by_manufacturer(self):
        """Test manufacturer filtering is case-insensitive."""
        specs = all_wheel_specs("kingsong")
        assert specs
        assert all(spec.manufacturer == "KingSong" for spec in specs)
        assert len(all_wheel_specs()) == len(WHEEL_SPECS)

    def test_manufacturers(self):
        """Test manufacturers are listed once, sorted."""
        manufacturers = all_manufacturers()
        assert manufacturers == sorted(set(manufacturers))
        assert "Veteran" in manufacturers

    def test_configuration(self):
        """Test pack layout rendering."""
        assert find_wheel_spec("Sherman").battery.configuration == "24S2P"


class TestCustomSpec:
    """Tests for custom wheel specs."""

    def test_custom(self):
        """Test a custom wheel gets a nominal voltage from its cell count."""
        spec = create_custom_spec("Homebrew", 24, 2000.0, parallel_packs=2)
        assert spec.manufacturer == "Custom"
        assert spec.battery.nominal_voltage == 100.8
        assert spec.battery.configuration == "24S2P"
