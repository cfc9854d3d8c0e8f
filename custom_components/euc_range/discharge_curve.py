"""Li-ion discharge curve: pack voltage <-> remaining energy percentage.

The curve is piecewise over three regions of a single cell:

- flat (4.20 V -> 3.95 V): 100% -> 80%, linear
- gradual (3.95 V -> 3.50 V): 80% -> 20%, linear
- rapid (3.50 V -> 3.00 V): 20% -> 0%, power law with exponent 1.5

Inputs outside the 3.00-4.20 V window clamp to 0% / 100%. All energy
accounting in the range engine goes through these functions.
"""

from __future__ import annotations

from .const import CELL_VOLTAGE_MAX, CELL_VOLTAGE_MIN

VOLTAGE_FLAT_END = 3.95
VOLTAGE_GRADUAL_END = 3.50
ENERGY_FLAT_END = 80.0
ENERGY_GRADUAL_END = 20.0
RAPID_EXPONENT = 1.5

# Accepted measurement slack around the curve window, per cell
VOLTAGE_VALID_MARGIN = 0.2


def voltage_to_energy_percent(pack_voltage: float, cell_count: int) -> float:
    """Return the remaining energy percentage (0-100) for a pack voltage."""
    cell_voltage = pack_voltage / cell_count
    if cell_voltage >= CELL_VOLTAGE_MAX:
        return 100.0
    if cell_voltage <= CELL_VOLTAGE_MIN:
        return 0.0
    if cell_voltage > VOLTAGE_FLAT_END:
        position = (cell_voltage - VOLTAGE_FLAT_END) / (CELL_VOLTAGE_MAX - VOLTAGE_FLAT_END)
        return ENERGY_FLAT_END + position * (100.0 - ENERGY_FLAT_END)
    if cell_voltage > VOLTAGE_GRADUAL_END:
        position = (cell_voltage - VOLTAGE_GRADUAL_END) / (VOLTAGE_FLAT_END - VOLTAGE_GRADUAL_END)
        return ENERGY_GRADUAL_END + position * (ENERGY_FLAT_END - ENERGY_GRADUAL_END)
    position = (cell_voltage - CELL_VOLTAGE_MIN) / (VOLTAGE_GRADUAL_END - CELL_VOLTAGE_MIN)
    return ENERGY_GRADUAL_END * position**RAPID_EXPONENT


def energy_percent_to_voltage(energy_percent: float, cell_count: int) -> float:
    """Inverse of voltage_to_energy_percent; returns pack voltage."""
    if energy_percent >= 100.0:
        cell_voltage = CELL_VOLTAGE_MAX
    elif energy_percent <= 0.0:
        cell_voltage = CELL_VOLTAGE_MIN
    elif energy_percent > ENERGY_FLAT_END:
        ratio = (energy_percent - ENERGY_FLAT_END) / (100.0 - ENERGY_FLAT_END)
        cell_voltage = VOLTAGE_FLAT_END + ratio * (CELL_VOLTAGE_MAX - VOLTAGE_FLAT_END)
    elif energy_percent > ENERGY_GRADUAL_END:
        ratio = (energy_percent - ENERGY_GRADUAL_END) / (ENERGY_FLAT_END - ENERGY_GRADUAL_END)
        cell_voltage = VOLTAGE_GRADUAL_END + ratio * (VOLTAGE_FLAT_END - VOLTAGE_GRADUAL_END)
    else:
        ratio = (energy_percent / ENERGY_GRADUAL_END) ** (1.0 / RAPID_EXPONENT)
        cell_voltage = CELL_VOLTAGE_MIN + ratio * (VOLTAGE_GRADUAL_END - CELL_VOLTAGE_MIN)
    return cell_voltage * cell_count


def calculate_energy_consumed(
    start_voltage: float,
    end_voltage: float,
    cell_count: int,
    capacity_wh: float,
) -> float:
    """Return Wh consumed between two pack voltages (never negative)."""
    start = voltage_to_energy_percent(start_voltage, cell_count)
    end = voltage_to_energy_percent(end_voltage, cell_count)
    return max(0.0, start - end) * capacity_wh / 100.0


def remaining_energy_wh(pack_voltage: float, cell_count: int, capacity_wh: float) -> float:
    """Return remaining energy in Wh for a pack voltage."""
    return voltage_to_energy_percent(pack_voltage, cell_count) * capacity_wh / 100.0


def voltage_range(cell_count: int) -> tuple[float, float]:
    """Return (empty, full) pack voltage for a cell count."""
    return CELL_VOLTAGE_MIN * cell_count, CELL_VOLTAGE_MAX * cell_count


def is_voltage_valid(pack_voltage: float, cell_count: int) -> bool:
    """Return True when the pack voltage is physically plausible."""
    cell_voltage = pack_voltage / cell_count
    return (
        CELL_VOLTAGE_MIN - VOLTAGE_VALID_MARGIN
        <= cell_voltage
        <= CELL_VOLTAGE_MAX + VOLTAGE_VALID_MARGIN
    )
