"""Known wheel battery configurations for auto-detection."""

from __future__ import annotations

from dataclasses import dataclass

from .const import CELL_VOLTAGE_MAX, SUPPORTED_CELL_COUNTS


@dataclass(frozen=True)
class BatteryConfig:
    cell_count: int
    capacity_wh: float
    nominal_voltage: float
    parallel_packs: int = 1

    @property
    def configuration(self) -> str:
        """Pack layout such as "24S2P"."""
        return f"{self.cell_count}S{self.parallel_packs}P"


@dataclass(frozen=True)
class WheelSpec:
    display_name: str
    model_identifiers: tuple[str, ...]
    manufacturer: str
    battery: BatteryConfig
    release_year: int = 0


def _wheel(
    manufacturer: str,
    name: str,
    aliases: tuple[str, ...],
    cells: int,
    capacity_wh: float,
    parallel: int,
    year: int,
) -> WheelSpec:
    display = f"{manufacturer} {name}"
    return WheelSpec(
        display_name=display,
        model_identifiers=(name, *aliases, display),
        manufacturer=manufacturer,
        battery=BatteryConfig(cells, capacity_wh, round(cells * CELL_VOLTAGE_MAX, 1), parallel),
        release_year=year,
    )


WHEEL_SPECS: tuple[WheelSpec, ...] = (
    _wheel("Begode", "Master", (), 40, 3600.0, 1, 2024),
    _wheel("Begode", "Master Pro", (), 40, 4320.0, 1, 2024),
    _wheel("Begode", "EX.N", ("EXN", "Begode EXN"), 36, 2700.0, 1, 2023),
    _wheel("Begode", "EX.N HS", ("EXNHS",), 36, 3240.0, 1, 2023),
    _wheel("Begode", "EX2", (), 36, 2700.0, 1, 2024),
    _wheel("Begode", "Extreme", (), 24, 2700.0, 2, 2022),
    _wheel("Begode", "T4", (), 24, 3600.0, 2, 2023),
    _wheel("Begode", "Hero", (), 24, 3600.0, 2, 2022),
    _wheel("Begode", "RS19", ("RS-19",), 24, 1800.0, 1, 2021),
    _wheel("Begode", "RS19 HS", ("RS-19 HS",), 24, 2700.0, 1, 2021),
    _wheel("Begode", "MCM5", (), 20, 1800.0, 2, 2020),
    _wheel("InMotion", "V14", (), 30, 3024.0, 1, 2024),
    _wheel("InMotion", "V13", (), 24, 2700.0, 2, 2023),
    _wheel("InMotion", "V12", (), 24, 1750.0, 1, 2021),
    _wheel("InMotion", "V12 HT", ("V12HT",), 24, 2400.0, 1, 2022),
    _wheel("InMotion", "V11", (), 24, 1500.0, 1, 2020),
    _wheel("InMotion", "V10F", (), 20, 960.0, 1, 2018),
    _wheel("InMotion", "V8", (), 16, 480.0, 1, 2017),
    _wheel("KingSong", "S22 Pro", ("S22Pro",), 30, 3024.0, 1, 2024),
    _wheel("KingSong", "S22", (), 30, 2520.0, 1, 2022),
    _wheel("KingSong", "S20", (), 24, 2400.0, 1, 2023),
    _wheel("KingSong", "S18", (), 24, 1110.0, 1, 2020),
    _wheel("KingSong", "16X", ("KS-16X",), 20, 1554.0, 1, 2019),
    _wheel("KingSong", "16S", ("KS-16S",), 20, 840.0, 1, 2017),
    _wheel("KingSong", "14D", ("KS-14D",), 16, 420.0, 1, 2016),
    _wheel("Veteran", "Sherman Max", ("Sherman-Max",), 30, 3600.0, 1, 2023),
    _wheel("Veteran", "Sherman", (), 24, 3200.0, 2, 2021),
    _wheel("Veteran", "Patton", (), 24, 1800.0, 1, 2023),
    _wheel("Veteran", "Abrams", (), 24, 2700.0, 2, 2022),
    _wheel("Leaperkim", "Lynx", (), 30, 2700.0, 1, 2023),
)


def find_wheel_spec(model: str | None) -> WheelSpec | None:
    """Case-insensitive lookup by any known model identifier."""
    if not model or not model.strip():
        return None
    wanted = model.strip().casefold()
    for spec in WHEEL_SPECS:
        if any(identifier.casefold() == wanted for identifier in spec.model_identifiers):
            return spec
    return None


def all_wheel_specs(manufacturer: str | None = None) -> list[WheelSpec]:
    if manufacturer is None:
        return list(WHEEL_SPECS)
    wanted = manufacturer.casefold()
    return [spec for spec in WHEEL_SPECS if spec.manufacturer.casefold() == wanted]


def all_manufacturers() -> list[str]:
    return sorted({spec.manufacturer for spec in WHEEL_SPECS})


def supported_cell_counts() -> list[int]:
    return list(SUPPORTED_CELL_COUNTS)


def create_custom_spec(
    name: str, cell_count: int, capacity_wh: float, parallel_packs: int = 1
) -> WheelSpec:
    """Describe a wheel that is not in the table."""
    return WheelSpec(
        display_name=name,
        model_identifiers=(name,),
        manufacturer="Custom",
        battery=BatteryConfig(
            cell_count, capacity_wh, round(cell_count * CELL_VOLTAGE_MAX, 1), parallel_packs
        ),
    )
