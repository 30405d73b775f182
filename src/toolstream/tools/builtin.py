"""Built-in, domain-neutral operations."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from .registry import ToolRegistry


class EmptyInput(BaseModel):
    pass


class TemperatureInput(BaseModel):
    value: float = Field(..., description="Temperature reading")
    unit: Literal["C", "F"] = Field(..., description="Unit of the reading: C or F")


def convert_temperature(value: float, unit: str) -> dict[str, float]:
    if unit.upper() == "F":
        celsius = (value - 32.0) * 5.0 / 9.0
        return {"celsius": round(celsius, 1), "fahrenheit": round(value, 1)}
    fahrenheit = value * 9.0 / 5.0 + 32.0
    return {"celsius": round(value, 1), "fahrenheit": round(fahrenheit, 1)}


def register_builtin_tools(registry: ToolRegistry, *, now: Callable[[], datetime] | None = None) -> None:
    """Register built-in operations."""

    register = registry.register
    clock = now or (lambda: datetime.now(UTC))

    @register(name="clock.now", short_description="Current UTC date and time", model=EmptyInput)
    def clock_now(_params: EmptyInput) -> dict[str, str | int]:
        """Return the current date, time, month and weekday in UTC."""
        current = clock()
        return {
            "iso": current.isoformat(timespec="seconds"),
            "date": current.date().isoformat(),
            "month": current.month,
            "month_name": current.strftime("%B"),
            "weekday": current.strftime("%A"),
        }

    @register(
        name="units.temperature",
        short_description="Convert a temperature between Celsius and Fahrenheit",
        model=TemperatureInput,
    )
    def units_temperature(params: TemperatureInput) -> dict[str, float]:
        """Return the reading in both units."""
        return convert_temperature(params.value, params.unit)
