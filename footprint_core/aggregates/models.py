"""Data models for the aggregate index."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class Aggregate:
    """Cumulative counters for one bucket (a UTC day or an origin).

    Mutable; owned by AggregateIndex. Snapshots hand out copies.
    """

    visit_count: int = 0
    total_bytes: int = 0
    total_co2_g: float = 0.0

    def add(self, transfer_bytes: int, co2_g: float) -> None:
        self.visit_count += 1
        self.total_bytes += transfer_bytes
        self.total_co2_g += co2_g

    def copy(self) -> "Aggregate":
        return Aggregate(self.visit_count, self.total_bytes, self.total_co2_g)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "visit_count": self.visit_count,
            "total_bytes": self.total_bytes,
            "total_co2_g": self.total_co2_g,
        }


@dataclass(frozen=True)
class DayTotal:
    """One entry of the fixed-width day series."""

    day: str  # YYYY-MM-DD
    visit_count: int
    total_bytes: int
    total_co2_g: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day,
            "visit_count": self.visit_count,
            "total_bytes": self.total_bytes,
            "total_co2_g": self.total_co2_g,
        }


@dataclass(frozen=True)
class OriginTotal:
    """One entry of the top-origins ranking."""

    origin: str
    visit_count: int
    total_bytes: int
    total_co2_g: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin,
            "visit_count": self.visit_count,
            "total_bytes": self.total_bytes,
            "total_co2_g": self.total_co2_g,
        }
