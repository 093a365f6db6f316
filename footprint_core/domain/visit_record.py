"""Registro canónico de una visita de página.

Un VisitRecord se crea una sola vez en el borde de ingesta (ver
validators.py) y no se modifica después de ser agregado al log.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class VisitRecord:
    """Telemetría de una visita.

    Identidad: `id`. Dos registros con el mismo id son el mismo registro
    (entrega at-least-once desde los colectores).
    """

    id: str
    timestamp: datetime
    origin: str
    transfer_bytes: int = 0
    estimated_co2_g: float = 0.0

    # Campos opcionales del colector
    estimated_energy_mj: float = 0.0
    url: Optional[str] = None
    title: Optional[str] = None
    resource_count: int = 0
    load_time_ms: int = 0
    first_contentful_paint_ms: Optional[int] = None
    long_tasks: int = 0

    @property
    def day(self) -> str:
        """Día calendario UTC (YYYY-MM-DD)."""
        return self.timestamp.date().isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Serialización plana para export/persistencia."""
        return {
            "id": self.id,
            "ts": self.timestamp.isoformat(),
            "origin": self.origin,
            "url": self.url,
            "title": self.title,
            "transferBytes": self.transfer_bytes,
            "resourceCount": self.resource_count,
            "loadTimeMs": self.load_time_ms,
            "firstContentPaintMs": self.first_contentful_paint_ms,
            "longTasks": self.long_tasks,
            "estimatedCO2_g": self.estimated_co2_g,
            "estimatedEnergy_mJ": self.estimated_energy_mj,
        }
