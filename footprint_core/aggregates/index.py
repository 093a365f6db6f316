"""Índice de agregados por día y por origen.

Se mantiene incrementalmente en cada ingesta aceptada; nunca se
reconstruye desde el log en el hot path. Los agregados son acumulativos:
la eviction del log no los decrementa.

NO es thread-safe por sí mismo (el coordinator mantiene el lock).
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

from ..domain.visit_record import VisitRecord
from .models import Aggregate, DayTotal, OriginTotal

logger = logging.getLogger(__name__)


class AggregateIndex:
    """Dos mapas derivados: day -> Aggregate, origin -> Aggregate.

    Los dicts preservan el orden de creación de cada bucket; el ranking de
    orígenes usa un sort estable, así que en empates gana el primer origen
    observado.
    """

    ORDER_FIELDS = {
        "bytes": "total_bytes",
        "co2": "total_co2_g",
        "visits": "visit_count",
    }

    # ~10 años de serie diaria
    MAX_DAYS = 3660

    def __init__(self) -> None:
        self._by_day: Dict[str, Aggregate] = {}
        self._by_origin: Dict[str, Aggregate] = {}

    def update(self, record: VisitRecord) -> None:
        """Aplica un registro aceptado (no duplicado) a ambos mapas."""
        day_bucket = self._by_day.get(record.day)
        if day_bucket is None:
            day_bucket = self._by_day[record.day] = Aggregate()

        origin_bucket = self._by_origin.get(record.origin)
        if origin_bucket is None:
            origin_bucket = self._by_origin[record.origin] = Aggregate()
            logger.debug("AGG new origin bucket origin=%s", record.origin)

        day_bucket.add(record.transfer_bytes, record.estimated_co2_g)
        origin_bucket.add(record.transfer_bytes, record.estimated_co2_g)

    def by_day_snapshot(self, last_n_days: int, today: date) -> List[DayTotal]:
        """Serie de los últimos N días terminando en `today`, más antiguo primero.

        Siempre retorna exactamente N entradas; días sin bucket valen 0.
        """
        if last_n_days < 0:
            raise ValueError("last_n_days must be >= 0")
        if last_n_days > self.MAX_DAYS:
            raise ValueError(f"last_n_days must be <= {self.MAX_DAYS}")

        series: List[DayTotal] = []
        for offset in range(last_n_days - 1, -1, -1):
            day = (today - timedelta(days=offset)).isoformat()
            bucket = self._by_day.get(day)
            if bucket is None:
                series.append(DayTotal(day, 0, 0, 0.0))
            else:
                series.append(DayTotal(day, bucket.visit_count, bucket.total_bytes, bucket.total_co2_g))
        return series

    def by_origin_snapshot(self, top_k: int = 10, order_by: str = "bytes") -> List[OriginTotal]:
        """Orígenes ordenados de forma descendente por `order_by`, truncado a top_k."""
        attr = self.ORDER_FIELDS.get(order_by)
        if attr is None:
            raise ValueError(f"order_by must be one of {sorted(self.ORDER_FIELDS)}, got {order_by!r}")
        if top_k < 0:
            raise ValueError("top_k must be >= 0")

        ranked = sorted(
            self._by_origin.items(),
            key=lambda item: getattr(item[1], attr),
            reverse=True,
        )
        return [
            OriginTotal(origin, agg.visit_count, agg.total_bytes, agg.total_co2_g)
            for origin, agg in ranked[:top_k]
        ]

    def day(self, day: str) -> Optional[Aggregate]:
        bucket = self._by_day.get(day)
        return bucket.copy() if bucket else None

    def origin(self, origin: str) -> Optional[Aggregate]:
        bucket = self._by_origin.get(origin)
        return bucket.copy() if bucket else None

    def all_days(self) -> Dict[str, Aggregate]:
        return {k: v.copy() for k, v in self._by_day.items()}

    def all_origins(self) -> Dict[str, Aggregate]:
        return {k: v.copy() for k, v in self._by_origin.items()}

    def totals(self) -> Aggregate:
        """Totales por escaneo completo de los buckets por día."""
        total = Aggregate()
        for bucket in self._by_day.values():
            total.visit_count += bucket.visit_count
            total.total_bytes += bucket.total_bytes
            total.total_co2_g += bucket.total_co2_g
        return total

    def reset(self) -> None:
        self._by_day.clear()
        self._by_origin.clear()
