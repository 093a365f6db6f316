"""Log de eventos: append-only, deduplicado y con capacidad acotada.

- Deduplicación por `id` (idempotencia para entrega at-least-once)
- Eviction FIFO por orden de inserción cuando se supera la capacidad
- La eviction NO toca el índice de agregados (agregados acumulativos)

NO es thread-safe por sí mismo: el IngestionCoordinator serializa todo
acceso bajo su lock.
"""

from __future__ import annotations

import logging
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional

from .domain.visit_record import VisitRecord

logger = logging.getLogger(__name__)


@dataclass
class AppendOutcome:
    """Resultado de un append."""
    accepted: bool
    evicted: List[VisitRecord] = field(default_factory=list)

    @property
    def duplicate(self) -> bool:
        return not self.accepted


class EventLog:
    """Almacén de VisitRecord con capacidad K.

    Attributes:
        capacity: Tamaño máximo del log (default: 10000)
    """

    DEFAULT_CAPACITY = 10000

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        on_evict: Optional[Callable[[VisitRecord], None]] = None,
    ):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._on_evict = on_evict
        self._records: "OrderedDict[str, VisitRecord]" = OrderedDict()
        # origin -> registros en orden de inserción (para sumas por ventana)
        self._by_origin: Dict[str, Deque[VisitRecord]] = {}

        # Stats
        self._total_appended = 0
        self._duplicates_found = 0
        self._total_evicted = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._records)

    def contains(self, record_id: str) -> bool:
        return record_id in self._records

    def append(self, record: VisitRecord) -> AppendOutcome:
        """Agrega un registro si su id no existe.

        Returns:
            AppendOutcome con accepted=False si es duplicado, y la lista de
            registros evictados para mantener size <= capacity.
        """
        if record.id in self._records:
            self._duplicates_found += 1
            logger.debug("DEDUP duplicate record skipped id=%s", record.id)
            return AppendOutcome(accepted=False)

        self._records[record.id] = record
        self._by_origin.setdefault(record.origin, deque()).append(record)
        self._total_appended += 1

        evicted = []
        while len(self._records) > self._capacity:
            evicted.append(self._evict_oldest())

        return AppendOutcome(accepted=True, evicted=evicted)

    def resize(self, capacity: int) -> List[VisitRecord]:
        """Cambia la capacidad; si baja, evicta los más antiguos."""
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        evicted = []
        while len(self._records) > self._capacity:
            evicted.append(self._evict_oldest())
        return evicted

    def _evict_oldest(self) -> VisitRecord:
        _, oldest = self._records.popitem(last=False)

        # The globally oldest record is also the oldest of its origin.
        origin_records = self._by_origin[oldest.origin]
        origin_records.popleft()
        if not origin_records:
            del self._by_origin[oldest.origin]

        self._total_evicted += 1
        logger.debug("EVICT capacity=%d id=%s origin=%s", self._capacity, oldest.id, oldest.origin)

        if self._on_evict is not None:
            try:
                self._on_evict(oldest)
            except Exception as e:
                logger.warning("EVICT callback failed id=%s err=%s", oldest.id, e)
        return oldest

    def window_sum(self, origin: str, start: datetime, end: datetime) -> float:
        """Suma estimated_co2_g de `origin` con timestamp en [start, end].

        Ambos extremos inclusivos. Se calcula en cada llamada (la ventana
        se desliza continuamente).
        """
        total = 0.0
        for record in self._by_origin.get(origin, ()):
            if start <= record.timestamp <= end:
                total += record.estimated_co2_g
        return total

    def snapshot(self) -> List[VisitRecord]:
        """Registros en orden de inserción."""
        return list(self._records.values())

    def origins(self) -> List[str]:
        return list(self._by_origin.keys())

    def clear(self) -> int:
        """Vacía el log.

        Returns:
            Número de registros eliminados
        """
        count = len(self._records)
        self._records.clear()
        self._by_origin.clear()
        return count

    @property
    def stats(self) -> dict:
        """Estadísticas del log."""
        return {
            "size": len(self._records),
            "capacity": self._capacity,
            "total_appended": self._total_appended,
            "duplicates_found": self._duplicates_found,
            "total_evicted": self._total_evicted,
            "utilization_pct": len(self._records) / self._capacity * 100,
        }
