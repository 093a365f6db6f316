"""Sink de persistencia en archivo JSON-lines (una visita por línea)."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, Union

import orjson

from ..domain.visit_record import VisitRecord

logger = logging.getLogger(__name__)


class JsonLinesSink:
    """Append-only JSONL.

    `load()` devuelve los payloads crudos; se re-validan en el borde de
    ingesta al sembrar el coordinator (bulk_load).
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: VisitRecord) -> None:
        line = orjson.dumps(record.to_dict()) + b"\n"
        with self._lock:
            with self._path.open("ab") as f:
                f.write(line)

    def load(self) -> Iterator[Dict[str, Any]]:
        if not self._path.exists():
            return
        with self._path.open("rb") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield orjson.loads(line)
                except orjson.JSONDecodeError as e:
                    logger.warning("[JSONL] skipping malformed line %s:%d err=%s", self._path, lineno, e)
