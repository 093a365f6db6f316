"""Validación y normalización de registros de visita en el borde de ingesta.

Los colectores envían payloads con nombres de campo alternativos
(`ts`/`timestamp`/`date`, `host`/`origin`, `bytes`/`transferBytes`, ...).
La resolución de alias ocurre UNA sola vez aquí; el núcleo solo ve
VisitRecord.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from footprint_common.clock import as_utc
from footprint_common.config import Settings
from .visit_record import VisitRecord

logger = logging.getLogger(__name__)


# canonical -> aliases, in priority order
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "visitId", "visit_id"),
    "timestamp": ("timestamp", "ts", "date"),
    "origin": ("origin", "host"),
    "url": ("url",),
    "title": ("title",),
    "transfer_bytes": ("transfer_bytes", "transferBytes", "bytes"),
    "estimated_co2_g": ("estimated_co2_g", "estimatedCO2_g", "co2"),
    "resource_count": ("resource_count", "resourceCount"),
    "load_time_ms": ("load_time_ms", "loadTimeMs"),
    "first_contentful_paint_ms": ("first_contentful_paint_ms", "firstContentPaintMs"),
    "long_tasks": ("long_tasks", "longTasks"),
}

# camelCase names emitted by the collector are not legacy
_PREFERRED_WIRE_NAMES = frozenset({
    "ts", "transferBytes", "estimatedCO2_g", "resourceCount", "loadTimeMs",
    "firstContentPaintMs", "longTasks",
})


def _safe_number(v: Any) -> float:
    """Número finito no negativo, o 0."""
    if isinstance(v, bool):
        return 0.0
    try:
        n = float(v)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(n) or n < 0:
        return 0.0
    return n


class VisitRecordPayload(BaseModel):
    """Schema canónico (snake_case) de un registro de visita."""

    model_config = ConfigDict(extra="ignore")

    id: str
    timestamp: datetime
    origin: str
    transfer_bytes: int = 0
    estimated_co2_g: Optional[float] = None
    url: Optional[str] = None
    title: Optional[str] = None
    resource_count: int = 0
    load_time_ms: int = 0
    first_contentful_paint_ms: Optional[int] = None
    long_tasks: int = 0

    @field_validator("id", "origin", mode="before")
    @classmethod
    def validate_identity(cls, v):
        if v is None:
            raise ValueError("is required")
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            v = str(v)
        if not isinstance(v, str) or not v.strip():
            raise ValueError("must be a non-empty string")
        return v.strip()

    @field_validator("url", "title", mode="before")
    @classmethod
    def normalize_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return as_utc(v)

    @field_validator(
        "transfer_bytes", "resource_count", "load_time_ms", "long_tasks",
        mode="before",
    )
    @classmethod
    def normalize_count(cls, v):
        return int(_safe_number(v))

    @field_validator("first_contentful_paint_ms", mode="before")
    @classmethod
    def normalize_optional_ms(cls, v):
        if v is None:
            return None
        return int(_safe_number(v))

    @field_validator("estimated_co2_g", mode="before")
    @classmethod
    def normalize_co2(cls, v):
        if v is None:
            return None
        return _safe_number(v)

    def to_record(self, settings: Optional[Settings] = None) -> VisitRecord:
        """Convierte a VisitRecord derivando energía (y CO₂ si falta)."""
        settings = settings or Settings()
        co2 = self.estimated_co2_g
        if co2 is None:
            co2 = _safe_number(self.transfer_bytes * settings.co2_factor)
        return VisitRecord(
            id=self.id,
            timestamp=self.timestamp,
            origin=self.origin,
            transfer_bytes=self.transfer_bytes,
            estimated_co2_g=co2,
            estimated_energy_mj=_safe_number(self.transfer_bytes * settings.energy_factor),
            url=self.url,
            title=self.title,
            resource_count=self.resource_count,
            load_time_ms=self.load_time_ms,
            first_contentful_paint_ms=self.first_contentful_paint_ms,
            long_tasks=self.long_tasks,
        )


@dataclass
class ValidationResult:
    """Resultado de validación."""

    valid: bool
    record: Optional[VisitRecord] = None
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)


def resolve_aliases(data: Mapping[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Mapea nombres alternativos a los campos canónicos.

    Returns:
        (datos canónicos, warnings por alias usados)
    """
    resolved: dict[str, Any] = {}
    warnings: list[str] = []
    for canonical, aliases in _FIELD_ALIASES.items():
        for key in aliases:
            if key in data and data[key] is not None:
                resolved[canonical] = data[key]
                if key != canonical and key not in _PREFERRED_WIRE_NAMES:
                    warnings.append(f"Used legacy field {key} for {canonical}")
                break

    if "origin" not in resolved and resolved.get("url"):
        try:
            host = urlsplit(str(resolved["url"])).hostname
        except ValueError:
            host = None
        if host:
            resolved["origin"] = host
            warnings.append("Derived origin from url hostname")

    return resolved, warnings


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "record"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def validate_visit_record(
    data: Any,
    settings: Optional[Settings] = None,
) -> ValidationResult:
    """Valida un payload de visita.

    Nunca lanza: un registro inválido se reporta en el resultado.

    Args:
        data: Diccionario con el registro tal como lo envía el colector
        settings: Factores de energía/CO₂ (default: Settings())

    Returns:
        ValidationResult con VisitRecord o error
    """
    if not isinstance(data, Mapping):
        return ValidationResult(valid=False, error="record must be an object")

    resolved, warnings = resolve_aliases(data)
    try:
        payload = VisitRecordPayload(**resolved)
    except ValidationError as e:
        error = _format_errors(e)
        logger.warning("[VALIDATOR] invalid visit record id=%s err=%s", resolved.get("id"), error)
        return ValidationResult(valid=False, error=error, warnings=warnings)

    return ValidationResult(
        valid=True,
        record=payload.to_record(settings),
        warnings=warnings,
    )


def normalize_visit_record(record: VisitRecord) -> ValidationResult:
    """Re-chequea un VisitRecord construido fuera del borde de ingesta.

    id/origin vacíos invalidan el registro; timestamps naive se asumen
    UTC; números no finitos o negativos quedan en 0.
    """
    if not isinstance(record, VisitRecord):
        return ValidationResult(valid=False, error="record must be a VisitRecord")

    missing = [
        name for name in ("id", "origin")
        if not isinstance(getattr(record, name), str) or not getattr(record, name).strip()
    ]
    if missing:
        error = "; ".join(f"{name}: must be a non-empty string" for name in missing)
        logger.warning("[VALIDATOR] invalid visit record id=%r err=%s", record.id, error)
        return ValidationResult(valid=False, error=error)
    if not isinstance(record.timestamp, datetime):
        return ValidationResult(valid=False, error="timestamp: must be a datetime")

    fpm = record.first_contentful_paint_ms
    normalized = replace(
        record,
        id=record.id.strip(),
        origin=record.origin.strip(),
        timestamp=as_utc(record.timestamp),
        transfer_bytes=int(_safe_number(record.transfer_bytes)),
        estimated_co2_g=_safe_number(record.estimated_co2_g),
        estimated_energy_mj=_safe_number(record.estimated_energy_mj),
        resource_count=int(_safe_number(record.resource_count)),
        load_time_ms=int(_safe_number(record.load_time_ms)),
        first_contentful_paint_ms=None if fpm is None else int(_safe_number(fpm)),
        long_tasks=int(_safe_number(record.long_tasks)),
    )
    return ValidationResult(valid=True, record=normalized)
