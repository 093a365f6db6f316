"""Intensidad de carbono de la red eléctrica por país (gCO2/kWh).

Resolución:
1. Mapa estático (casos comunes)
2. Dataset remoto opcional (FOOTPRINT_CARBON_SOURCE_URL), JSON o CSV,
   cacheado en memoria con TTL
3. Fallback global

Un fallo del dataset remoto nunca se propaga: se loguea y se usa el
fallback.
"""

from __future__ import annotations

import io
import logging
import os
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

import pandas as pd
import requests

from footprint_common.config import env_number

logger = logging.getLogger(__name__)

DEFAULT_INTENSITY_G_PER_KWH = 445.0
DEFAULT_CACHE_TTL_SECONDS = 24 * 3600

STATIC_MAP: Dict[str, float] = {
    "GLOBAL": DEFAULT_INTENSITY_G_PER_KWH,
    "US": 357.0,
    "GB": 200.0,
    "DE": 300.0,
    "BD": 700.0,
    "IN": 700.0,
    "CN": 681.0,
    "FR": 57.0,
}

_CODE_KEYS = ("country", "code", "COUNTRY", "iso", "ISO", "Country")
_VALUE_KEYS = ("gCO2_per_kWh", "gCO2", "intensity", "value")


@dataclass(frozen=True)
class CarbonIntensity:
    country: str
    g_co2_per_kwh: float
    source: str
    last_updated: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "country": self.country,
            "gCO2_per_kWh": self.g_co2_per_kwh,
            "source": self.source,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }


def normalize_country(raw: Optional[str]) -> str:
    """'us-ca' -> 'US'; vacío -> 'GLOBAL'."""
    upper = (raw or "GLOBAL").upper()
    head = re.split(r"[^A-Z]", upper, maxsplit=1)[0]
    return head or "GLOBAL"


def parse_csv_dataset(text: str) -> Dict[str, float]:
    """CSV con header. Columnas de país y valor por nombre, o las dos primeras.

    Filas sin valor numérico se descartan.
    """
    try:
        df = pd.read_csv(io.StringIO(text), dtype=str, skipinitialspace=True)
    except pd.errors.EmptyDataError:
        return {}
    df.columns = [str(c).strip() for c in df.columns]
    if len(df.columns) < 2:
        return {}

    code_col = next((c for c in _CODE_KEYS if c in df.columns), df.columns[0])
    value_col = next((c for c in _VALUE_KEYS if c in df.columns), df.columns[1])
    values = pd.to_numeric(df[value_col], errors="coerce")

    mapping: Dict[str, float] = {}
    for code, value in zip(df[code_col], values):
        if pd.isna(code) or pd.isna(value):
            continue
        mapping[str(code).strip().upper()] = float(value)
    return mapping


def lookup_in_dataset(dataset: Any, country: str, raw_country: str) -> Optional[float]:
    """Busca el país en un dataset que puede ser lista de objetos o mapa."""
    found: Optional[float] = None

    if isinstance(dataset, list):
        for item in dataset:
            if not isinstance(item, dict):
                continue
            code = next((item[k] for k in _CODE_KEYS if item.get(k) is not None), None)
            value = next((item[k] for k in _VALUE_KEYS if item.get(k) is not None), None)
            if code is not None and str(code).upper() == country and value is not None:
                found = _to_float(value)
                break

    elif isinstance(dataset, dict):
        direct = dataset.get(country, dataset.get(raw_country))
        if direct is not None:
            found = _to_float(direct)
        if found is None:
            # a veces viene indexado por nombre completo del país
            key = next((k for k in dataset if str(k).upper().startswith(country)), None)
            if key is not None:
                found = _to_float(dataset[key])

    return found


def _to_float(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return None if result != result else result


class CarbonIntensityProvider:
    """Proveedor con cache TTL del dataset remoto.

    Uso:
        provider = CarbonIntensityProvider.from_env()
        provider.get("BD").g_co2_per_kwh  # 700.0
    """

    def __init__(
        self,
        source_url: Optional[str] = None,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        fallback: float = DEFAULT_INTENSITY_G_PER_KWH,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        time_fn: Callable[[], float] = time.monotonic,
    ):
        self.source_url = source_url
        self.cache_ttl_seconds = cache_ttl_seconds
        self.fallback = fallback
        self.timeout = timeout
        self._session = session or requests.Session()
        self._time_fn = time_fn

        self._static = dict(STATIC_MAP)
        self._static["GLOBAL"] = fallback

        self._lock = threading.Lock()
        self._dataset: Any = None
        self._cached_at: Optional[float] = None
        self._fetched_at: Optional[datetime] = None

        # Stats
        self._fetches = 0
        self._fetch_errors = 0

    @classmethod
    def from_env(cls) -> "CarbonIntensityProvider":
        return cls(
            source_url=os.getenv("FOOTPRINT_CARBON_SOURCE_URL") or None,
            cache_ttl_seconds=env_number("FOOTPRINT_CARBON_CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS),
            fallback=env_number("FOOTPRINT_DEFAULT_INTENSITY", DEFAULT_INTENSITY_G_PER_KWH),
        )

    def get(self, country: Optional[str] = None) -> CarbonIntensity:
        raw = (country or "GLOBAL").upper()
        code = normalize_country(raw)

        if code in self._static:
            return CarbonIntensity(code, self._static[code], "static_map")

        if self.source_url:
            dataset = self._load_dataset()
            if dataset is not None:
                found = lookup_in_dataset(dataset, code, raw)
                if found is not None:
                    return CarbonIntensity(code, found, self.source_url, self._fetched_at)

        return CarbonIntensity(code, self.fallback, "fallback_default")

    def _load_dataset(self) -> Any:
        with self._lock:
            now = self._time_fn()
            if (
                self._dataset is not None
                and self._cached_at is not None
                and now - self._cached_at < self.cache_ttl_seconds
            ):
                return self._dataset

            self._fetches += 1
            try:
                response = self._session.get(self.source_url, timeout=self.timeout)
                if not response.ok:
                    self._fetch_errors += 1
                    logger.warning(
                        "[CARBON] remote fetch failed url=%s status=%s",
                        self.source_url, response.status_code,
                    )
                    return None
                content_type = response.headers.get("content-type", "")
                if "application/json" in content_type:
                    dataset = response.json()
                else:
                    dataset = parse_csv_dataset(response.text)
            except (requests.RequestException, ValueError) as e:
                self._fetch_errors += 1
                logger.warning("[CARBON] fetch error url=%s err=%s", self.source_url, e)
                return None

            self._dataset = dataset
            self._cached_at = now
            self._fetched_at = datetime.now(timezone.utc)
            logger.info("[CARBON] dataset refreshed url=%s", self.source_url)
            return dataset

    def get_stats(self) -> dict:
        return {
            "source_url": self.source_url,
            "cached": self._dataset is not None,
            "fetches": self._fetches,
            "fetch_errors": self._fetch_errors,
        }
