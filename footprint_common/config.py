from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _default_env_file() -> str:
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


@dataclass(frozen=True)
class Settings:
    """Configuración del núcleo de ingesta.

    Los factores de energía/CO₂ son constantes externas; no se valida su
    exactitud, solo que sean números finitos no negativos.
    """

    energy_factor: float = 1e-6  # mJ por byte
    co2_factor: float = 1e-6  # g CO₂ por byte

    alert_enabled: bool = True
    co2_threshold_g: float = 10.0
    time_threshold_s: int = 30
    window_minutes: int = 10
    check_interval_s: int = 10
    cooldown_minutes: int = 5

    log_capacity: int = 10000
    sampling_interval_s: int = 30

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "Settings":
        """Construye Settings desde el config store.

        Acepta claves snake_case, camelCase y las claves históricas del
        almacenamiento de la extensión (alert_co2_threshold_g, ...).
        Valores malformados caen al default documentado.
        """
        if not data:
            return cls()

        values: dict[str, Any] = {}
        for name, keys in _ALIASES.items():
            for key in keys:
                if key in data and data[key] is not None:
                    values[name] = data[key]
                    break
        return _coerce(values)

    def with_overrides(self, **changes: Any) -> "Settings":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


_ALIASES: dict[str, tuple[str, ...]] = {
    "energy_factor": ("energy_factor", "energyFactor", "energyFactor_mJ_per_byte"),
    "co2_factor": ("co2_factor", "co2Factor", "co2Factor_g_per_byte"),
    "alert_enabled": ("alert_enabled", "alertEnabled"),
    "co2_threshold_g": ("co2_threshold_g", "co2ThresholdG", "alert_co2_threshold_g"),
    "time_threshold_s": ("time_threshold_s", "timeThresholdS", "alert_time_threshold_s"),
    "window_minutes": ("window_minutes", "windowMinutes", "alert_window_minutes"),
    "check_interval_s": ("check_interval_s", "checkIntervalS", "alert_check_interval_s"),
    "cooldown_minutes": ("cooldown_minutes", "cooldownMinutes", "alert_cooldown_min"),
    "log_capacity": ("log_capacity", "logCapacity"),
    "sampling_interval_s": ("sampling_interval_s", "samplingInterval_s"),
}


def _parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw != 0
    v = str(raw).strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _non_negative_float(raw: Any) -> float:
    v = float(raw)
    if not math.isfinite(v) or v < 0:
        raise ValueError(f"expected finite non-negative number, got {raw!r}")
    return v


def _non_negative_int(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValueError("boolean is not an integer")
    v = _non_negative_float(raw)
    if v != int(v):
        raise ValueError(f"expected integer, got {raw!r}")
    return int(v)


def _positive_int(raw: Any) -> int:
    v = _non_negative_int(raw)
    if v == 0:
        raise ValueError("expected a positive integer")
    return v


_PARSERS: dict[str, Callable[[Any], Any]] = {
    "energy_factor": _non_negative_float,
    "co2_factor": _non_negative_float,
    "alert_enabled": _parse_bool,
    "co2_threshold_g": _non_negative_float,
    "time_threshold_s": _non_negative_int,
    "window_minutes": _positive_int,
    "check_interval_s": _positive_int,
    "cooldown_minutes": _non_negative_int,
    "log_capacity": _positive_int,
    "sampling_interval_s": _positive_int,
}


def _coerce(values: Mapping[str, Any]) -> Settings:
    defaults = Settings()
    parsed: dict[str, Any] = {}
    for name, raw in values.items():
        try:
            parsed[name] = _PARSERS[name](raw)
        except (TypeError, ValueError) as e:
            logger.warning(
                "[CONFIG] invalid value for %s=%r (%s); using default %r",
                name, raw, e, getattr(defaults, name),
            )
    return replace(defaults, **parsed)


_ENV_VARS: dict[str, str] = {
    "energy_factor": "FOOTPRINT_ENERGY_FACTOR",
    "co2_factor": "FOOTPRINT_CO2_FACTOR",
    "alert_enabled": "FOOTPRINT_ALERT_ENABLED",
    "co2_threshold_g": "FOOTPRINT_ALERT_CO2_THRESHOLD_G",
    "time_threshold_s": "FOOTPRINT_ALERT_TIME_THRESHOLD_S",
    "window_minutes": "FOOTPRINT_ALERT_WINDOW_MINUTES",
    "check_interval_s": "FOOTPRINT_ALERT_CHECK_INTERVAL_S",
    "cooldown_minutes": "FOOTPRINT_ALERT_COOLDOWN_MINUTES",
    "log_capacity": "FOOTPRINT_LOG_CAPACITY",
    "sampling_interval_s": "FOOTPRINT_SAMPLING_INTERVAL_S",
}


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("FOOTPRINT_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    values = {
        name: os.environ[var]
        for name, var in _ENV_VARS.items()
        if os.environ.get(var, "").strip() != ""
    }
    return _coerce(values)


def env_number(var: str, default: float) -> float:
    """Número finito no negativo desde el entorno; malformado -> default con warning."""
    raw = os.getenv(var, "").strip()
    if raw == "":
        return default
    try:
        return _non_negative_float(raw)
    except ValueError as e:
        logger.warning("[CONFIG] invalid value for %s=%r (%s); using default %r", var, raw, e, default)
        return default
