"""Aggregate index (by day, by origin)."""

from .index import AggregateIndex
from .models import Aggregate, DayTotal, OriginTotal

__all__ = [
    "AggregateIndex",
    "Aggregate",
    "DayTotal",
    "OriginTotal",
]
