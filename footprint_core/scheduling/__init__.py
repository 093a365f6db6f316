from .tickers import ContextHandle, PeriodicTask

__all__ = ["ContextHandle", "PeriodicTask"]
