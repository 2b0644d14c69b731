"""Rolling performance counters for the pipeline."""

from collections import defaultdict, deque
from typing import Deque, Dict


class PerformanceMetrics:
    """Keeps the last ``window`` values of each named metric."""

    def __init__(self, window: int = 100):
        self._window = window
        self._values: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=self._window))

    def record(self, name: str, value: float = 1) -> None:
        self._values[name].append(value)

    def count(self, name: str) -> int:
        return len(self._values.get(name, ()))

    def reset(self) -> None:
        self._values.clear()

    def summary(self) -> Dict[str, Dict[str, float]]:
        """Per-metric count/sum/average/median/min/max, plus cache hit rate."""
        stats: Dict = {}
        for name, values in self._values.items():
            if not values:
                continue
            ordered = sorted(values)
            total = sum(ordered)
            stats[name] = {
                "count": len(ordered),
                "sum": round(total),
                "average": round(total / len(ordered)),
                "median": round(ordered[len(ordered) // 2]),
                "min": round(ordered[0]),
                "max": round(ordered[-1]),
            }

        compilations = self.count("successful_compilations")
        if compilations:
            stats["cache_hit_rate"] = self.count("cache_hit") / compilations * 100
        return stats
