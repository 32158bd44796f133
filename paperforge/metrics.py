"""Simple in-process metrics registry for assembly instrumentation."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class MetricsRegistry:
    """Holds counters and histograms exposed by the application."""

    assembly_attempts: int = 0
    assembly_successes: int = 0
    assembly_failures: int = 0
    fallback_strategies: Counter = field(default_factory=Counter)
    selected_item_counts: List[int] = field(default_factory=list)
    shortfall_histogram: Counter = field(default_factory=Counter)
    feasibility_checks: int = 0
    committed_items: int = 0

    def record_assembly_attempt(self) -> None:
        self.assembly_attempts += 1

    def record_assembly_result(self, success: bool, selected: int, requested: int, fallbacks: List[str]) -> None:
        if success:
            self.assembly_successes += 1
        else:
            self.assembly_failures += 1
        self.selected_item_counts.append(selected)
        for strategy in fallbacks:
            self.fallback_strategies[strategy] += 1
        shortfall = max(requested - selected, 0)
        if shortfall:
            self.shortfall_histogram[shortfall] += 1

    def record_feasibility_check(self) -> None:
        self.feasibility_checks += 1

    def record_commit(self, item_count: int) -> None:
        self.committed_items += item_count

    @property
    def assembly_success_rate(self) -> float:
        if self.assembly_attempts == 0:
            return 0.0
        return self.assembly_successes / self.assembly_attempts

    def snapshot(self) -> Dict[str, object]:
        return {
            "assembly_attempts": self.assembly_attempts,
            "assembly_successes": self.assembly_successes,
            "assembly_failures": self.assembly_failures,
            "assembly_success_rate": self.assembly_success_rate,
            "fallback_strategies": dict(self.fallback_strategies),
            "shortfall_histogram": {str(key): value for key, value in self.shortfall_histogram.items()},
            "feasibility_checks": self.feasibility_checks,
            "committed_items": self.committed_items,
        }


METRICS = MetricsRegistry()

__all__ = ["METRICS", "MetricsRegistry"]
