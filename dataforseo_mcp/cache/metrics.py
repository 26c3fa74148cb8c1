"""Counters for cache behaviour, including the failures the dispatch swallows."""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class CacheMetrics:
    """In-process counters for the read-through cache.

    Cache read and write failures never reach callers; they are counted here.
    """

    hits: int = 0
    partial_hits: int = 0
    misses: int = 0
    bypasses: int = 0
    upstream_calls: int = 0
    read_failures: int = 0
    write_failures: int = 0
    log_failures: int = 0
    dropped_items: int = 0
    rows_written: int = 0
    per_tool: Dict[str, Dict[str, int]] = field(
        default_factory=lambda: defaultdict(lambda: defaultdict(int))
    )

    def _tool(self, tool_name: str, key: str, amount: int = 1) -> None:
        self.per_tool[tool_name][key] += amount

    def record_hit(self, tool_name: str) -> None:
        """Record a request served entirely from cache."""
        self.hits += 1
        self._tool(tool_name, "hits")

    def record_partial_hit(self, tool_name: str) -> None:
        """Record a request where only some keys were cached."""
        self.partial_hits += 1
        self._tool(tool_name, "partial_hits")

    def record_miss(self, tool_name: str) -> None:
        self.misses += 1
        self._tool(tool_name, "misses")

    def record_bypass(self, tool_name: str) -> None:
        self.bypasses += 1
        self._tool(tool_name, "bypasses")

    def record_upstream_call(self, tool_name: str) -> None:
        self.upstream_calls += 1
        self._tool(tool_name, "upstream_calls")

    def record_read_failure(self, tool_name: str) -> None:
        self.read_failures += 1
        self._tool(tool_name, "read_failures")

    def record_write_failure(self, tool_name: str) -> None:
        self.write_failures += 1
        self._tool(tool_name, "write_failures")

    def record_log_failure(self, tool_name: str) -> None:
        self.log_failures += 1

    def record_dropped(self, count: int) -> None:
        """Record batch items discarded for lacking a usable keyword."""
        self.dropped_items += count

    def record_written(self, count: int) -> None:
        self.rows_written += count

    def hit_rate(self) -> float:
        """Share of cache-eligible requests answered without upstream, in percent."""
        total = self.hits + self.partial_hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total * 100

    def snapshot(self) -> Dict[str, Any]:
        """Get current metrics summary."""
        return {
            "hits": self.hits,
            "partial_hits": self.partial_hits,
            "misses": self.misses,
            "bypasses": self.bypasses,
            "hit_rate": f"{self.hit_rate():.2f}%",
            "upstream_calls": self.upstream_calls,
            "read_failures": self.read_failures,
            "write_failures": self.write_failures,
            "log_failures": self.log_failures,
            "dropped_items": self.dropped_items,
            "rows_written": self.rows_written,
            "per_tool": {name: dict(counts) for name, counts in self.per_tool.items()},
        }
