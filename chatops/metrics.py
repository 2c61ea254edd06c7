"""In-process metrics for command executions.

Counters are cumulative and monotonic for the lifetime of the process and
safe to increment from many threads.

Example:
    meter = Meter()
    requests = meter.counter("requests", "Count of all executions", {"command": "ping"})
    requests.inc()
"""

import logging
import threading
from typing import Any, Dict, List, Tuple

logger = logging.getLogger(__name__)


class Counter:
    """Labeled cumulative counter."""

    def __init__(self, name: str, description: str, labels: Dict[str, str]):
        """Initialize counter.

        Args:
            name: Fully prefixed counter name
            description: Human readable description
            labels: Label set of this series
        """
        self.name = name
        self.description = description
        self.labels = dict(labels)
        self._value = 0
        self._lock = threading.Lock()

    def inc(self) -> None:
        """Increment the counter by one."""
        self.add(1)

    def add(self, value: int) -> None:
        """Add a value to the counter.

        Args:
            value: Non-negative amount to add

        Raises:
            ValueError: If value is negative
        """
        if value < 0:
            raise ValueError(f"counter {self.name} can only increase, got {value}")
        with self._lock:
            self._value += value

    @property
    def value(self) -> int:
        """Current counter value."""
        with self._lock:
            return self._value


class Meter:
    """Registry of labeled counters.

    Asking twice for the same name and label set returns the same counter.
    """

    def __init__(self):
        """Initialize empty meter."""
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], Counter] = {}
        self._lock = threading.Lock()

    def counter(
        self, name: str, description: str, labels: Dict[str, str], *prefixes: str
    ) -> Counter:
        """Get or create a counter.

        Args:
            name: Counter name
            description: Human readable description
            labels: Label set identifying the series
            *prefixes: Name prefixes, joined with the name by "_"

        Returns:
            Counter instance
        """
        full_name = "_".join([p for p in prefixes if p] + [name])
        key = (full_name, tuple(sorted(labels.items())))
        with self._lock:
            counter = self._counters.get(key)
            if counter is None:
                counter = Counter(full_name, description, labels)
                self._counters[key] = counter
                logger.debug(f"Created counter {full_name} {labels}")
            return counter

    def snapshot(self) -> List[Dict[str, Any]]:
        """Get the current value of every counter.

        Returns:
            List of dicts with name, description, labels and value
        """
        with self._lock:
            counters = list(self._counters.values())
        return [
            {
                "name": c.name,
                "description": c.description,
                "labels": dict(c.labels),
                "value": c.value,
            }
            for c in counters
        ]
