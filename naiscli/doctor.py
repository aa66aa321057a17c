"""Health examinations made of checks that run concurrently."""

from __future__ import annotations

import enum
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable


class Result(enum.Enum):
    """Outcome of a single check."""

    OK = 0
    ERROR = 1


@dataclass(frozen=True)
class CheckReport:
    """What a check found."""

    check_name: str
    result: Result
    err_msg: str = ""


@dataclass
class Check:
    """A named check whose worker produces a report."""

    name: str
    worker: Callable[[], CheckReport]


@dataclass
class Examination:
    """A group of checks run together."""

    name: str
    checks: list[Check] = field(default_factory=list)

    def run(self) -> dict[str, CheckReport]:
        """Run every check concurrently and return reports keyed by check name."""
        print(f"Running {len(self.checks)} check(s)")
        results: dict[str, CheckReport] = {}
        with ThreadPoolExecutor(max_workers=max(1, len(self.checks))) as pool:
            futures = [pool.submit(check.worker) for check in self.checks]
            for future in as_completed(futures):
                report = future.result()
                results[report.check_name] = report
        return results