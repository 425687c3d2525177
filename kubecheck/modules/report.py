"""Reporters receive check results as a run produces them."""
import logging
from typing import List

from .models import CheckResult

logger = logging.getLogger("kubecheck.report")


class Reporter:
    """Base reporter; ignores everything."""

    def start_stage(self, name: str) -> None:
        pass

    def record(self, result: CheckResult) -> None:
        pass

    def finish(self, passed: bool) -> None:
        pass


class LogReporter(Reporter):
    """Writes human readable check lines to the log."""

    def __init__(self, log: logging.Logger = logger):
        self.log = log

    def start_stage(self, name: str) -> None:
        self.log.info(f"{name}\n--------------------")

    def record(self, result: CheckResult) -> None:
        if result.passed:
            self.log.info(f"✅ {result.detail}")
        else:
            self.log.error(f"❌ {result.detail}")

    def finish(self, passed: bool) -> None:
        if passed:
            self.log.info("Status check results are ✅")
        else:
            self.log.error("Status check results are ❌")


class CollectingReporter(Reporter):
    """Keeps stage names and results in memory."""

    def __init__(self):
        self.stages: List[str] = []
        self.results: List[CheckResult] = []
        self.passed = None

    def start_stage(self, name: str) -> None:
        self.stages.append(name)

    def record(self, result: CheckResult) -> None:
        self.results.append(result)

    def finish(self, passed: bool) -> None:
        self.passed = passed
