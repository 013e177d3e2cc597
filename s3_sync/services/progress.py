"""
Progress tracking in 10% steps and the sink progress is reported to.
"""
from typing import Callable, Optional

from loguru import logger

from ..models.data_models import TargetResult


ProgressCallback = Callable[[str, str, int], None]


class ProgressSink:
    """
    Receives progress and terminal results per target.

    Purely observational: nothing the sink does affects the run.
    """

    def update(self, target: str, phase: str, percent: int) -> None:
        logger.info(f"{target} [{phase}] {percent}%")

    def finished(self, result: TargetResult) -> None:
        if result.success:
            logger.info(f"{result.target} [{result.phase}] done")
        else:
            logger.error(f"{result.target} [{result.phase}] failed: {result.error}")


class ProgressTracker:
    """
    Turns completed units into decile notifications.

    The percentage is floor(completed / total * 10) * 10, capped at 100, and
    only emitted when it is higher than the last emitted value.
    """

    def __init__(self, total: int, target: str, phase: str,
                 callback: Optional[ProgressCallback] = None):
        self.total = total
        self.target = target
        self.phase = phase
        self.callback = callback
        self.completed = 0
        self.percent = 0

    def advance(self, amount: int = 1) -> None:
        self.completed += amount
        if self.total <= 0:
            return
        current = min(100, (self.completed * 10 // self.total) * 10)
        if current > self.percent:
            self.percent = current
            if self.callback is not None:
                self.callback(self.target, self.phase, current)
