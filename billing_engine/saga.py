"""
Saga

Records a compensating action for every completed step of a multi-entity
operation so a failure can undo them in reverse order.
"""

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class Saga:
    """Ordered list of compensations for one operation."""

    def __init__(self, name: str):
        self.name = name
        self._compensations: list[tuple[str, Callable[[], None]]] = []

    def record(self, step: str, compensation: Callable[[], None]) -> None:
        self._compensations.append((step, compensation))

    @property
    def steps(self) -> list[str]:
        return [step for step, _ in self._compensations]

    def compensate(self) -> list[str]:
        """
        Run compensations newest-first.

        Every compensation is attempted even if an earlier one raises; the
        names of failed compensations are returned so the caller can report
        them.
        """
        failed = []
        while self._compensations:
            step, compensation = self._compensations.pop()
            try:
                compensation()
                logger.info(f"[{self.name}] compensated step: {step}")
            except Exception as e:
                logger.error(f"[{self.name}] compensation for step '{step}' failed: {str(e)}", exc_info=True)
                failed.append(step)
        return failed
