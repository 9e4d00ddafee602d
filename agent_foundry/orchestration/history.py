"""
Append-only orchestration history for Agent Foundry.
"""

import asyncio
from collections import deque
from typing import Deque, List, Optional, Union

from ..models.core import OrchestrationRecord
from ..utils.config import HistoryConfig, HistoryOrder, get_config
from ..utils.logging import get_logger


class HistoryLog:
    """
    Bounded, append-only log of orchestration runs in completion order.

    When `max_records` is set the oldest records are dropped first. Reads
    return copies, so callers never observe a later append mid-iteration.
    """

    def __init__(self, config: Optional[HistoryConfig] = None):
        self.config = config or get_config().history
        self.logger = get_logger(__name__)
        self._records: Deque[OrchestrationRecord] = deque(maxlen=self.config.max_records)
        self._lock = asyncio.Lock()
        self._total_appended = 0

    async def append(self, record: OrchestrationRecord) -> None:
        """Append a finished run."""
        async with self._lock:
            dropped = self.config.max_records is not None and len(self._records) == self.config.max_records
            self._records.append(record)
            self._total_appended += 1

        self.logger.info(
            "Recorded orchestration run",
            run_id=record.run_id,
            state=record.state.value,
            success=record.overall_success,
            dropped_oldest=dropped
        )

    def records(
        self,
        order: Optional[Union[HistoryOrder, str]] = None,
        limit: Optional[int] = None
    ) -> List[OrchestrationRecord]:
        """
        Snapshot of the history.

        Args:
            order: newest_first or oldest_first; defaults to the configured order
            limit: Maximum number of records, taken from the front of the ordering

        Returns:
            List of records
        """
        order = HistoryOrder(order) if order is not None else self.config.order
        snapshot = list(self._records)
        if order == HistoryOrder.NEWEST_FIRST:
            snapshot.reverse()
        if limit is not None:
            snapshot = snapshot[:max(0, limit)]
        return snapshot

    def get(self, run_id: str) -> Optional[OrchestrationRecord]:
        for record in reversed(self._records):
            if record.run_id == run_id:
                return record
        return None

    @property
    def total_appended(self) -> int:
        """Runs recorded since start, including any no longer retained."""
        return self._total_appended

    def __len__(self) -> int:
        return len(self._records)
