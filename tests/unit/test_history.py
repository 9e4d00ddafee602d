"""
Unit tests for the orchestration history log.
"""

import asyncio
from datetime import datetime

import pytest

from agent_foundry.models.core import OrchestrationRecord, RunState
from agent_foundry.orchestration.history import HistoryLog
from agent_foundry.utils.config import HistoryConfig, HistoryOrder


def record(run_id: str, success: bool = True) -> OrchestrationRecord:
    now = datetime.now()
    return OrchestrationRecord(
        run_id=run_id,
        overall_success=success,
        state=RunState.RECORDED_SUCCESS if success else RunState.RECORDED_FAILURE,
        started_at=now,
        finished_at=now,
    )


class TestHistoryLog:
    """Test cases for HistoryLog."""

    @pytest.mark.asyncio
    async def test_newest_first_by_default(self):
        history = HistoryLog()
        for run_id in ("run-1", "run-2", "run-3"):
            await history.append(record(run_id))

        assert [r.run_id for r in history.records()] == ["run-3", "run-2", "run-1"]
        assert [r.run_id for r in history.records(order="oldest_first")] == ["run-1", "run-2", "run-3"]

    @pytest.mark.asyncio
    async def test_configured_order(self):
        history = HistoryLog(HistoryConfig(order=HistoryOrder.OLDEST_FIRST))
        await history.append(record("run-1"))
        await history.append(record("run-2"))

        assert [r.run_id for r in history.records()] == ["run-1", "run-2"]

    @pytest.mark.asyncio
    async def test_limit(self):
        history = HistoryLog()
        for i in range(5):
            await history.append(record(f"run-{i}"))

        assert [r.run_id for r in history.records(limit=2)] == ["run-4", "run-3"]
        assert history.records(limit=0) == []

    @pytest.mark.asyncio
    async def test_bounded_drops_oldest(self):
        history = HistoryLog(HistoryConfig(max_records=3))
        for i in range(5):
            await history.append(record(f"run-{i}"))

        assert len(history) == 3
        assert history.total_appended == 5
        assert [r.run_id for r in history.records(order="oldest_first")] == ["run-2", "run-3", "run-4"]
        assert history.get("run-0") is None

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_all_kept(self):
        history = HistoryLog()

        await asyncio.gather(*(history.append(record(f"run-{i}")) for i in range(50)))

        assert len(history) == 50
        assert len({r.run_id for r in history.records()}) == 50

    @pytest.mark.asyncio
    async def test_get_and_snapshot_isolation(self):
        history = HistoryLog()
        await history.append(record("run-1", success=False))

        snapshot = history.records()
        await history.append(record("run-2"))

        assert len(snapshot) == 1
        assert history.get("run-1").overall_success is False
        assert history.get("run-1").state == RunState.RECORDED_FAILURE
