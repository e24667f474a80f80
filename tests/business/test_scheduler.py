"""Scheduler and background refresh tests."""
import asyncio

import pytest

from business.scheduler import Scheduler, refresh_snapshot_task, schedule_refresh
from database.errors import GatewayError
from database.store import ConnectionStatus, EntityStore


@pytest.fixture
def event_loop_for_scheduler():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


class TestRefreshTask:
    """Test the snapshot refresh callback."""

    def test_skipped_until_connected(self, memory_gateway):
        task = refresh_snapshot_task(EntityStore(memory_gateway))
        assert task() is False
        assert memory_gateway.calls == []

    def test_refreshes_when_connected(self, store, memory_gateway):
        memory_gateway.seed("clinics", name="新诊所")
        assert refresh_snapshot_task(store)() is True
        assert [c.name for c in store.clinics] == ["新诊所"]

    def test_load_error_keeps_snapshot(self, store, memory_gateway):
        store.add_clinic(name="阳光口腔")
        memory_gateway.fail_on[("select", "orders")] = GatewayError("timeout")
        assert refresh_snapshot_task(store)() is False
        assert [c.name for c in store.clinics] == ["阳光口腔"]
        assert store.status == ConnectionStatus.ERROR


class TestScheduler:
    """Test job registration."""

    def test_schedule_refresh_registers_job(self, store, event_loop_for_scheduler):
        scheduler = Scheduler(loop=event_loop_for_scheduler)
        schedule_refresh(scheduler, store, seconds=5)
        job = scheduler.get_job("snapshot_refresh")
        assert job is not None
        assert job.name == "快照刷新"
        assert job.trigger.interval.total_seconds() == 5

    def test_remove_job(self, store, event_loop_for_scheduler):
        scheduler = Scheduler(loop=event_loop_for_scheduler)
        schedule_refresh(scheduler, store, seconds=5)
        scheduler.remove_job("snapshot_refresh")
        assert scheduler.get_job("snapshot_refresh") is None
        scheduler.remove_job("snapshot_refresh")

    def test_stop_without_start(self, event_loop_for_scheduler):
        scheduler = Scheduler(loop=event_loop_for_scheduler)
        scheduler.stop()
        assert scheduler.scheduler.running is False
