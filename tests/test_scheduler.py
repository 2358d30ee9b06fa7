import asyncio
import threading

import pytest

from cardano_whale_watcher.models import Sentiment
from cardano_whale_watcher.scheduler import RunState, UpdateScheduler

from conftest import FakeChain, whale_tx


class BlockingChain(FakeChain):
    """Chain whose whale scan waits until released."""

    def __init__(self, whales=None):
        super().__init__(whales)
        self.release = threading.Event()

    def get_whale_transactions(self):
        self.release.wait(timeout=5)
        return super().get_whale_transactions()


def make_scheduler(chain, prices, broadcaster, clock, **kwargs):
    options = dict(interval=45.0, initial_delay=2.0, snapshot_size=10,
                   fallback_price=0.47, clock=clock)
    options.update(kwargs)
    return UpdateScheduler(chain, prices, broadcaster, **options)


async def wait_for_state(scheduler, state):
    for _ in range(100):
        if scheduler.state == state:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"scheduler never reached {state}")


def test_initial_snapshot_is_placeholder(chain, prices, broadcaster, clock):
    scheduler = make_scheduler(chain, prices, broadcaster, clock)
    snapshot = scheduler.snapshot

    assert snapshot.transactions == []
    assert snapshot.activity_score == 0
    assert snapshot.sentiment == Sentiment.NEUTRAL
    assert snapshot.price == 0.47
    assert snapshot.last_update is None
    assert scheduler.state == RunState.IDLE


@pytest.mark.asyncio
async def test_run_builds_and_publishes_snapshot(chain, prices, broadcaster, clock, subscriber):
    chain.whales = [whale_tx(600_000, "buy", minutes_ago=i) for i in range(12)]
    scheduler = make_scheduler(chain, prices, broadcaster, clock)
    await broadcaster.subscribe(subscriber)

    assert await scheduler.run_once() is True

    snapshot = scheduler.snapshot
    assert len(snapshot.transactions) == 10
    assert snapshot.transactions[0].timestamp > snapshot.transactions[-1].timestamp
    assert snapshot.price == 0.5
    assert snapshot.sentiment == Sentiment.BULLISH
    assert snapshot.total_volume == 7_200_000
    assert snapshot.last_update == clock.now
    assert subscriber.events() == ["whale-update"]
    assert subscriber.messages[0]["data"]["activityScore"] == snapshot.activity_score


@pytest.mark.asyncio
async def test_whale_failure_yields_empty_snapshot(chain, prices, broadcaster, clock):
    chain.fail_whales = True
    scheduler = make_scheduler(chain, prices, broadcaster, clock)

    await scheduler.run_once()

    assert scheduler.snapshot.transactions == []
    assert scheduler.snapshot.activity_score == 0
    assert scheduler.snapshot.price == 0.5
    assert scheduler.snapshot.last_update == clock.now


@pytest.mark.asyncio
async def test_price_failure_keeps_previous_price(chain, prices, broadcaster, clock):
    scheduler = make_scheduler(chain, prices, broadcaster, clock)
    prices.price = 0.61
    await scheduler.run_once()

    prices.fail = True
    chain.whales = [whale_tx(100_000)]
    await scheduler.run_once()

    assert scheduler.snapshot.price == 0.61
    assert len(scheduler.snapshot.transactions) == 1


@pytest.mark.asyncio
async def test_scoring_fault_emits_update_error(chain, prices, broadcaster, clock,
                                                subscriber, monkeypatch):
    scheduler = make_scheduler(chain, prices, broadcaster, clock)
    before = scheduler.snapshot
    await broadcaster.subscribe(subscriber)

    def explode(transactions):
        raise ZeroDivisionError("bad math")

    monkeypatch.setattr("cardano_whale_watcher.scheduler.analyze_whale_activity", explode)

    assert await scheduler.run_once() is True

    assert scheduler.snapshot is before
    assert subscriber.events() == ["update-error"]
    assert subscriber.messages[0]["data"] == {
        "message": "Failed to update whale data",
        "timestamp": clock.now.isoformat(),
    }
    assert scheduler.state == RunState.IDLE


@pytest.mark.asyncio
async def test_triggers_during_run_are_dropped(prices, broadcaster, clock):
    chain = BlockingChain([whale_tx(70_000)])
    scheduler = make_scheduler(chain, prices, broadcaster, clock)

    in_flight = asyncio.create_task(scheduler.run_once())
    await wait_for_state(scheduler, RunState.RUNNING)

    assert await scheduler.run_once() is False
    assert await scheduler.trigger() is False

    chain.release.set()
    assert await in_flight is True

    assert scheduler.completed_runs == 1
    assert chain.whale_calls == 1
    assert scheduler.state == RunState.IDLE


@pytest.mark.asyncio
async def test_timer_runs_after_initial_delay_and_stops(chain, prices, broadcaster, clock):
    scheduler = make_scheduler(chain, prices, broadcaster, clock,
                               initial_delay=0.01, interval=0.05)
    scheduler.start()
    assert scheduler.running

    for _ in range(100):
        if scheduler.completed_runs:
            break
        await asyncio.sleep(0.01)

    scheduler.stop()
    assert not scheduler.running
    assert await scheduler.drain(1.0)

    runs = scheduler.completed_runs
    assert runs >= 1
    await asyncio.sleep(0.15)
    assert scheduler.completed_runs == runs


@pytest.mark.asyncio
async def test_stop_does_not_abort_in_flight_run(prices, broadcaster, clock):
    chain = BlockingChain([whale_tx(70_000)])
    scheduler = make_scheduler(chain, prices, broadcaster, clock,
                               initial_delay=0.0, interval=60)
    scheduler.start()
    await wait_for_state(scheduler, RunState.RUNNING)

    scheduler.stop()
    assert not await scheduler.drain(0.05)

    chain.release.set()
    assert await scheduler.drain(2.0)
    assert scheduler.completed_runs == 1
    assert len(scheduler.snapshot.transactions) == 1
