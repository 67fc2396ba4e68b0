from __future__ import annotations

import asyncio

from src.timetracker.timetracker.sessions.ticker import TickScheduler


def test_ticker_publishes_to_every_subscriber_until_stopped():
    async def scenario():
        a, b = [], []
        ticker = TickScheduler(lambda: "00:00:01", interval=0.01, name="t")
        ticker.subscribe(a.append)
        ticker.subscribe(b.append)
        ticker.start()
        await asyncio.sleep(0.05)
        ticker.stop()
        seen = len(a)
        await asyncio.sleep(0.05)
        return a, b, seen, ticker.running

    a, b, seen, running = asyncio.run(scenario())

    assert len(a) >= 2
    assert len(b) >= 2
    assert set(a) == {"00:00:01"}
    assert len(a) == seen
    assert not running


def test_no_callback_after_unsubscribe_returns():
    async def scenario():
        kept, dropped = [], []
        ticker = TickScheduler(lambda: "x", interval=0.01)
        ticker.subscribe(kept.append)
        unsubscribe = ticker.subscribe(dropped.append)
        ticker.start()
        await asyncio.sleep(0.03)
        unsubscribe()
        count = len(dropped)
        await asyncio.sleep(0.05)
        return kept, dropped, count, ticker.running

    kept, dropped, count, running = asyncio.run(scenario())

    assert len(dropped) == count
    assert len(kept) > count
    assert running


def test_last_unsubscribe_cancels_the_loop():
    async def scenario():
        ticker = TickScheduler(lambda: "x", interval=0.01)
        unsubscribe = ticker.subscribe(lambda value: None)
        ticker.start()
        await asyncio.sleep(0.02)
        unsubscribe()
        await asyncio.sleep(0)
        return ticker.running, ticker.has_subscribers

    running, has_subscribers = asyncio.run(scenario())

    assert not running
    assert not has_subscribers


def test_start_without_subscribers_does_nothing():
    async def scenario():
        ticker = TickScheduler(lambda: "x", interval=0.01)
        ticker.start()
        return ticker.running

    assert asyncio.run(scenario()) is False


def test_failing_subscriber_does_not_stop_the_others():
    async def scenario():
        got = []
        ticker = TickScheduler(lambda: "x", interval=0.01)

        def broken(value):
            raise RuntimeError("view went away")

        ticker.subscribe(broken)
        ticker.subscribe(got.append)
        ticker.start()
        await asyncio.sleep(0.03)
        ticker.close()
        return got, ticker.running

    got, running = asyncio.run(scenario())

    assert len(got) >= 2
    assert not running


def test_subscriber_removed_mid_round_is_skipped():
    calls = []
    ticker = TickScheduler(lambda: "x")

    def first(value):
        calls.append("first")
        unsubscribe_second()

    ticker.subscribe(first)
    unsubscribe_second = ticker.subscribe(lambda value: calls.append("second"))

    ticker.publish()

    assert calls == ["first"]


def test_engine_ticks_while_active_and_publishes_final_value_on_stop(engine, clock):
    async def scenario():
        await engine.start_session("u1")
        seen = []
        unsubscribe = engine.subscribe_elapsed("u1", seen.append)
        await asyncio.sleep(0.03)
        clock.advance(minutes=1)
        await asyncio.sleep(0.06)
        await engine.stop_session("u1")
        after_stop = len(seen)
        clock.advance(minutes=1)
        await asyncio.sleep(0.06)
        unsubscribe()
        return seen, after_stop

    seen, after_stop = asyncio.run(scenario())

    assert seen[0] == "00:00:00"
    assert "00:01:00" in seen
    assert len(seen) == after_stop
    assert seen[-1] == "00:01:00"


def test_engine_subscription_without_session_publishes_once(engine):
    async def scenario():
        seen = []
        unsubscribe = engine.subscribe_elapsed("u1", seen.append)
        await asyncio.sleep(0.05)
        unsubscribe()
        return seen

    assert asyncio.run(scenario()) == ["00:00:00"]


def test_engine_unsubscribe_stops_callbacks(engine):
    async def scenario():
        await engine.start_session("u1")
        seen = []
        unsubscribe = engine.subscribe_elapsed("u1", seen.append)
        await asyncio.sleep(0.05)
        unsubscribe()
        count = len(seen)
        await asyncio.sleep(0.05)
        engine.close()
        return seen, count

    seen, count = asyncio.run(scenario())

    assert count >= 2
    assert len(seen) == count
