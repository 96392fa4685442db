import asyncio
from datetime import datetime, timedelta

import pytest

from admin_notifications.dedup import Deduplicator
from admin_notifications.feed import EventSourceAdapter, in_creation_order
from admin_notifications.schemas import NotificationKind
from tests.fakes import WATERMARK, FakeFeed, FakeStore, settle


def order(record_id, location_id="loc1", **extra):
    return {"id": record_id, "location_id": location_id, **extra}


def call(record_id, location_id="loc1", resolved=False, **extra):
    return {"id": record_id, "location_id": location_id, "is_resolved": resolved, **extra}


def at(seconds):
    return WATERMARK + timedelta(seconds=seconds)


@pytest.fixture
def store():
    return FakeStore(locations={"loc1": "Table 2", "loc2": "Terrace"})


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def make_adapter(store, feed, emitted):
    def factory(poll_interval=60.0):
        async def emit(event):
            emitted.append(event)
        dedup = Deduplicator(store, emit=emit, fallback_label="Unknown location")
        return EventSourceAdapter(feed, store, dedup, poll_interval=poll_interval, clock=lambda: WATERMARK)
    return factory


class TestStartup:
    @pytest.mark.asyncio
    async def test_subscribes_to_both_insert_streams(self, make_adapter, feed):
        async with make_adapter():
            assert set(feed.callbacks) == {"orders", "waiter_calls"}

    @pytest.mark.asyncio
    async def test_polls_once_immediately_from_the_watermark(self, make_adapter, store):
        async with make_adapter() as adapter:
            await settle()
            assert adapter.watermark == WATERMARK
            assert ("orders", WATERMARK, False) in store.poll_calls
            assert ("waiter_calls", WATERMARK, True) in store.poll_calls

    @pytest.mark.asyncio
    async def test_failed_subscribe_releases_what_was_acquired(self, store, emitted):
        feed = FakeFeed(fail_on="waiter_calls")

        async def emit(event):
            emitted.append(event)

        adapter = EventSourceAdapter(feed, store, Deduplicator(store, emit, "?"), clock=lambda: WATERMARK)
        with pytest.raises(RuntimeError):
            await adapter.start()

        assert feed.unsubscribed == ["orders"]
        assert adapter.closed


class TestAtMostOnce:
    @pytest.mark.asyncio
    async def test_live_then_poll_announces_once(self, make_adapter, feed, store, emitted):
        async with make_adapter() as adapter:
            feed.push("orders", order("o1"))
            store.orders.append(order("o1"))
            await adapter.poll_once()
            await settle()

        assert len(emitted) == 1
        assert emitted[0].source_record_id == "o1"
        assert emitted[0].location_label == "Table 2"

    @pytest.mark.asyncio
    async def test_poll_then_live_announces_once(self, make_adapter, feed, store, emitted):
        store.waiter_calls.append(call("w1"))
        async with make_adapter():
            await settle()
            feed.push("waiter_calls", call("w1"))
            await settle()

        assert [e.source_record_id for e in emitted] == ["w1"]
        assert emitted[0].kind is NotificationKind.WAITER

    @pytest.mark.asyncio
    async def test_repeated_polls_over_the_same_window_do_not_repeat(self, make_adapter, store, emitted):
        store.orders.extend([order("o1"), order("o2", "loc2")])
        async with make_adapter() as adapter:
            for _ in range(3):
                await adapter.poll_once()
            await settle()
            # watermark never moves: every cycle rescans from session start
            assert {since for _, since, _ in store.poll_calls} == {WATERMARK}

        assert [e.source_record_id for e in emitted] == ["o1", "o2"]
        assert [e.location_label for e in emitted] == ["Table 2", "Terrace"]

    @pytest.mark.asyncio
    async def test_poll_delivers_both_streams_in_creation_order(self, make_adapter, store, emitted):
        store.orders.extend([order("o_late", created_at=at(20)), order("o_last", created_at=at(40))])
        store.waiter_calls.extend([call("w_early", created_at=at(10)), call("w_mid", created_at=at(30))])

        async with make_adapter():
            await settle()

        assert [e.source_record_id for e in emitted] == ["w_early", "o_late", "w_mid", "o_last"]

    @pytest.mark.asyncio
    async def test_resolved_live_call_is_suppressed(self, make_adapter, feed, emitted):
        async with make_adapter():
            feed.push("waiter_calls", call("w9", resolved=True))
            await settle()
        assert emitted == []


class TestPollFailures:
    @pytest.mark.asyncio
    async def test_failed_query_is_skipped_and_other_stream_still_delivers(self, make_adapter, store, emitted):
        store.fail_tables.add("orders")
        store.orders.append(order("o1"))
        store.waiter_calls.append(call("w1"))

        async with make_adapter():
            await settle()

        assert [e.source_record_id for e in emitted] == ["w1"]

    @pytest.mark.asyncio
    async def test_next_cycle_recovers(self, make_adapter, store, emitted):
        store.fail_tables.add("orders")
        store.orders.append(order("o1"))

        async with make_adapter() as adapter:
            await settle()
            assert emitted == []
            store.fail_tables.clear()
            await adapter.poll_once()
            await settle()
            assert adapter.watermark == WATERMARK

        assert [e.source_record_id for e in emitted] == ["o1"]

    @pytest.mark.asyncio
    async def test_hung_query_does_not_hold_up_later_cycles(self, make_adapter, store):
        release = asyncio.Event()
        real_select = store.select_created_after
        hung = []

        async def first_call_hangs(table, since, unresolved_only=False):
            if not hung:
                hung.append(table)
                await release.wait()
            return await real_select(table, since, unresolved_only)

        store.select_created_after = first_call_hangs
        async with make_adapter(poll_interval=0.01):
            await asyncio.sleep(0.08)
            assert len(store.poll_calls) >= 4
        release.set()


class TestTeardown:
    @pytest.mark.asyncio
    async def test_stop_unsubscribes_and_cancels_the_timer(self, make_adapter, feed, store):
        adapter = make_adapter(poll_interval=0.01)
        await adapter.start()
        await asyncio.sleep(0.05)
        await adapter.stop()

        assert sorted(feed.unsubscribed) == ["orders", "waiter_calls"]
        calls_after_stop = len(store.poll_calls)
        await asyncio.sleep(0.05)
        assert len(store.poll_calls) == calls_after_stop

    @pytest.mark.asyncio
    async def test_late_feed_callback_after_stop_is_ignored(self, make_adapter, feed, emitted):
        adapter = make_adapter()
        await adapter.start()
        callback = feed.callbacks["orders"]
        await adapter.stop()

        callback(order("late"))
        await settle()

        assert emitted == []

    @pytest.mark.asyncio
    async def test_in_flight_label_lookup_is_cancelled(self, make_adapter, feed, store, emitted):
        release = asyncio.Event()

        async def slow_lookup(table, record_id):
            await release.wait()
            return {"name": "Table 2"}

        store.select_by_id = slow_lookup
        adapter = make_adapter()
        await adapter.start()
        feed.push("orders", order("o1"))
        await settle()
        await adapter.stop()

        release.set()
        await settle()
        assert emitted == []

    @pytest.mark.asyncio
    async def test_stop_is_idempotent_and_runs_on_error_exit(self, make_adapter, feed):
        with pytest.raises(ValueError):
            async with make_adapter() as adapter:
                raise ValueError("view crashed")

        assert adapter.closed
        assert sorted(feed.unsubscribed) == ["orders", "waiter_calls"]
        await adapter.stop()
        assert sorted(feed.unsubscribed) == ["orders", "waiter_calls"]


class TestCreationOrder:
    def test_string_and_naive_timestamps_are_compared_as_utc(self):
        merged = in_creation_order([
            (NotificationKind.ORDER, [order("o1", created_at="2026-10-17T12:00:20.5+00:00")]),
            (NotificationKind.WAITER, [call("w1", created_at=datetime(2026, 10, 17, 12, 0, 10))]),
        ])
        assert [record["id"] for _, record in merged] == ["w1", "o1"]

    def test_rows_without_timestamp_stay_behind_their_predecessor(self):
        merged = in_creation_order([
            (NotificationKind.ORDER, [order("o1", created_at=at(5)), order("o2"), order("o3", created_at=at(50))]),
            (NotificationKind.WAITER, [call("w1", created_at=at(20))]),
        ])
        assert [record["id"] for _, record in merged] == ["o1", "o2", "w1", "o3"]

    def test_ties_keep_stream_order(self):
        merged = in_creation_order([
            (NotificationKind.ORDER, [order("o1", created_at=at(1))]),
            (NotificationKind.WAITER, [call("w1", created_at=at(1))]),
        ])
        assert [kind for kind, _ in merged] == [NotificationKind.ORDER, NotificationKind.WAITER]
